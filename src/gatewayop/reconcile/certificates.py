"""TLS certificate Secrets issued by the operator's cluster CA.

Automatically provisioned Secrets carry ``tls.crt``, ``tls.key`` and
``ca.crt``. They are reissued in place when the CA changes, the subject
changes or the certificate enters its renewal window.
"""

import base64
import datetime
import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from gatewayop.consts import SECRET_PROVISIONING_AUTOMATIC, SECRET_PROVISIONING_LABEL
from gatewayop.errors import CASecretMissing, SecretNotFound
from gatewayop.reconcile.owned import SECRET, Result, delete_owned, reduce_duplicates
from gatewayop.resources.ownership import generate_name, set_owner

logger = logging.getLogger(__name__)

KEY_USAGE_DIGITAL_SIGNATURE = "digital signature"
KEY_USAGE_KEY_ENCIPHERMENT = "key encipherment"
KEY_USAGE_SERVER_AUTH = "server auth"
KEY_USAGE_CLIENT_AUTH = "client auth"

SERVER_USAGES = (KEY_USAGE_DIGITAL_SIGNATURE, KEY_USAGE_KEY_ENCIPHERMENT, KEY_USAGE_SERVER_AUTH)
CLIENT_USAGES = (KEY_USAGE_DIGITAL_SIGNATURE, KEY_USAGE_KEY_ENCIPHERMENT, KEY_USAGE_CLIENT_AUTH)

_EXTENDED_USAGES = {
    KEY_USAGE_SERVER_AUTH: ExtendedKeyUsageOID.SERVER_AUTH,
    KEY_USAGE_CLIENT_AUTH: ExtendedKeyUsageOID.CLIENT_AUTH,
}


def sanitize_cert(pem):
    """Drop carriage returns and trailing newlines from PEM text."""
    if isinstance(pem, bytes):
        pem = pem.decode("utf-8")
    return pem.replace("\r", "").rstrip("\n")


def _encode(data):
    return base64.b64encode(data).decode("ascii")


def _decode(value):
    return base64.b64decode(value or "")


def load_ca(cluster, ca_ref):
    """ Read the CA certificate and key from the CA Secret.

    Returns:
        (certificate, private key, certificate PEM bytes)

    Raises:
        CASecretMissing: the Secret is absent or does not hold a usable key pair.
    """
    namespace, name = ca_ref
    secret = cluster.get("Secret", name, namespace)
    if secret is None:
        raise CASecretMissing(namespace, name, "not found")

    data = secret.get("data") or {}
    if not data.get("tls.crt") or not data.get("tls.key"):
        raise CASecretMissing(namespace, name, "tls.crt or tls.key missing")

    cert_pem = _decode(data["tls.crt"])
    try:
        certificate = x509.load_pem_x509_certificate(cert_pem)
        key = serialization.load_pem_private_key(_decode(data["tls.key"]), password=None)
    except ValueError as e:
        raise CASecretMissing(namespace, name, str(e)) from e
    return certificate, key, cert_pem


def generate_private_key(config):
    if config.cluster_ca_key_type == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=config.cluster_ca_key_size)
    return ec.generate_private_key(ec.SECP256R1())


def build_csr(key, subject_cn):
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)]))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(subject_cn)]), critical=False)
        .sign(key, hashes.SHA256())
    )


def sign_csr(csr, ca_cert, ca_key, key_usages, validity_days):
    """Issue a leaf certificate for ``csr`` signed by the CA."""
    usages = set(key_usages)
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=1))
        .not_valid_after(now + datetime.timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=KEY_USAGE_DIGITAL_SIGNATURE in usages,
                content_commitment=False,
                key_encipherment=KEY_USAGE_KEY_ENCIPHERMENT in usages,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    )

    extended = [_EXTENDED_USAGES[u] for u in sorted(usages) if u in _EXTENDED_USAGES]
    if extended:
        builder = builder.add_extension(x509.ExtendedKeyUsage(extended), critical=False)

    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        builder = builder.add_extension(san.value, critical=False)
    except x509.ExtensionNotFound:
        pass

    return builder.sign(ca_key, hashes.SHA256())


def issue_certificate(subject_cn, ca_cert, ca_key, key_usages, config):
    """Return (certificate PEM, key PEM) for a freshly generated key."""
    key = generate_private_key(config)
    csr = build_csr(key, subject_cn)
    certificate = sign_csr(csr, ca_cert, ca_key, key_usages, config.certificate_validity_days)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return certificate.public_bytes(serialization.Encoding.PEM), key_pem


def _common_name(certificate):
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return attributes[0].value if attributes else None


def certificate_needs_renewal(secret, subject_cn, ca_pem, config):
    """True unless the Secret holds a certificate for ``subject_cn`` from the current CA
    that is outside its renewal window."""
    data = secret.get("data") or {}
    if not data.get("tls.crt") or not data.get("tls.key"):
        return True
    if sanitize_cert(_decode(data.get("ca.crt"))) != sanitize_cert(ca_pem):
        logger.info(f"CA of Secret {secret['metadata']['name']} changed")
        return True

    try:
        certificate = x509.load_pem_x509_certificate(_decode(data["tls.crt"]))
    except ValueError:
        return True

    if _common_name(certificate) != subject_cn:
        return True

    now = datetime.datetime.now(datetime.timezone.utc)
    renew_before = datetime.timedelta(days=config.certificate_renew_before_days)
    return certificate.not_valid_after_utc - now <= renew_before


def ensure_certificate(cluster, owner, subject_cn, ca_ref, key_usages, match_labels, config):
    """ Make sure exactly one valid certificate Secret exists for ``owner``.

    Args:
        cluster: ClusterClient
        owner: Parent object; the Secret lives in its namespace
        subject_cn: Certificate common name (also its DNS SAN)
        ca_ref: (namespace, name) of the CA Secret, defaults to the configured one
        key_usages: Key usages of the issued certificate
        match_labels: Labels identifying this particular Secret of the owner
        config: OperatorConfig

    Returns:
        (Result, secret)
    """
    ca_cert, ca_key, ca_pem = load_ca(cluster, ca_ref or config.ca_secret_ref)
    namespace = owner["metadata"]["namespace"]

    existing = cluster.list("Secret", namespace=namespace, labels=match_labels)
    if len(existing) > 1:
        reduce_duplicates(cluster, SECRET, existing)

    if existing and not certificate_needs_renewal(existing[0], subject_cn, ca_pem, config):
        return Result.NOOP, existing[0]

    cert_pem, key_pem = issue_certificate(subject_cn, ca_cert, ca_key, key_usages, config)
    data = {"tls.crt": _encode(cert_pem), "tls.key": _encode(key_pem), "ca.crt": _encode(ca_pem)}

    if existing:
        current = existing[0]
        patch = {
            "metadata": {"resourceVersion": current["metadata"].get("resourceVersion")},
            "data": data,
        }
        updated = cluster.patch("Secret", current["metadata"]["name"], patch, namespace=namespace)
        logger.info(f"Reissued certificate {subject_cn} in Secret {namespace}/{current['metadata']['name']}")
        return Result.UPDATED, updated

    secret = {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {
            "generateName": generate_name(owner),
            "namespace": namespace,
            "labels": {**match_labels, SECRET_PROVISIONING_LABEL: SECRET_PROVISIONING_AUTOMATIC},
        },
        "data": data,
    }
    created = cluster.create("Secret", set_owner(secret, owner))
    logger.info(f"Issued certificate {subject_cn} in Secret {namespace}/{created['metadata']['name']}")
    return Result.CREATED, created


def get_manual_certificate(cluster, namespace, name):
    """Look up a user provided certificate Secret."""
    secret = cluster.get("Secret", name, namespace)
    if secret is None:
        raise SecretNotFound(namespace, name)
    return secret


def ensure_certificates_deleted(cluster, owner, match_labels):
    """Delete the owner's certificate Secrets matching ``match_labels``."""
    return delete_owned(
        cluster,
        owner,
        SECRET,
        namespace=owner["metadata"]["namespace"],
        match_labels=match_labels,
    )
