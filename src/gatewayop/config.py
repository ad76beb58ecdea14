"""Operator-wide settings, read once at startup and threaded through controllers."""

import os

from pydantic import BaseModel, Field


def _env_bool(key, default):
    return os.getenv(key, str(default)).lower() == "true"


class BackoffConfig(BaseModel):
    """Retry delays (seconds) per error class."""

    requeue: float = 1.0
    dependency: float = 10.0
    invalid_spec: float = 120.0
    invariant: float = 30.0


class OperatorConfig(BaseModel):
    """Process-level settings for the reconcile engine."""

    cluster_ca_secret_name: str = "kong-operator-ca"
    cluster_ca_secret_namespace: str = "kong-system"
    cluster_ca_key_type: str = Field(default="ecdsa", pattern="^(ecdsa|rsa)$")
    cluster_ca_key_size: int = 2048
    certificate_validity_days: int = 365
    certificate_renew_before_days: int = 30

    enable_validating_webhook: bool = True
    validate_images: bool = True
    # Rewrite Deployment templates every pass, even when the fingerprint matches.
    enforce_config: bool = False

    controlplane_default_image: str = "kong/kubernetes-ingress-controller:3.4"
    dataplane_default_image: str = "kong:3.9"

    resync_interval: float = 60.0
    worker_limit: int = 5
    posting_enabled: bool = False
    server_timeout: int = 60

    backoff: BackoffConfig = Field(default_factory=BackoffConfig)

    @classmethod
    def from_env(cls):
        """Build the config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            cluster_ca_secret_name=os.getenv(
                "CLUSTER_CA_SECRET_NAME", defaults.cluster_ca_secret_name
            ),
            cluster_ca_secret_namespace=os.getenv(
                "CLUSTER_CA_SECRET_NAMESPACE", defaults.cluster_ca_secret_namespace
            ),
            cluster_ca_key_type=os.getenv(
                "CLUSTER_CA_KEY_TYPE", defaults.cluster_ca_key_type
            ).lower(),
            cluster_ca_key_size=int(
                os.getenv("CLUSTER_CA_KEY_SIZE", defaults.cluster_ca_key_size)
            ),
            certificate_validity_days=int(
                os.getenv("CERTIFICATE_VALIDITY_DAYS", defaults.certificate_validity_days)
            ),
            certificate_renew_before_days=int(
                os.getenv(
                    "CERTIFICATE_RENEW_BEFORE_DAYS",
                    defaults.certificate_renew_before_days,
                )
            ),
            enable_validating_webhook=_env_bool(
                "ENABLE_VALIDATING_WEBHOOK", defaults.enable_validating_webhook
            ),
            validate_images=_env_bool("VALIDATE_IMAGES", defaults.validate_images),
            enforce_config=_env_bool("ENFORCE_CONFIG", defaults.enforce_config),
            controlplane_default_image=os.getenv(
                "CONTROLPLANE_DEFAULT_IMAGE", defaults.controlplane_default_image
            ),
            dataplane_default_image=os.getenv(
                "DATAPLANE_DEFAULT_IMAGE", defaults.dataplane_default_image
            ),
            resync_interval=float(os.getenv("RESYNC_INTERVAL", defaults.resync_interval)),
            worker_limit=int(os.getenv("WORKER_LIMIT", defaults.worker_limit)),
            posting_enabled=_env_bool("POSTING_ENABLED", defaults.posting_enabled),
            server_timeout=int(os.getenv("SERVER_TIMEOUT", defaults.server_timeout)),
            backoff=BackoffConfig(
                requeue=float(os.getenv("BACKOFF_REQUEUE", defaults.backoff.requeue)),
                dependency=float(
                    os.getenv("BACKOFF_DEPENDENCY", defaults.backoff.dependency)
                ),
                invalid_spec=float(
                    os.getenv("BACKOFF_INVALID_SPEC", defaults.backoff.invalid_spec)
                ),
                invariant=float(
                    os.getenv("BACKOFF_INVARIANT", defaults.backoff.invariant)
                ),
            ),
        )

    @property
    def ca_secret_ref(self):
        return (self.cluster_ca_secret_namespace, self.cluster_ca_secret_name)
