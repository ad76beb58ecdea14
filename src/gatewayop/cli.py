import sys
from pathlib import Path

import typer
import yaml
from typing_extensions import Annotated

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())

app = typer.Typer(
    help="Gateway operator: reconciles Kong ControlPlanes, DataPlanes and KonnectExtensions",
    add_completion=False,
)

# Names filled in by the cluster on a real pass.
PLACEHOLDER_UID = "00000000-0000-0000-0000-000000000000"


def _placeholder(obj, suffix):
    return f"{obj['metadata']['name']}-{suffix}"


def render_controlplane(cp, config):
    from gatewayop.controllers.controlplane import parse_spec
    from gatewayop.resources.controlplane import (
        generate_admission_webhook_service,
        generate_controlplane_deployment,
        is_admission_webhook_enabled,
    )
    from gatewayop.resources.images import resolve_image
    from gatewayop.resources.rbac import (
        generate_cluster_role,
        generate_cluster_role_binding,
        generate_service_account,
    )

    spec = parse_spec(cp)
    service_account = generate_service_account(cp)
    service_account["metadata"]["name"] = _placeholder(cp, "sa")
    cluster_role = generate_cluster_role(cp)
    children = [service_account, cluster_role]
    children.append(
        generate_cluster_role_binding(cp, _placeholder(cp, "clusterrole"), service_account)
    )

    webhook_secret_name = None
    if is_admission_webhook_enabled(spec, config):
        children.append(generate_admission_webhook_service(cp))
        webhook_secret_name = _placeholder(cp, "webhook-cert")

    image = resolve_image(
        spec.deployment.podTemplateSpec,
        "controller",
        config.controlplane_default_image,
        validate=config.validate_images,
    )
    children.append(
        generate_controlplane_deployment(
            cp,
            spec,
            image,
            service_account_name=service_account["metadata"]["name"],
            admin_mtls_secret_name=_placeholder(cp, "admin-cert"),
            webhook_secret_name=webhook_secret_name,
        )
    )
    return children


def render_dataplane(dp, config):
    from gatewayop.controllers.dataplane import parse_spec
    from gatewayop.resources.dataplane import (
        generate_dataplane_deployment,
        generate_dataplane_services,
    )
    from gatewayop.resources.images import resolve_image

    spec = parse_spec(dp)
    image = resolve_image(
        spec.deployment.podTemplateSpec,
        "proxy",
        config.dataplane_default_image,
        validate=config.validate_images,
    )
    return [*generate_dataplane_services(dp, spec), generate_dataplane_deployment(dp, spec, image)]


RENDERERS = {"ControlPlane": render_controlplane, "DataPlane": render_dataplane}


# Add operator commands
@app.command("operator")
def run_operator():
    """Run the Kubernetes operator (connects to cluster)."""
    from gatewayop.main import main

    main()


@app.command("render")
def render(
    path: Annotated[Path, typer.Argument(help="ControlPlane or DataPlane manifest")],
    output: Annotated[
        str, typer.Option("-o", "--output", help="Write to this file instead of stdout")
    ] = "",
):
    """Print the children the operator would create for a manifest, without a cluster."""
    import gatewayop.models  # noqa: F401
    from gatewayop.config import OperatorConfig
    from gatewayop.crd.registry import CRDRegistry
    from gatewayop.errors import ReconcileError

    try:
        obj = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        typer.echo(f"Failed to read {path}: {e}")
        raise typer.Exit(1)

    renderer = RENDERERS.get((obj or {}).get("kind"))
    if renderer is None:
        typer.echo(f"Unsupported kind {(obj or {}).get('kind')}, expected one of {list(RENDERERS)}")
        raise typer.Exit(1)

    obj.setdefault("apiVersion", CRDRegistry().api_version(obj["kind"]))
    obj.setdefault("metadata", {}).setdefault("namespace", "default")
    obj["metadata"].setdefault("uid", PLACEHOLDER_UID)

    try:
        children = renderer(obj, OperatorConfig.from_env())
    except ReconcileError as e:
        typer.echo(f"Cannot render {path}: {e}")
        sys.exit(1)

    rendered = yaml.safe_dump_all(children, sort_keys=False)
    if output:
        Path(output).write_text(rendered)
        typer.echo(f"Wrote {len(children)} objects to {output}")
    else:
        typer.echo(rendered)


if __name__ == "__main__":
    app()
