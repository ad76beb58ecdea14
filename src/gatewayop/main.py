import kopf
import logging
import kubernetes
import os

from gatewayop.config import OperatorConfig
from gatewayop.controllers.registry import ControllerRegistry
from gatewayop.kube.client import ClusterClient

# Registers the custom resource models with the CRD registry
import gatewayop.models  # noqa: F401

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global controller registry instance
controller_registry = None


def load_kube_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        try:
            kubernetes.config.load_kube_config()
            logger.info("Loaded local Kubernetes config")
        except Exception as e:
            logger.warning(f"Could not load Kubernetes config: {e}")


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Configure the operator and register the controllers."""
    global controller_registry

    logger.info("Gateway Operator is starting up...")

    load_kube_config()
    config = OperatorConfig.from_env()
    cluster = ClusterClient()

    controller_registry = ControllerRegistry()

    discovered_count = controller_registry.discover_controllers()
    if discovered_count == 0:
        logger.error("No controllers discovered - operator will have no functionality")
        raise RuntimeError("No controllers available")

    init_results = controller_registry.initialise_all_controllers(cluster, config)
    if not any(init_results.values()):
        logger.error("No controllers initialised successfully")
        raise RuntimeError("Controller initialisation failed")

    controller_registry.register_all_handlers()

    settings.batching.worker_limit = config.worker_limit
    settings.posting.enabled = config.posting_enabled
    settings.watching.server_timeout = config.server_timeout

    logger.info(f"Initialised controllers: {list(init_results.keys())}")
    logger.info(f"Worker limit: {settings.batching.worker_limit}")
    logger.info(f"Cluster CA: {config.cluster_ca_secret_namespace}/{config.cluster_ca_secret_name}")
    logger.info("Gateway Operator startup complete")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    """Cleanup operator resources."""
    logger.info("Gateway Operator is shutting down...")

    global controller_registry
    if controller_registry:
        controller_registry.shutdown_all_controllers()

    logger.info("Gateway Operator shutdown complete")


def main():
    try:
        kopf.run()
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
