"""Registry for discovering and managing controllers."""

import importlib
import logging

from .base import ControllerBase

logger = logging.getLogger(__name__)


class ControllerRegistry:
    """Registry of the controllers the operator runs."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._controllers = {}
            cls._instance._initialised = False
            cls._instance.config = None
        return cls._instance

    def __init__(self):
        if not self._initialised:
            self._controllers = {}
            self._initialised = True

    builtin_controllers = [
        "gatewayop.controllers.controlplane",
        "gatewayop.controllers.dataplane",
        "gatewayop.controllers.konnect",
    ]

    def discover_controllers(self):
        """Load the built-in controllers.

        Returns:
            int: Number of controllers discovered
        """
        logger.info("Discovering controllers...")

        loaded_count = 0
        for controller_module in self.builtin_controllers:
            try:
                module = importlib.import_module(controller_module)
            except ImportError as e:
                logger.warning(f"Could not load controller {controller_module}: {e}")
                continue

            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (
                    isinstance(attr, type)
                    and issubclass(attr, ControllerBase)
                    and attr is not ControllerBase
                    and attr.__module__ == module.__name__
                ):
                    if self.register_controller(attr()):
                        loaded_count += 1
                    break

        logger.info(f"Discovered {loaded_count} controllers")
        return loaded_count

    def register_controller(self, controller):
        """Register a controller instance.

        Returns:
            bool: True if registration successful, False otherwise
        """
        if not isinstance(controller, ControllerBase):
            logger.error(f"Controller must inherit from ControllerBase: {type(controller)}")
            return False

        if controller.name in self._controllers:
            logger.warning(f"Controller {controller.name} already registered")
            return False

        self._controllers[controller.name] = controller
        logger.debug(f"Registered controller: {controller.name}")
        return True

    def initialise_all_controllers(self, cluster, config):
        """Initialise all registered controllers.

        Returns:
            Dict[str, bool]: Map of controller names to initialisation success
        """
        self.config = config
        results = {
            name: controller.initialise(cluster, config)
            for name, controller in self._controllers.items()
        }
        successful_count = sum(1 for success in results.values() if success)
        logger.info(
            f"Initialised {successful_count}/{len(self._controllers)} controllers successfully"
        )
        return results

    def register_all_handlers(self):
        """Register kopf handlers for all initialised controllers."""
        for name, controller in self._controllers.items():
            if not controller.initialised:
                logger.warning(f"Skipping handler registration for uninitialised controller: {name}")
                continue
            controller.register_handlers()

    def shutdown_all_controllers(self):
        for name, controller in self._controllers.items():
            try:
                controller.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down controller {name}: {e}")

    def get_controller(self, name):
        """Get a controller by name."""
        return self._controllers.get(name)

    def list_controller_names(self):
        return list(self._controllers.keys())

    def get_controllers_metadata(self):
        return [controller.get_metadata() for controller in self._controllers.values()]
