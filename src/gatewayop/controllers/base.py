"""Base controller architecture for the gateway operator."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
import importlib
import logging
import threading

logger = logging.getLogger(__name__)


class ControllerBase(ABC):
    """Base class for the controllers of each parent kind.

    kopf runs the event handlers and the resync timer of one object as separate
    tasks in its thread pool, so every pass goes through ``run_pass`` which
    holds a lock per object UID.
    """

    def __init__(self):
        self._initialised = False
        self.cluster = None
        self._locks_guard = threading.Lock()
        self._pass_locks = {}
        self.config = None

    @property
    @abstractmethod
    def name(self):
        """Unique name for this controller."""
        pass

    @property
    @abstractmethod
    def kind(self):
        """Parent kind this controller reconciles."""
        pass

    @property
    @abstractmethod
    def handler_module(self):
        """Module declaring the kopf handlers of this controller."""
        pass

    @property
    def models(self):
        """Spec models this controller reads."""
        return []

    def initialise(self, cluster, config):
        """Initialise the controller. Called once during operator startup.

        Returns:
            bool: True if initialisation successful, False otherwise
        """
        if self._initialised:
            logger.warning(f"Controller {self.name} already initialised")
            return True

        try:
            logger.info(f"Initialising controller: {self.name}")
            self.cluster = cluster
            self.config = config

            for model in self.models:
                if not hasattr(model, "_crd_group"):
                    logger.warning(
                        f"Model {model.__name__} not decorated with @CRDRegistry.register"
                    )

            self._initialised = True
            return True

        except Exception as e:
            logger.error(f"Failed to initialise controller {self.name}: {e}")
            return False

    @property
    def initialised(self):
        return self._initialised

    def register_handlers(self):
        """Import the handler module so its kopf decorators register."""
        logger.info(f"Registering {self.name} handlers...")
        importlib.import_module(self.handler_module)

    def fetch(self, name, namespace):
        """Read the latest version of a parent, None if it is gone."""
        return self.cluster.get(self.kind, name, namespace)

    @contextmanager
    def serialized(self, uid):
        """Hold the pass lock of the object with ``uid``."""
        with self._locks_guard:
            lock = self._pass_locks.setdefault(uid, threading.Lock())
        with lock:
            yield

    def run_pass(self, name, namespace, uid):
        """Reconcile the latest version of a parent, one pass per object at a time.

        Returns:
            The reconcile result, or None when the parent is gone.
        """
        with self.serialized(uid):
            obj = self.fetch(name, namespace)
            if obj is None or obj["metadata"].get("uid") != uid:
                logger.debug(f"{self.kind} {namespace}/{name} is gone, nothing to reconcile")
                return None
            return self.reconcile(obj)

    def run_cleanup(self, obj):
        """Clean up after a deleted parent and drop its pass lock."""
        uid = obj["metadata"]["uid"]
        with self.serialized(uid):
            self.cleanup(obj)
        with self._locks_guard:
            self._pass_locks.pop(uid, None)

    @abstractmethod
    def reconcile(self, obj):
        """Run one reconcile pass for ``obj``."""
        pass

    def cleanup(self, obj):
        """Remove children garbage collection does not reach. Override if needed."""
        pass

    def shutdown(self):
        if self._initialised:
            logger.info(f"Shutting down controller: {self.name}")
            self._initialised = False

    def get_metadata(self):
        return {
            "name": self.name,
            "kind": self.kind,
            "models": [model.__name__ for model in self.models],
            "initialised": self._initialised,
        }
