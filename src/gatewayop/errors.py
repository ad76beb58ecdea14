"""Error taxonomy for reconcile passes.

Handlers translate these into kopf retries (see ``gatewayop.controllers.retry``):

- ``RequeueRequested``: transient, retried almost immediately.
- ``DependencyNotReady``: something the parent points at is missing, retried with backoff.
- ``InvalidSpec``: needs a user fix, retried at a reduced frequency.
- ``InvariantViolation``: a bug in the generated state, logged and retried.
"""


class ReconcileError(Exception):
    """Base class for all reconcile errors."""


class RequeueRequested(ReconcileError):
    """The pass changed cluster state and must be re-evaluated."""


class DuplicatesReduced(RequeueRequested):
    def __init__(self, kind, count):
        super().__init__(f"number of {kind} objects reduced from {count} to 1")
        self.kind = kind
        self.count = count


class StaleBindingRemoved(RequeueRequested):
    def __init__(self, kind, name, old_role, new_role):
        super().__init__(
            f"role of {kind} {name} changed from {old_role} to {new_role}, "
            f"out of date {kind} deleted"
        )
        self.kind = kind
        self.name = name


class StatusConflict(RequeueRequested):
    """A status write lost an optimistic-concurrency race."""


class DependencyNotReady(ReconcileError):
    """A referenced object is missing or not usable yet."""


class GrantMissing(DependencyNotReady):
    def __init__(self, namespace, owner_namespace):
        super().__init__(
            f"WatchNamespaceGrant in Namespace {namespace} to ControlPlane "
            f"in Namespace {owner_namespace} not found"
        )
        self.namespace = namespace


class ReferenceNotFound(DependencyNotReady):
    pass


class ReferenceNotProgrammed(DependencyNotReady):
    pass


class SecretNotFound(DependencyNotReady):
    def __init__(self, namespace, name):
        super().__init__(f"Secret {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class CASecretMissing(DependencyNotReady):
    def __init__(self, namespace, name, detail=""):
        message = f"cluster CA Secret {namespace}/{name} not usable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidSpec(ReconcileError):
    """The parent spec cannot be turned into a valid desired state."""


class InvariantViolation(ReconcileError):
    """Generated state does not satisfy an internal expectation."""
