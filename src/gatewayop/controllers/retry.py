"""Turn reconcile errors into kopf retries with per-class backoff."""

import functools
import logging

import kopf
from kubernetes.client.exceptions import ApiException

from gatewayop.errors import (
    DependencyNotReady,
    InvalidSpec,
    InvariantViolation,
    RequeueRequested,
)
from gatewayop.kube.client import is_conflict
from gatewayop.reconcile.status import ReconcileResult

logger = logging.getLogger(__name__)


def to_temporary_error(exc, backoff):
    """ Map a reconcile error onto a kopf.TemporaryError.

    Args:
        exc: Error raised by a reconcile pass
        backoff: BackoffConfig with the delay per error class

    Returns:
        kopf.TemporaryError, or None when ``exc`` is not a reconcile error.
    """
    if isinstance(exc, RequeueRequested) or is_conflict(exc):
        logger.info(f"Requeue requested: {exc}")
        return kopf.TemporaryError(str(exc), delay=backoff.requeue)
    if isinstance(exc, DependencyNotReady):
        logger.warning(f"Dependency not ready: {exc}")
        return kopf.TemporaryError(str(exc), delay=backoff.dependency)
    if isinstance(exc, InvalidSpec):
        logger.error(f"Invalid spec: {exc}")
        return kopf.TemporaryError(str(exc), delay=backoff.invalid_spec)
    if isinstance(exc, InvariantViolation):
        logger.exception(f"Invariant violated: {exc}")
        return kopf.TemporaryError(str(exc), delay=backoff.invariant)
    return None


def retry_on_reconcile_errors(get_backoff):
    """Decorates a kopf handler so reconcile errors become delayed retries.

    A pass returning a ``ReconcileResult`` with ``requeue`` set is retried as well.

    Args:
        get_backoff: Callable returning the BackoffConfig to use, looked up
            on every call so the handler can be declared before startup.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            backoff = get_backoff()
            try:
                result = func(*args, **kwargs)
            except (RequeueRequested, DependencyNotReady, InvalidSpec, InvariantViolation) as e:
                raise to_temporary_error(e, backoff) from e
            except ApiException as e:
                if is_conflict(e):
                    raise to_temporary_error(e, backoff) from e
                raise

            if isinstance(result, ReconcileResult) and result.requeue:
                raise kopf.TemporaryError("requeue requested", delay=backoff.requeue)
            return None

        return wrapper

    return decorator
