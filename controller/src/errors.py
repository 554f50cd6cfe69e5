from __future__ import annotations

import logging

from kubernetes.client import ApiException

from controller.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)


class RequeueError(Exception):
    """Signals an expected transient condition; the key should be requeued.

    Not a real failure: the worker requeues the key without counting a fault.
    """


class IgnoreError(Exception):
    """Signals an expected terminal condition for this pass; drop the key."""


class EncodingError(ValueError):
    """Raised when an object has no identity metadata to derive a key from."""


class GroupVersionError(ValueError):
    """Raised when an ``apiVersion`` string cannot be parsed."""


class NotFoundError(LookupError):
    """Raised by cache lookups when no object exists under a key."""


class ConflictError(RuntimeError):
    """Raised by stores when a write was based on a superseded version."""


def requeue_errorf(fmt: str, *args: object) -> RequeueError:
    return RequeueError(fmt % args if args else fmt)


def ignore_errorf(fmt: str, *args: object) -> IgnoreError:
    return IgnoreError(fmt % args if args else fmt)


def _find(err: BaseException | None, kind: type[BaseException]) -> BaseException | None:
    """Walk the ``__cause__``/``__context__`` chain looking for *kind*."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, kind):
            return err
        seen.add(id(err))
        err = err.__cause__ or err.__context__
    return None


def is_requeue_error(err: BaseException | None) -> bool:
    return _find(err, RequeueError) is not None


def is_ignore_error(err: BaseException | None) -> bool:
    return _find(err, IgnoreError) is not None


def is_not_found(err: BaseException | None) -> bool:
    if isinstance(err, NotFoundError):
        return True
    return isinstance(err, ApiException) and err.status == 404


def is_conflict(err: BaseException | None) -> bool:
    if isinstance(err, ConflictError):
        return True
    return isinstance(err, ApiException) and err.status == 409


def handle_error(err: BaseException) -> None:
    """Report an error that cannot be returned to a caller.

    Used by event callbacks and worker loops that must keep running; the
    error is logged and counted, never raised.
    """
    METRICS.handled_errors_total.inc()
    LOGGER.error("%s", err, exc_info=(type(err), err, err.__traceback__))
