from __future__ import annotations

import copy
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from controller.src.errors import is_conflict
from controller.src.keys import key_of
from controller.src.meta import replace_contents, semantic_form
from controller.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def get(self, key: str) -> Any: ...

    def update(self, obj: Any) -> Any: ...


class UpdateOutcome(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule for write conflicts.

    ``retries`` conflicts are retried; one more conflict is raised to the
    caller.  Sleeps start at ``interval_seconds``, grow by ``factor`` and
    are stretched by up to ``jitter`` times their length.
    """

    retries: int = 4
    interval_seconds: float = 0.01
    factor: float = 1.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

    def delay(self, retry_attempt: int) -> float:
        """Return the sleep before retry number *retry_attempt* (1-based)."""
        base = self.interval_seconds * (self.factor ** (retry_attempt - 1))
        if self.jitter > 0:
            base += base * self.jitter * random.random()  # noqa: S311
        return base


DEFAULT_RETRY = RetryPolicy()


def guaranteed_update(
    store: ObjectStore,
    obj: Any,
    mutate: Callable[[], None],
    *,
    policy: RetryPolicy = DEFAULT_RETRY,
    sleep: Callable[[float], None] = time.sleep,
) -> UpdateOutcome:
    """Fetch *obj*, apply *mutate*, and write it back, retrying on conflicts.

    *mutate* is expected to capture *obj* from the caller and change it in
    place.  Every attempt first overwrites *obj* with the stored version, so
    *mutate* may run several times and must be safe to repeat.  When the
    mutation leaves the object structurally unchanged no write is issued,
    which keeps unconditional reconciles from bumping the resource version
    and re-triggering themselves.

    Only version conflicts are retried; fetch errors, mutation errors and
    other write errors propagate immediately.
    """
    key = key_of(obj)

    attempt = 0
    while True:
        attempt += 1
        replace_contents(obj, store.get(key))
        before_mutation = copy.deepcopy(obj)
        mutate()
        if semantic_form(obj) == semantic_form(before_mutation):
            METRICS.updates_total.labels(outcome=UpdateOutcome.UNCHANGED.value).inc()
            return UpdateOutcome.UNCHANGED

        try:
            updated = store.update(obj)
        except Exception as exc:
            if not is_conflict(exc):
                METRICS.updates_total.labels(outcome="failed").inc()
                raise
            METRICS.update_conflicts_total.inc()
            if attempt > policy.retries:
                LOGGER.warning(
                    "Giving up update of %s after %d conflicting attempts", key, attempt
                )
                METRICS.updates_total.labels(outcome="failed").inc()
                raise
            delay = policy.delay(attempt)
            LOGGER.debug(
                "Update of %s conflicted (attempt %d); retrying in %.3fs", key, attempt, delay
            )
            sleep(delay)
            continue

        if updated is not None:
            replace_contents(obj, updated)
        METRICS.updates_total.labels(outcome=UpdateOutcome.UPDATED.value).inc()
        return UpdateOutcome.UPDATED
