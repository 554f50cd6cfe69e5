from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from controller.src.errors import handle_error, is_ignore_error, is_requeue_error
from controller.src.logs import log_context
from controller.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)

SyncFn = Callable[[str], None]


class RateLimitingQueue(Protocol):
    """Consumer side of the dedup work queue.

    A key handed out by :meth:`get` is not handed out again until
    :meth:`done` is called for it, so one key never syncs concurrently.
    """

    def add(self, key: str) -> None: ...

    def get(self) -> tuple[str | None, bool]: ...

    def done(self, key: str) -> None: ...

    def add_rate_limited(self, key: str) -> None: ...

    def forget(self, key: str) -> None: ...

    def shut_down(self) -> None: ...


class Worker:
    """Pull reconcile keys off the queue and sync them one at a time.

    Outcomes of ``sync(key)``:

    * success → ``forget`` (resets the key's backoff)
    * :class:`IgnoreError` → ``forget``; logged at info, not a fault
    * :class:`RequeueError` → ``add_rate_limited``; logged at info, not a fault
    * anything else → ``add_rate_limited`` and reported as a fault

    A failure on one key never stops the worker.
    """

    def __init__(
        self,
        queue: RateLimitingQueue,
        sync: SyncFn,
        name: str = "TikvCluster",
        logger: logging.Logger | None = None,
    ) -> None:
        self.queue = queue
        self.sync = sync
        self.name = name
        self.logger = logger or LOGGER

    def process_next_item(self) -> bool:
        """Process one key.  Returns False once the queue is shutting down."""
        key, shutdown = self.queue.get()
        if shutdown or key is None:
            return False
        try:
            self._sync_and_classify(key)
        finally:
            self.queue.done(key)
        return True

    def _sync_and_classify(self, key: str) -> None:
        try:
            self.sync(key)
        except Exception as exc:
            if is_ignore_error(exc):
                self.logger.info(
                    "%s: %s, ignored: %s",
                    self.name,
                    key,
                    exc,
                    extra=log_context(key=key, worker=self.name, outcome="ignore"),
                )
                METRICS.reconcile_total.labels(result="ignore").inc()
                self.queue.forget(key)
                return
            if is_requeue_error(exc):
                self.logger.info(
                    "%s: %s, still need sync: %s, requeuing",
                    self.name,
                    key,
                    exc,
                    extra=log_context(key=key, worker=self.name, outcome="requeue"),
                )
                METRICS.reconcile_total.labels(result="requeue").inc()
            else:
                METRICS.reconcile_total.labels(result="error").inc()
                failure = RuntimeError(f"{self.name}: {key}, sync failed {exc}, requeuing")
                failure.__cause__ = exc
                handle_error(failure)
            self.queue.add_rate_limited(key)
            return

        METRICS.reconcile_total.labels(result="success").inc()
        self.queue.forget(key)

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Process keys until the queue shuts down or *stop_event* is set."""
        stop = stop_event or threading.Event()
        while not stop.is_set():
            if not self.process_next_item():
                break
        self.logger.debug("%s worker stopped", self.name)


def start_workers(
    queue: RateLimitingQueue,
    sync: SyncFn,
    count: int,
    stop_event: threading.Event,
    name: str = "TikvCluster",
) -> list[threading.Thread]:
    """Run *count* workers on daemon threads and return the threads."""
    if count < 1:
        raise ValueError("count must be >= 1")
    threads: list[threading.Thread] = []
    for index in range(count):
        worker = Worker(queue, sync, name=name)
        thread = threading.Thread(
            target=worker.run,
            kwargs={"stop_event": stop_event},
            name=f"{name.lower()}-worker-{index}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    LOGGER.info("Started %d %s worker(s)", count, name)
    return threads
