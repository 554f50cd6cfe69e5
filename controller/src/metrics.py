from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter


@dataclass(frozen=True)
class ControllerMetrics:
    """Prometheus metrics exported by the controller.

    Dropped events carry a ``reason`` label so a label-filter miss can be
    told apart from a missing or mismatched controller.
    """

    enqueued_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_enqueued_total",
            "Total reconcile keys added to the work queue by event routers",
            ["mode"],
        )
    )
    events_dropped_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_events_dropped_total",
            "Total resource events that produced no reconcile key",
            ["reason"],
        )
    )
    handled_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_handled_errors_total",
            "Total errors reported through the side-channel error handler",
        )
    )
    update_conflicts_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_update_conflicts_total",
            "Total version conflicts observed by guaranteed updates",
        )
    )
    updates_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_updates_total",
            "Total guaranteed update calls by outcome",
            ["outcome"],
        )
    )
    reconcile_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_reconcile_total",
            "Total work items processed by result",
            ["result"],
        )
    )
    informer_watch_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_informer_watch_errors_total",
            "Total Kubernetes list/watch errors seen by informers",
        )
    )
    informer_watch_reconnects_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_informer_watch_reconnects_total",
            "Total watch stream reconnects after the initial connection",
        )
    )
    informer_relists_total: Counter = field(
        default_factory=lambda: Counter(
            "tikv_controller_informer_relists_total",
            "Total re-lists after the watch resource version expired",
        )
    )


METRICS = ControllerMetrics()
