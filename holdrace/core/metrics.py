"""
Outcome aggregation for a load run.

Counters are Prometheus-compatible and live in a registry owned by the
aggregator, so two runs in one process (or two tests) never share state.
prometheus_client counters are safe to increment from many tasks/threads.
"""

from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from holdrace.services.classifier import HoldOutcome

# Request names, used as the `step` label on request metrics
QUEUE_JOIN = "queue_join"
QUEUE_STATUS = "queue_status"
QUEUE_PING = "queue_ping"
BOOKING_SESSION_CREATE = "booking_session_create"
BOOKING_SESSION_PING = "booking_session_ping"
RESERVATION_CREATE = "reservation_create"
SEAT_HOLD = "seat_hold"

REQUEST_STEPS = (
    QUEUE_JOIN,
    QUEUE_STATUS,
    QUEUE_PING,
    BOOKING_SESSION_CREATE,
    BOOKING_SESSION_PING,
    RESERVATION_CREATE,
    SEAT_HOLD,
)

# Where an actor iteration can end early
ADMISSION = "admission"
UNEXPECTED = "unexpected"
ABORT_STEPS = (QUEUE_JOIN, ADMISSION, BOOKING_SESSION_CREATE, RESERVATION_CREATE, UNEXPECTED)


@dataclass(frozen=True)
class OutcomeSnapshot:
    won: int = 0
    lost: int = 0
    client_error: int = 0
    server_error: int = 0
    unclassified: int = 0
    iterations: int = 0
    dropped: int = 0
    interrupted: int = 0
    http_reqs: int = 0
    http_req_failed: int = 0
    setup_failed: bool = False
    aborts: dict = field(default_factory=dict)

    @property
    def holds(self) -> int:
        return self.won + self.lost + self.client_error + self.server_error + self.unclassified

    @property
    def failed_rate(self) -> float:
        if not self.http_reqs:
            return 0.0
        return self.http_req_failed / self.http_reqs


class OutcomeAggregator:
    """Increment-only counters per outcome category plus a setup-failed flag."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.hold_outcomes = Counter(
            "hold_outcomes",
            "Seat hold results by outcome",
            ["outcome"],  # won, lost, client_error, server_error
            registry=self.registry,
        )
        self.hold_unclassified = Counter(
            "hold_unclassified",
            "Seat hold responses outside every outcome category",
            registry=self.registry,
        )
        self.actor_aborts = Counter(
            "actor_aborts",
            "Actor iterations ended early, by step",
            ["step"],
            registry=self.registry,
        )
        self.http_reqs = Counter(
            "http_reqs",
            "HTTP requests issued",
            ["step"],
            registry=self.registry,
        )
        self.http_req_failed = Counter(
            "http_req_failed",
            "HTTP requests with status outside 200-399 or no response",
            ["step"],
            registry=self.registry,
        )
        self.http_req_duration = Histogram(
            "http_req_duration_seconds",
            "HTTP request latency",
            ["step"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )
        self.iterations = Counter(
            "iterations",
            "Actor iterations finished",
            registry=self.registry,
        )
        self.dropped_iterations = Counter(
            "dropped_iterations",
            "Start events dropped because the actor cap was reached",
            registry=self.registry,
        )
        self.interrupted_iterations = Counter(
            "interrupted_iterations",
            "Actors cancelled after the graceful stop period",
            registry=self.registry,
        )
        self.setup_failed = Gauge(
            "setup_failed",
            "1 if any setup step failed during this run",
            registry=self.registry,
        )

        # Export zero-valued series up front so snapshots read every label
        for outcome in HoldOutcome:
            self.hold_outcomes.labels(outcome=outcome.value)
        for step in ABORT_STEPS:
            self.actor_aborts.labels(step=step)
        for step in REQUEST_STEPS:
            self.http_reqs.labels(step=step)
            self.http_req_failed.labels(step=step)

    def record_hold(self, outcome: Optional[HoldOutcome]) -> None:
        if outcome is None:
            self.hold_unclassified.inc()
        else:
            self.hold_outcomes.labels(outcome=outcome.value).inc()

    def record_abort(self, step: str) -> None:
        self.actor_aborts.labels(step=step).inc()

    def record_request(self, step: str, status: int, duration: float) -> None:
        """Record one HTTP exchange. status 0 means no response was received."""
        self.http_reqs.labels(step=step).inc()
        if not 200 <= status < 400:
            self.http_req_failed.labels(step=step).inc()
        self.http_req_duration.labels(step=step).observe(duration)

    def record_iteration(self) -> None:
        self.iterations.inc()

    def record_dropped(self) -> None:
        self.dropped_iterations.inc()

    def record_interrupted(self, count: int = 1) -> None:
        self.interrupted_iterations.inc(count)

    def mark_setup_failed(self) -> None:
        """Any setup failure marks the whole run as failed; never cleared."""
        self.setup_failed.set(1)

    def _value(self, name: str, labels: Optional[dict] = None) -> int:
        value = self.registry.get_sample_value(name, labels or {})
        return int(value or 0)

    def _sum_over_steps(self, name: str) -> int:
        return sum(self._value(name, {"step": step}) for step in REQUEST_STEPS)

    def snapshot(self) -> OutcomeSnapshot:
        return OutcomeSnapshot(
            won=self._value("hold_outcomes_total", {"outcome": HoldOutcome.WON.value}),
            lost=self._value("hold_outcomes_total", {"outcome": HoldOutcome.LOST.value}),
            client_error=self._value("hold_outcomes_total", {"outcome": HoldOutcome.CLIENT_ERROR.value}),
            server_error=self._value("hold_outcomes_total", {"outcome": HoldOutcome.SERVER_ERROR.value}),
            unclassified=self._value("hold_unclassified_total"),
            iterations=self._value("iterations_total"),
            dropped=self._value("dropped_iterations_total"),
            interrupted=self._value("interrupted_iterations_total"),
            http_reqs=self._sum_over_steps("http_reqs_total"),
            http_req_failed=self._sum_over_steps("http_req_failed_total"),
            setup_failed=bool(self._value("setup_failed")),
            aborts={
                step: count
                for step in ABORT_STEPS
                if (count := self._value("actor_aborts_total", {"step": step}))
            },
        )


def start_metrics_server(aggregator: OutcomeAggregator, port: int) -> None:
    """Expose the run's registry for scraping while the run is in progress."""
    start_http_server(port, registry=aggregator.registry)
