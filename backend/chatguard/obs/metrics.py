"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"chatguard_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"chatguard_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

URL_CHECKS = Counter(
	"chatguard_url_checks_total",
	"URLs scored by the moderation pipeline",
	["verdict", "source"],
)

URL_CHECK_LATENCY = Histogram(
	"chatguard_url_check_latency_seconds",
	"Latency of a single URL check including external lookups",
	buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 1.5, 2.5, 5.0),
)

DEPENDENCY_CALLS = Counter(
	"chatguard_dependency_calls_total",
	"Guarded external dependency calls by outcome",
	["dependency", "outcome"],
)

DEPENDENCY_CIRCUIT_OPEN = Gauge(
	"chatguard_dependency_circuit_open",
	"1 while the circuit breaker for a dependency is open",
	["dependency"],
)

BLOCKED_URL_WRITES = Counter(
	"chatguard_blocked_url_writes_total",
	"Blocked URL cache writes by result",
	["result"],
)

BLOCKED_URL_QUEUE_DEPTH = Gauge(
	"chatguard_blocked_url_queue_depth",
	"Pending blocked URL cache writes",
)

DLP_DECISIONS = Counter(
	"chatguard_dlp_decisions_total",
	"DLP decisions by stage and action",
	["stage", "action"],
)

MESSAGES_SCREENED = Counter(
	"chatguard_messages_screened_total",
	"Chat messages screened by outcome",
	["outcome"],
)

POSTGRES_UP = Gauge(
	"chatguard_postgres_up",
	"Postgres readiness (1 healthy, 0 unhealthy)",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def observe_url_check(verdict: str, source: str, elapsed_seconds: float | None = None) -> None:
	URL_CHECKS.labels(verdict=verdict, source=source).inc()
	if elapsed_seconds is not None:
		URL_CHECK_LATENCY.observe(elapsed_seconds)


def inc_dependency_call(dependency: str, outcome: str) -> None:
	DEPENDENCY_CALLS.labels(dependency=dependency, outcome=outcome).inc()


def set_circuit_open(dependency: str, is_open: bool) -> None:
	DEPENDENCY_CIRCUIT_OPEN.labels(dependency=dependency).set(1 if is_open else 0)


def inc_blocked_url_write(result: str) -> None:
	BLOCKED_URL_WRITES.labels(result=result).inc()


def set_blocked_url_queue_depth(depth: int) -> None:
	BLOCKED_URL_QUEUE_DEPTH.set(depth)


def inc_dlp_decision(stage: str, action: str) -> None:
	DLP_DECISIONS.labels(stage=stage, action=action).inc()


def inc_message_screened(outcome: str) -> None:
	MESSAGES_SCREENED.labels(outcome=outcome).inc()


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
