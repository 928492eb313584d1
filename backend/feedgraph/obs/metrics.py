"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"feedgraph_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"feedgraph_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"feedgraph_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"feedgraph_socketio_events_total",
	"Socket.IO events emitted or received",
	["namespace", "event"],
)

FRIENDSHIP_TRANSITIONS = Counter(
	"feedgraph_friendship_transitions_total",
	"Friendship state machine operations by outcome",
	["action", "result"],
)

BLOCKS_TOTAL = Counter(
	"feedgraph_blocks_total",
	"Block and unblock operations",
	["action"],
)

VISIBILITY_DECISIONS = Counter(
	"feedgraph_visibility_decisions_total",
	"Content visibility decisions",
	["result", "reason"],
)

VIEW_RECOMPUTES = Counter(
	"feedgraph_relationship_view_recomputes_total",
	"Relationship bucket recomputations",
	["changed"],
)

VIEW_TRANSIENT_OVERLAPS = Counter(
	"feedgraph_relationship_view_overlaps_total",
	"Users seen in more than one observer snapshot during a recompute",
	["resolved_to"],
)

STORE_ERRORS = Counter(
	"feedgraph_store_errors_total",
	"Document store failures surfaced as StoreUnavailable",
	["operation"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_friendship(action: str, result: str = "ok") -> None:
	FRIENDSHIP_TRANSITIONS.labels(action=action, result=result).inc()


def inc_block(action: str) -> None:
	BLOCKS_TOTAL.labels(action=action).inc()


def inc_visibility(allowed: bool, reason: str) -> None:
	VISIBILITY_DECISIONS.labels(result="allow" if allowed else "deny", reason=reason).inc()


def inc_view_recompute(changed: bool) -> None:
	VIEW_RECOMPUTES.labels(changed="yes" if changed else "no").inc()


def inc_view_overlap(resolved_to: str, count: int = 1) -> None:
	VIEW_TRANSIENT_OVERLAPS.labels(resolved_to=resolved_to).inc(count)


def inc_store_error(operation: str) -> None:
	STORE_ERRORS.labels(operation=operation).inc()
