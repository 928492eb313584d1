"""Structured JSON logs carrying the viewer and transport of each operation.

Relationship engine logs are read per viewer: every line emitted while serving
an HTTP request or a Socket.IO event carries the request id, the channel it
arrived on and, once known, the viewer id. Bucket member lists and id sets are
capped so a large friend graph cannot flood a log line.
"""

from __future__ import annotations

import contextlib
import json
import logging
import random
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from feedgraph.settings import settings

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("obs_request_id", default=None)
_VIEWER_ID: ContextVar[Optional[str]] = ContextVar("obs_viewer_id", default=None)
_CHANNEL: ContextVar[Optional[str]] = ContextVar("obs_channel", default=None)
_SID: ContextVar[Optional[str]] = ContextVar("obs_sid", default=None)

_CONTEXT_FIELDS: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": _REQUEST_ID,
	"viewer_id": _VIEWER_ID,
	"channel": _CHANNEL,
	"sid": _SID,
}

_LOGGER_NAME = "feedgraph"

_SENSITIVE_KEYWORDS = (
	"token",
	"secret",
	"authorization",
	"password",
	"cookie",
	"email",
)

_MAX_STRING_LENGTH = 256
_MAX_IDS = 20

_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "taskName"}


@contextlib.contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
	"""Bind request_id, viewer_id, channel or sid for the enclosed block."""
	tokens = []
	for name, value in fields.items():
		if value is not None:
			var = _CONTEXT_FIELDS[name]
			tokens.append((var, var.set(value)))
	try:
		yield
	finally:
		for var, token in reversed(tokens):
			var.reset(token)


def bind_viewer(viewer_id: str) -> None:
	"""Attach the resolved viewer to the rest of the current task."""
	_VIEWER_ID.set(viewer_id)


def current_request_id() -> Optional[str]:
	return _REQUEST_ID.get()


def current_viewer_id() -> Optional[str]:
	return _VIEWER_ID.get()


def _cap_ids(values: list[Any]) -> list[Any]:
	if len(values) <= _MAX_IDS:
		return values
	return values[:_MAX_IDS] + [f"+{len(values) - _MAX_IDS} more"]


def _sanitize_value(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else f"{value[:_MAX_STRING_LENGTH]}…"
	if isinstance(value, dict):
		return {str(key): _sanitize_field(str(key), nested) for key, nested in value.items()}
	if isinstance(value, (set, frozenset)):
		# id sets log in a stable order
		return _cap_ids(sorted((_sanitize_value(item) for item in value), key=str))
	if isinstance(value, (list, tuple)):
		return _cap_ids([_sanitize_value(item) for item in value])
	return value


def _sanitize_field(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS):
		return "[redacted]"
	return _sanitize_value(value)


class JSONLogFormatter(logging.Formatter):
	"""Emit logs as JSON objects with structured fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
		payload: Dict[str, object] = {
			"ts": timestamp,
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for name, var in _CONTEXT_FIELDS.items():
			value = var.get()
			if value:
				payload[name] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _RESERVED_ATTRS or key in payload:
				continue
			payload[key] = _sanitize_field(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Randomly sample info-level logs; audit events and warnings are always kept."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or getattr(record, "event", None):
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		if rate >= 1.0:
			return True
		return random.random() < rate


def configure_logging() -> logging.Logger:
	"""Configure root logger with JSON formatting and sampling."""
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
