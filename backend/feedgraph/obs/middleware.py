"""ASGI middleware for metrics and structured request logs."""

from __future__ import annotations

import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from feedgraph.obs import logging as obs_logging
from feedgraph.obs import metrics
from feedgraph.settings import settings


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	if route and getattr(route, "path", None):
		return route.path  # type: ignore[return-value]
	return request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Time each relationship request and log it against the viewer that made it."""

	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("feedgraph.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled or not self._enabled:
			return await call_next(request)

		request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id") or str(uuid4())
		request.state.request_id = request_id
		with obs_logging.log_context(request_id=request_id, channel="http"):
			start = time.perf_counter()
			status_code = 500
			response: Optional[Response] = None
			try:
				response = await call_next(request)
				status_code = response.status_code
			except Exception:
				self._logger.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
				raise
			finally:
				elapsed_seconds = time.perf_counter() - start
				route_template = _route_template(request)
				metrics.observe_request(route_template, request.method, status_code, elapsed_seconds)
				# The viewer is resolved inside the endpoint task and handed back on request.state
				self._logger.info(
					"http_request",
					extra={
						"route": route_template,
						"method": request.method,
						"status": status_code,
						"viewer_id": getattr(request.state, "viewer_id", None),
						"latency_ms": round(elapsed_seconds * 1000, 3),
					},
				)

		if "X-Request-Id" not in response.headers:
			response.headers["X-Request-Id"] = request_id
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
