"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from feedgraph.api.social import get_container
from feedgraph.domain.social.container import SocialContainer
from feedgraph.infra.docstore import StoreConnectionError
from feedgraph.settings import settings

router = APIRouter(prefix="", tags=["ops"])


async def require_metrics_access() -> None:
	if not settings.obs_metrics_public:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(social: SocialContainer = Depends(get_container)) -> Response:
	try:
		ok = await social.documents.ping()
	except StoreConnectionError:
		ok = False
	payload = {
		"status": "ok" if ok else "degraded",
		"checks": {"store": {"ok": ok, "backend": settings.store_backend}},
	}
	return JSONResponse(content=payload, status_code=200 if ok else 503)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
