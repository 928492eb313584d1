"""ASGI entrypoint: FastAPI routes plus the Socket.IO ``/social`` namespace."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedgraph.api import ops, social
from feedgraph.api.errors import install_error_handlers
from feedgraph.domain.social.container import SocialContainer
from feedgraph.domain.social.sockets import SocialNamespace
from feedgraph.obs import init as obs_init
from feedgraph.settings import settings

container = SocialContainer.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		yield
	finally:
		await app.state.social.close()


app = FastAPI(title="Feedgraph Relationships", lifespan=lifespan)
app.state.social = container
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
social_namespace = SocialNamespace(container)
sio.register_namespace(social_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(social.router, tags=["social"])
app.include_router(ops.router, tags=["ops"])
