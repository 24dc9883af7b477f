"""HTTP server hosting the Try It proxy routes."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import Settings
from .proxy_api import mount_proxy_api

logger = logging.getLogger(__name__)


def build_app(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Starlette:
    app = Starlette()
    _attach_cors(app)
    _attach_healthcheck(app, settings)
    mount_proxy_api(app, settings, transport=transport)
    logger.info("Proxy routes mounted for %s", settings.service_name)
    return app


def _attach_healthcheck(app: Starlette, settings: Settings) -> None:
    async def healthcheck(_request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "service": settings.service_name})

    app.add_route("/health", healthcheck, methods=["GET"])


def _attach_cors(app: Starlette) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
