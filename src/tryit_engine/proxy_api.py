"""Proxy routes used when a direct request or spec fetch is blocked by CORS."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import Settings
from .logging import redact_headers
from .models import ProxyBodyMultipart, ProxyBodyRaw, ProxyRequest


logger = logging.getLogger(__name__)

DEFAULT_PROXY_TIMEOUT_MS = 30_000
_DROPPED_HEADERS = {"host", "content-length"}


def clamp_proxy_timeout(timeout_ms: Optional[float], max_timeout_ms: int) -> int:
    if timeout_ms is None or not math.isfinite(timeout_ms) or not timeout_ms:
        return DEFAULT_PROXY_TIMEOUT_MS
    return min(max(math.floor(timeout_ms), 1), max_timeout_ms)


def mount_proxy_api(
    app, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> None:  # type: ignore[no-untyped-def]
    async def http_proxy(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
            body = ProxyRequest.model_validate(payload)
        except ValidationError as exc:
            return JSONResponse(
                {"error": "Invalid payload", "details": json.loads(exc.json())}, status_code=400
            )
        except ValueError:
            return JSONResponse({"error": "Request body must be a valid JSON object."}, status_code=400)

        method = (body.method or "").strip().upper()
        url_input = (body.url or "").strip()
        timeout_ms = clamp_proxy_timeout(body.timeout_ms, settings.proxy_max_timeout_ms)

        if not method:
            return JSONResponse({"error": "Missing required field: method"}, status_code=400)
        if not url_input:
            return JSONResponse({"error": "Missing required field: url"}, status_code=400)
        url_error = _check_url(url_input, settings.max_url_length)
        if url_error:
            return JSONResponse({"error": url_error}, status_code=400)

        headers = {
            name: value
            for name, value in body.headers.items()
            if name.strip() and name.lower() not in _DROPPED_HEADERS
        }
        content: Optional[str] = None
        files: Optional[List[Tuple[str, Tuple[None, str]]]] = None
        if isinstance(body.body, ProxyBodyRaw):
            content = body.body.value
        elif isinstance(body.body, ProxyBodyMultipart):
            files = [
                (entry.name, (None, entry.value)) for entry in body.body.entries if entry.name.strip()
            ]
            # httpx writes its own multipart boundary.
            headers = {name: value for name, value in headers.items() if name.lower() != "content-type"}

        logger.info(
            "Proxying %s %s headers=%s timeout=%sms", method, url_input, redact_headers(headers), timeout_ms
        )
        started = asyncio.get_running_loop().time()
        try:
            async with httpx.AsyncClient(
                transport=transport, timeout=None, follow_redirects=True
            ) as client:
                upstream = await asyncio.wait_for(
                    client.request(method, url_input, headers=headers, content=content, files=files),
                    timeout=timeout_ms / 1000,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return JSONResponse(
                {"error": f"Proxy request timed out after {timeout_ms} ms."}, status_code=504
            )
        except httpx.HTTPError as exc:
            logger.warning("Proxy upstream failure for %s: %s", url_input, exc)
            return JSONResponse({"error": f"Proxy request failed: {exc}"}, status_code=502)
        except Exception as exc:
            logger.warning("Proxy request for %s could not be sent: %s", url_input, exc)
            return JSONResponse({"error": f"Proxy request failed: {exc}"}, status_code=502)

        result: Dict[str, Any] = {
            "method": method,
            "url": url_input,
            "status": upstream.status_code,
            "statusText": upstream.reason_phrase,
            "durationMs": max(0, round((asyncio.get_running_loop().time() - started) * 1000)),
            "headers": dict(upstream.headers),
            "bodyText": upstream.text,
        }
        content_type = upstream.headers.get("content-type")
        if content_type is not None:
            result["contentType"] = content_type
        return JSONResponse(result)

    async def fetch_spec(request: Request) -> JSONResponse:
        url_input = (request.query_params.get("url") or "").strip()
        if not url_input:
            return JSONResponse({"error": "Missing required query parameter: url"}, status_code=400)
        url_error = _check_url(url_input, settings.max_url_length)
        if url_error:
            return JSONResponse({"error": url_error}, status_code=400)

        timeout_seconds = settings.spec_fetch_timeout_seconds
        try:
            async with httpx.AsyncClient(
                transport=transport, timeout=None, follow_redirects=True
            ) as client:
                response = await asyncio.wait_for(client.get(url_input), timeout=timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return JSONResponse(
                {"error": f"Fetching spec timed out after {round(timeout_seconds * 1000)}ms."},
                status_code=504,
            )
        except httpx.HTTPError as exc:
            logger.warning("Spec fetch failed for %s: %s", url_input, exc)
            return JSONResponse({"error": f"Failed to fetch upstream spec: {exc}"}, status_code=502)
        except Exception as exc:
            logger.warning("Spec fetch for %s could not be sent: %s", url_input, exc)
            return JSONResponse({"error": f"Failed to fetch upstream spec: {exc}"}, status_code=502)

        if not response.is_success:
            return JSONResponse(
                {
                    "error": "Upstream responded with HTTP "
                    f"{response.status_code} {response.reason_phrase}."
                },
                status_code=502,
            )

        content = response.text
        if not content.strip():
            return JSONResponse({"error": "Fetched spec content is empty."}, status_code=422)

        result: Dict[str, Any] = {"url": url_input, "content": content}
        content_type = response.headers.get("content-type")
        if content_type is not None:
            result["contentType"] = content_type
        return JSONResponse(result)

    app.add_route("/api/http/proxy", http_proxy, methods=["POST"])
    app.add_route("/api/spec/fetch", fetch_spec, methods=["GET"])


def _check_url(url_input: str, max_length: int) -> Optional[str]:
    if len(url_input) > max_length:
        return "URL is too long."
    try:
        parts = urlsplit(url_input)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return f'Invalid URL: "{url_input}"'
    if not parts.scheme or not parts.netloc:
        return f'Invalid URL: "{url_input}"'
    if parts.scheme not in ("http", "https"):
        return "Only http and https URLs are supported."
    return None
