"""Execution layer for built Try It requests.

A request is sent directly first. When that fails in a way that looks like
a cross-origin block, it is retried exactly once through the trusted HTTP
proxy. Both paths produce the same ``ExecutionResult``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Dict, Literal, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from pydantic import ValidationError

from .logging import redact_headers
from .models import BuiltRequest, ExecutionResult, ProxyResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
PROXY_PATH = "/api/http/proxy"

ErrorKind = Literal["validation", "timeout", "network", "cors"]

_DEFAULT_PORTS = {"http": 80, "https": 443}


class ExecutionError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[str] = None,
        issues: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.issues = issues or []


class ProxyError(Exception):
    pass


def origin_of(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    scheme = parts.scheme.lower()
    origin = f"{scheme}://{parts.hostname.lower()}"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        origin = f"{origin}:{port}"
    return origin


def is_cross_origin(url: str, current_origin: Optional[str]) -> bool:
    if not current_origin:
        return False
    own = origin_of(current_origin)
    target = origin_of(urljoin(current_origin, url))
    if own is None or target is None:
        return False
    return target != own


def clamp_timeout(timeout_ms: Any) -> int:
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        return DEFAULT_TIMEOUT_MS
    if not math.isfinite(timeout_ms) or timeout_ms <= 0:
        return DEFAULT_TIMEOUT_MS
    return max(1, math.floor(timeout_ms))


def build_proxy_request_body(request: BuiltRequest) -> Dict[str, Any]:
    if request.curl_body is None:
        return {"kind": "none"}
    if request.curl_body.kind == "raw":
        return {"kind": "raw", "value": request.curl_body.value}
    return {
        "kind": "multipart",
        "entries": [{"name": entry.name, "value": entry.value} for entry in request.curl_body.entries],
    }


class RequestExecutor:
    """Send built requests, falling back to the proxy on cross-origin failures.

    ``transport`` is the I/O capability used for every outbound call and
    ``current_origin`` is the origin of the host the engine runs in; with no
    origin known, no failure is treated as cross-origin.
    """

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:9090",
        current_origin: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.proxy_base_url = proxy_base_url.rstrip("/")
        self.current_origin = current_origin
        self.transport = transport

    async def execute(
        self, request: BuiltRequest, timeout_ms: Any = DEFAULT_TIMEOUT_MS
    ) -> ExecutionResult:
        resolved_timeout = clamp_timeout(timeout_ms)
        logger.info(
            "Executing %s %s headers=%s timeout=%sms",
            request.method,
            request.url,
            redact_headers(request.headers),
            resolved_timeout,
        )

        try:
            return await self._execute_direct(request, resolved_timeout)
        except ExecutionError:
            raise
        except httpx.HTTPError as exc:
            direct_message = _describe(exc)
            if not self._is_likely_cors(exc, request.url):
                raise ExecutionError(
                    "network",
                    "Network request failed before a response was received.",
                    details=direct_message,
                ) from exc

            logger.warning(
                "Direct request to %s failed (%s). Retrying through proxy.", request.url, direct_message
            )
            try:
                return await self._execute_via_proxy(request, resolved_timeout)
            except (ProxyError, httpx.HTTPError) as proxy_exc:
                raise ExecutionError(
                    "cors",
                    "The request was blocked before a response was received.",
                    details=(
                        f"Likely CORS issue. Direct request failed ({direct_message}), "
                        f"and proxy retry failed: {_describe(proxy_exc)}"
                    ),
                ) from proxy_exc
        except Exception as exc:
            # e.g. UnicodeEncodeError for non-ASCII header values
            logger.warning("Request to %s failed before sending: %s", request.url, exc)
            raise ExecutionError(
                "network",
                "Network request failed before a response was received.",
                details=_describe(exc),
            ) from exc

    def _is_likely_cors(self, error: httpx.HTTPError, url: str) -> bool:
        if not isinstance(error, httpx.TransportError) or isinstance(error, httpx.TimeoutException):
            return False
        return is_cross_origin(url, self.current_origin)

    async def _execute_direct(self, request: BuiltRequest, timeout_ms: int) -> ExecutionResult:
        started = time.perf_counter()
        async with httpx.AsyncClient(
            transport=self.transport, timeout=None, follow_redirects=True
        ) as client:
            try:
                response = await asyncio.wait_for(
                    client.request(request.method, request.url, **request.transport_kwargs()),
                    timeout=timeout_ms / 1000,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                raise ExecutionError(
                    "timeout",
                    f"Request timed out after {timeout_ms} ms. Increase timeout and try again.",
                ) from exc

        duration_ms = max(0, round((time.perf_counter() - started) * 1000))
        logger.info("Received %s from %s in %sms", response.status_code, request.url, duration_ms)
        return ExecutionResult(
            method=request.method,
            url=request.url,
            status=response.status_code,
            status_text=response.reason_phrase,
            duration_ms=duration_ms,
            headers=dict(response.headers),
            body_text=response.text,
            content_type=response.headers.get("content-type"),
        )

    async def _execute_via_proxy(self, request: BuiltRequest, timeout_ms: int) -> ExecutionResult:
        payload = {
            "method": request.method,
            "url": request.url,
            "headers": request.headers,
            "timeoutMs": timeout_ms,
            "body": build_proxy_request_body(request),
        }
        # The proxy enforces timeoutMs upstream; leave it room to report a 504.
        async with httpx.AsyncClient(
            transport=self.transport, timeout=timeout_ms / 1000 + 5
        ) as client:
            response = await client.post(f"{self.proxy_base_url}{PROXY_PATH}", json=payload)

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            error = data.get("error") if isinstance(data, dict) else None
            raise ProxyError(
                error
                if isinstance(error, str)
                else f"Proxy request failed (HTTP {response.status_code} {response.reason_phrase})."
            )

        try:
            return ProxyResponse.model_validate(data).to_result()
        except ValidationError as exc:
            raise ProxyError("Proxy returned an invalid response.") from exc


def _describe(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__
