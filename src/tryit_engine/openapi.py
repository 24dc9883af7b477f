"""OpenAPI spec loader and operation inspection."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from .examples import MISSING, generate_schema_example, pick_media_type_example, stringify_example
from .executors import is_cross_origin
from .models import AuthOption, ParameterDefinition, SpecFetchResponse
from .normalize import EndpointNavItem
from .schema import dereference


logger = logging.getLogger(__name__)

_PARAM_LOCATIONS = ("path", "query", "header", "cookie")


class SpecFetchError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class FetchedSpec:
    url: str
    content: str
    content_type: Optional[str] = None
    via_proxy: bool = False


class SpecLoader:
    def __init__(
        self,
        proxy_base_url: str,
        current_origin: Optional[str] = None,
        timeout_seconds: float = 15,
        cache_seconds: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.proxy_base_url = proxy_base_url.rstrip("/")
        self.current_origin = current_origin
        self.timeout_seconds = timeout_seconds
        self.cache_seconds = cache_seconds
        self.transport = transport
        self._cache: Dict[str, Tuple[float, FetchedSpec]] = {}

    async def fetch(self, url: str) -> FetchedSpec:
        cached = self._cache.get(url)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            fetched = await self._fetch_direct(url)
        except SpecFetchError:
            raise
        except httpx.TransportError as exc:
            if isinstance(exc, httpx.TimeoutException) or not is_cross_origin(url, self.current_origin):
                raise SpecFetchError(f"Failed to load spec from URL: {exc}") from exc
            logger.info("Direct spec fetch failed (%s); retrying through proxy: %s", exc, url)
            fetched = await self._fetch_via_proxy(url)
        except Exception as exc:
            logger.warning("Failed to fetch OpenAPI spec: %s (%s)", url, exc)
            raise SpecFetchError(f"Failed to load spec from URL: {exc}") from exc

        if self.cache_seconds > 0:
            self._cache[url] = (time.time(), fetched)
        return fetched

    async def _fetch_direct(self, url: str) -> FetchedSpec:
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self.transport, follow_redirects=True
        ) as client:
            response = await client.get(url)
        if not response.is_success:
            logger.warning("Failed to fetch OpenAPI spec: %s (%s)", url, response.status_code)
            raise SpecFetchError(
                "Failed to load spec from URL "
                f"(HTTP {response.status_code} {response.reason_phrase}).",
                status_code=response.status_code,
            )
        return FetchedSpec(
            url=str(response.url),
            content=response.text,
            content_type=response.headers.get("content-type"),
        )

    async def _fetch_via_proxy(self, url: str) -> FetchedSpec:
        proxy_url = f"{self.proxy_base_url}/api/spec/fetch"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds + 5, transport=self.transport
            ) as client:
                response = await client.get(proxy_url, params={"url": url})
        except httpx.HTTPError as exc:
            raise SpecFetchError(f"Spec proxy request failed: {exc}") from exc

        payload = _json_or_none(response)
        if not response.is_success:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise SpecFetchError(
                error
                if isinstance(error, str)
                else f"Spec proxy failed (HTTP {response.status_code} {response.reason_phrase}).",
                status_code=response.status_code,
            )

        try:
            parsed = SpecFetchResponse.model_validate(payload)
        except ValidationError as exc:
            raise SpecFetchError("Spec proxy returned an invalid response.") from exc
        return FetchedSpec(
            url=parsed.url, content=parsed.content, content_type=parsed.content_type, via_proxy=True
        )


def get_operation(document: Dict[str, Any], endpoint: EndpointNavItem) -> Dict[str, Any]:
    path_item = document["paths"][endpoint.path]
    return path_item[endpoint.method_lower]


def collect_parameters(
    document: Dict[str, Any], endpoint: EndpointNavItem
) -> List[ParameterDefinition]:
    """Merge path-item and operation parameters, operation entries winning."""
    path_item = document["paths"][endpoint.path]
    operation = get_operation(document, endpoint)
    shared_parameters = path_item.get("parameters") or []
    operation_parameters = operation.get("parameters") or []

    merged: Dict[Tuple[str, str], ParameterDefinition] = {}
    for raw in [*shared_parameters, *operation_parameters]:
        parameter = dereference(raw, document)
        if not isinstance(parameter, dict):
            continue
        name = parameter.get("name")
        location = parameter.get("in")
        if not isinstance(name, str) or not name or location not in _PARAM_LOCATIONS:
            continue

        schema = dereference(parameter.get("schema"), document)
        merged[(name, location)] = ParameterDefinition(
            name=name,
            location=location,
            required=location == "path" or bool(parameter.get("required", False)),
            description=parameter.get("description") or "",
            schema=schema if isinstance(schema, dict) else None,
        )
    return list(merged.values())


def collect_auth_options(document: Dict[str, Any], endpoint: EndpointNavItem) -> List[AuthOption]:
    components = document.get("components") or {}
    schemes = components.get("securitySchemes") or {}
    if not isinstance(schemes, dict):
        return []

    operation = get_operation(document, endpoint)
    requirements = operation.get("security", document.get("security"))
    # `security: []` opts the operation out of authentication.
    if isinstance(requirements, list) and not requirements:
        return []
    if isinstance(requirements, list):
        names: List[str] = []
        for requirement in requirements:
            if isinstance(requirement, dict):
                names.extend(name for name in requirement if name not in names)
    else:
        names = list(schemes)

    options: List[AuthOption] = []
    for name in names:
        scheme = dereference(schemes.get(name), document)
        if not isinstance(scheme, dict):
            continue
        option = _auth_option(name, scheme)
        if option is not None:
            options.append(option)
    return options


def request_body_content_types(document: Dict[str, Any], endpoint: EndpointNavItem) -> List[str]:
    content = _request_body_content(document, endpoint)
    return list(content)


def default_request_body(
    document: Dict[str, Any],
    endpoint: EndpointNavItem,
    content_type: Optional[str] = None,
) -> Tuple[Optional[str], str]:
    content = _request_body_content(document, endpoint)
    if not content:
        return content_type, ""

    selected = content_type if content_type in content else next(iter(content))
    media_type = content.get(selected)
    example = pick_media_type_example(media_type)
    if example is MISSING and isinstance(media_type, dict) and "schema" in media_type:
        example = generate_schema_example(media_type["schema"], document)
    return selected, stringify_example(example, selected)


def resolve_base_url(document: Dict[str, Any], endpoint: Optional[EndpointNavItem] = None) -> str:
    candidates: List[Any] = []
    if endpoint is not None:
        path_item = document["paths"].get(endpoint.path) or {}
        candidates.append(get_operation(document, endpoint).get("servers"))
        candidates.append(path_item.get("servers"))
    candidates.append(document.get("servers"))

    for servers in candidates:
        if not isinstance(servers, list) or not servers:
            continue
        first = servers[0]
        if isinstance(first, dict) and isinstance(first.get("url"), str):
            return _expand_server_variables(first["url"], first.get("variables"))
    return ""


def _auth_option(name: str, scheme: Dict[str, Any]) -> Optional[AuthOption]:
    scheme_type = scheme.get("type")
    description = scheme.get("description") or ""

    if scheme_type == "http":
        http_scheme = str(scheme.get("scheme", "")).lower()
        if http_scheme == "bearer":
            label = f"{name} (Bearer {scheme['bearerFormat']})" if scheme.get("bearerFormat") else name
            return AuthOption(id=name, label=label, kind="bearer", description=description)
        if http_scheme == "basic":
            return AuthOption(id=name, label=name, kind="basic", description=description)
        return None

    if scheme_type == "apiKey" and scheme.get("in") in ("header", "query"):
        return AuthOption(
            id=name,
            label=name,
            kind="apiKey",
            description=description,
            api_key_name=scheme.get("name"),
            api_key_in=scheme["in"],
        )
    return None


def _request_body_content(document: Dict[str, Any], endpoint: EndpointNavItem) -> Dict[str, Any]:
    request_body = dereference(get_operation(document, endpoint).get("requestBody"), document)
    if not isinstance(request_body, dict):
        return {}
    content = request_body.get("content")
    return content if isinstance(content, dict) else {}


def _expand_server_variables(url: str, variables: Any) -> str:
    if not isinstance(variables, dict):
        return url
    for name, variable in variables.items():
        if isinstance(variable, dict) and "default" in variable:
            url = url.replace(f"{{{name}}}", str(variable["default"]))
    return url


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
