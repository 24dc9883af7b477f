"""Spec viewer state: immutable values, pure transitions and a single owner.

``SpecViewerState`` and ``TryItDraft`` are never mutated. Every change goes
through a transition function that returns a new state; ``SpecSession``
holds the current one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from urllib.parse import urlsplit

from .config import Settings, get_settings
from .document import OpenApiParseError, format_openapi_error, parse_openapi_document, should_prefer_yaml
from .executors import ExecutionError, RequestExecutor
from .models import AuthSelection, BuildRequestInput, BuiltRequest, ExecutionResult
from .normalize import EndpointNavItem, NormalizedOpenApi, normalize_openapi_document
from .openapi import SpecFetchError, SpecLoader, collect_parameters, default_request_body, resolve_base_url
from .request_builder import build_try_it_request


logger = logging.getLogger(__name__)

SpecSourceType = Literal["url", "file", "text"]


@dataclass(frozen=True)
class SpecSource:
    type: SpecSourceType
    label: str


@dataclass(frozen=True)
class TryItDraft:
    base_url: str = ""
    path_params: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    header_params: Dict[str, str] = field(default_factory=dict)
    cookie_params: Dict[str, str] = field(default_factory=dict)
    body_text: str = ""
    content_type: Optional[str] = None
    accept_header: Optional[str] = None
    auth: AuthSelection = field(default_factory=AuthSelection)
    last_response: Optional[ExecutionResult] = None


@dataclass(frozen=True)
class SpecViewerState:
    source: Optional[SpecSource] = None
    error: Optional[str] = None
    document: Optional[Dict[str, Any]] = None
    raw_spec: Optional[str] = None
    catalog: Optional[NormalizedOpenApi] = None
    selected_endpoint_id: Optional[str] = None
    draft: TryItDraft = field(default_factory=TryItDraft)

    @property
    def selected_endpoint(self) -> Optional[EndpointNavItem]:
        if self.catalog is None or self.selected_endpoint_id is None:
            return None
        return self.catalog.endpoint_by_id.get(self.selected_endpoint_id)


def create_default_draft(
    document: Optional[Dict[str, Any]] = None, endpoint: Optional[EndpointNavItem] = None
) -> TryItDraft:
    if document is None:
        return TryItDraft()

    content_type: Optional[str] = None
    body_text = ""
    if endpoint is not None:
        content_type, body_text = default_request_body(document, endpoint)
    return TryItDraft(
        base_url=resolve_base_url(document, endpoint),
        content_type=content_type,
        body_text=body_text,
    )


def apply_loaded_spec(state: SpecViewerState, raw_spec: str, source: SpecSource) -> SpecViewerState:
    """Parse and publish a spec; raises ``OpenApiParseError`` leaving ``state`` untouched."""
    parsed = parse_openapi_document(
        raw_spec, source_label=source.label, prefer_yaml=should_prefer_yaml(source.label)
    )
    catalog = normalize_openapi_document(parsed.document)
    first = catalog.endpoints[0] if catalog.endpoints else None
    return SpecViewerState(
        source=source,
        error=None,
        document=parsed.document,
        raw_spec=raw_spec,
        catalog=catalog,
        selected_endpoint_id=first.id if first else None,
        draft=create_default_draft(parsed.document, first),
    )


def set_failure(
    state: SpecViewerState, message: str, source: Optional[SpecSource] = None
) -> SpecViewerState:
    return SpecViewerState(source=source or state.source, error=message)


def clear_spec(state: SpecViewerState) -> SpecViewerState:
    return SpecViewerState()


def select_endpoint(state: SpecViewerState, endpoint_id: Optional[str]) -> SpecViewerState:
    if endpoint_id is None:
        return replace(state, selected_endpoint_id=None, draft=create_default_draft(state.document))
    if state.catalog is None or endpoint_id not in state.catalog.endpoint_by_id:
        return state
    endpoint = state.catalog.endpoint_by_id[endpoint_id]
    return replace(
        state,
        selected_endpoint_id=endpoint_id,
        draft=create_default_draft(state.document, endpoint),
    )


def update_draft(state: SpecViewerState, **changes: Any) -> SpecViewerState:
    return replace(state, draft=replace(state.draft, **changes))


def record_response(state: SpecViewerState, result: ExecutionResult) -> SpecViewerState:
    return update_draft(state, last_response=result)


def clear_response(state: SpecViewerState) -> SpecViewerState:
    return update_draft(state, last_response=None)


class SpecSession:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        loader: Optional[SpecLoader] = None,
        executor: Optional[RequestExecutor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.loader = loader or SpecLoader(
            proxy_base_url=self.settings.proxy_base_url,
            current_origin=self.settings.current_origin,
            timeout_seconds=self.settings.spec_fetch_timeout_seconds,
        )
        self.executor = executor or RequestExecutor(
            proxy_base_url=self.settings.proxy_base_url,
            current_origin=self.settings.current_origin,
        )
        self.state = SpecViewerState()

    def load_from_text(
        self, raw_spec: str, label: str = "input", source_type: SpecSourceType = "text"
    ) -> SpecViewerState:
        source = SpecSource(type=source_type, label=label)
        try:
            self.state = apply_loaded_spec(self.state, raw_spec, source)
        except OpenApiParseError as exc:
            logger.warning("Failed to load spec from %s: %s", label, format_openapi_error(exc))
            self.state = set_failure(self.state, format_openapi_error(exc), source)
        return self.state

    def load_from_file(self, path: Path) -> SpecViewerState:
        source = SpecSource(type="file", label=path.name)
        try:
            raw_spec = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.state = set_failure(self.state, str(exc), source)
            return self.state
        return self.load_from_text(raw_spec, label=path.name, source_type="file")

    async def load_from_url(self, url_input: str) -> SpecViewerState:
        trimmed = url_input.strip()
        if not trimmed:
            self.state = set_failure(self.state, "Enter a spec URL to load.")
            return self.state

        parts = urlsplit(trimmed)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            self.state = set_failure(self.state, f'"{trimmed}" is not a valid URL.')
            return self.state

        source = SpecSource(type="url", label=trimmed)
        try:
            fetched = await self.loader.fetch(trimmed)
        except SpecFetchError as exc:
            self.state = set_failure(self.state, exc.message, source)
            return self.state
        return self.load_from_text(fetched.content, label=trimmed, source_type="url")

    def clear(self) -> SpecViewerState:
        self.state = clear_spec(self.state)
        return self.state

    def select(self, endpoint_id: Optional[str]) -> SpecViewerState:
        self.state = select_endpoint(self.state, endpoint_id)
        return self.state

    def update_draft(self, **changes: Any) -> SpecViewerState:
        self.state = update_draft(self.state, **changes)
        return self.state

    def build_request(self) -> BuiltRequest:
        endpoint = self.state.selected_endpoint
        if endpoint is None or self.state.document is None:
            raise ExecutionError(
                "validation",
                "Select an endpoint before sending a request.",
                issues=["Select an endpoint before sending a request."],
            )

        draft = self.state.draft
        return build_try_it_request(
            BuildRequestInput(
                method=endpoint.method,
                path_template=endpoint.path,
                base_url=draft.base_url,
                parameters=collect_parameters(self.state.document, endpoint),
                path_params=dict(draft.path_params),
                query_params=dict(draft.query_params),
                header_params=dict(draft.header_params),
                cookie_params=dict(draft.cookie_params),
                body_text=draft.body_text,
                content_type=draft.content_type,
                accept_header=draft.accept_header,
                auth=draft.auth,
            ),
            origin=self.settings.current_origin,
        )

    async def send(self, timeout_ms: Optional[int] = None) -> ExecutionResult:
        request = self.build_request()
        document = self.state.document
        endpoint_id = self.state.selected_endpoint_id
        result = await self.executor.execute(
            request, timeout_ms if timeout_ms is not None else self.settings.default_timeout_ms
        )
        # The selection may have moved on while the request was in flight.
        if self.state.document is document and self.state.selected_endpoint_id == endpoint_id:
            self.state = record_response(self.state, result)
        return result
