"""Assemble a validated, ready-to-send request from a Try It draft.

Validation is additive: every problem found while building is collected
so the caller can show all of them at once. Nothing is returned unless
the issue list is empty.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import SplitResult, parse_qsl, quote, urlencode, urljoin, urlsplit, urlunsplit

import httpx

from .examples import form_text, normalize_content_type
from .executors import ExecutionError
from .models import (
    AuthSelection,
    BuildRequestInput,
    BuiltRequest,
    CurlBody,
    CurlFormEntry,
    ParameterDefinition,
)


logger = logging.getLogger(__name__)

_PATH_TOKEN = re.compile(r"\{([^}]+)\}")
_MULTIPART = "multipart/form-data"
_FORM_URLENCODED = "application/x-www-form-urlencoded"
_FORBIDDEN_HOST_CHARS = frozenset(" #%/:<>?@[\\]^|")


def build_try_it_request(
    request_input: BuildRequestInput, origin: Optional[str] = None
) -> BuiltRequest:
    issues: List[str] = []
    method = (request_input.method or "").strip().upper() or "GET"
    base_url = request_input.base_url.strip()

    if not base_url:
        issues.append("Base URL is required before sending a request.")

    _validate_required_parameters(
        request_input.parameters, request_input.query_params, request_input.header_params, issues
    )
    resolved_path = _resolve_path(request_input.path_template, request_input.path_params, issues)

    base = _parse_base_url(base_url, origin)
    if base_url and base is None:
        issues.append(f'"{base_url}" is not a valid base URL.')

    headers: Dict[str, str] = {}
    query: Dict[str, str] = {}
    _add_query_parameters(query, request_input.query_params)
    _add_header_parameters(headers, request_input.header_params)
    _add_cookie_header(headers, request_input.cookie_params)
    _apply_auth(request_input.auth or AuthSelection(), headers, query, issues)

    normalized_type = normalize_content_type(request_input.content_type)
    content: Optional[str] = None
    form_fields: Optional[List[Tuple[str, Tuple[None, str]]]] = None
    curl_body: Optional[CurlBody] = None
    if request_input.body_text.strip():
        content, form_fields, curl_body = _encode_body(
            request_input.body_text, normalized_type, issues
        )
        if normalized_type and normalized_type != _MULTIPART:
            _set_header(headers, "Content-Type", request_input.content_type or normalized_type)

    accept = (request_input.accept_header or "").strip()
    if accept:
        _set_header(headers, "Accept", accept)

    if issues or base is None:
        logger.debug("Request validation failed for %s %s: %s", method, request_input.path_template, issues)
        raise ExecutionError("validation", issues[0], issues=issues)

    return BuiltRequest(
        method=method,
        url=_build_final_url(base, resolved_path, query),
        headers=headers,
        content=content,
        form_fields=form_fields,
        curl_body=curl_body,
    )


def encode_uri_component(value: str) -> str:
    return quote(value, safe="!~*'()")


def _resolve_path(path_template: str, path_params: Dict[str, str], issues: List[str]) -> str:
    resolved = path_template
    seen = set()

    for match in _PATH_TOKEN.finditer(path_template):
        name = match.group(1).strip()
        if not name or name in seen:
            continue
        seen.add(name)

        provided = path_params.get(name)
        if not provided or not provided.strip():
            issues.append(f'Path parameter "{name}" is required.')
            continue
        resolved = resolved.replace(match.group(0), encode_uri_component(provided.strip()))

    if _PATH_TOKEN.search(resolved):
        issues.append(
            "Path parameter substitution is incomplete. Fill all template values before sending."
        )
    return resolved


def _validate_required_parameters(
    parameters: List[ParameterDefinition],
    query_params: Dict[str, str],
    header_params: Dict[str, str],
    issues: List[str],
) -> None:
    for parameter in parameters:
        if not parameter.required:
            continue
        if parameter.location == "query":
            value = query_params.get(parameter.name)
            if not value or not value.strip():
                issues.append(f'Query parameter "{parameter.name}" is required.')
        elif parameter.location == "header":
            value = header_params.get(parameter.name)
            if not value or not value.strip():
                issues.append(f'Header parameter "{parameter.name}" is required.')


def _parse_base_url(base_url: str, origin: Optional[str]) -> Optional[SplitResult]:
    if not base_url:
        return None

    candidates = [base_url]
    if origin:
        candidates.append(urljoin(origin, base_url))

    for candidate in candidates:
        try:
            parts = urlsplit(candidate)
            parts.port  # raises ValueError on a malformed port
            httpx.URL(candidate)
        except (ValueError, httpx.InvalidURL):
            continue
        if parts.scheme in ("http", "https") and _valid_host(parts):
            return parts
    return None


def _valid_host(parts: SplitResult) -> bool:
    hostname = parts.hostname
    if not hostname:
        return False
    if "[" in parts.netloc:
        return True
    return not any(char in _FORBIDDEN_HOST_CHARS or not char.isprintable() for char in hostname)


def _build_final_url(base: SplitResult, resolved_path: str, query: Dict[str, str]) -> str:
    base_path = "" if base.path in ("", "/") else base.path.rstrip("/")
    operation_path = resolved_path if resolved_path.startswith("/") else f"/{resolved_path}"
    path = f"{base_path}{operation_path}" or "/"
    return urlunsplit((base.scheme, base.netloc, path, urlencode(list(query.items())), ""))


def _add_query_parameters(query: Dict[str, str], query_params: Dict[str, str]) -> None:
    for key, value in query_params.items():
        if value.strip():
            query[key] = value.strip()


def _add_header_parameters(headers: Dict[str, str], header_params: Dict[str, str]) -> None:
    for key, value in header_params.items():
        if not value.strip():
            continue
        # Content-Type and Cookie come from the body and cookie helpers.
        if key.strip().lower() in ("content-type", "cookie"):
            continue
        _set_header(headers, key.strip(), value.strip())


def _add_cookie_header(headers: Dict[str, str], cookie_params: Dict[str, str]) -> None:
    entries = [
        (name.strip(), value.strip())
        for name, value in cookie_params.items()
        if name.strip() and value.strip()
    ]
    if not entries:
        return
    _set_header(
        headers,
        "Cookie",
        "; ".join(f"{encode_uri_component(name)}={encode_uri_component(value)}" for name, value in entries),
    )


def _apply_auth(
    auth: AuthSelection, headers: Dict[str, str], query: Dict[str, str], issues: List[str]
) -> None:
    if auth.kind == "bearer":
        token = (auth.bearer_token or "").strip()
        if not token:
            issues.append("Bearer token is required for the selected auth mode.")
            return
        _set_header(headers, "Authorization", f"Bearer {token}")
    elif auth.kind == "basic":
        username = auth.username or ""
        password = auth.password or ""
        if not username.strip() and not password.strip():
            issues.append("Username or password is required for Basic auth.")
            return
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        _set_header(headers, "Authorization", f"Basic {encoded}")
    elif auth.kind == "apiKey":
        key_name = (auth.api_key_name or "").strip()
        key_value = (auth.api_key_value or "").strip()
        if not key_name:
            issues.append("API key name is missing for the selected auth mode.")
            return
        if not key_value:
            issues.append("API key value is required for the selected auth mode.")
            return
        if auth.api_key_in == "header":
            _set_header(headers, key_name, key_value)
        elif auth.api_key_in == "query":
            query[key_name] = key_value
        else:
            issues.append("API key auth must target either header or query.")


def _encode_body(
    body_text: str, normalized_type: str, issues: List[str]
) -> Tuple[Optional[str], Optional[List[Tuple[str, Tuple[None, str]]]], CurlBody]:
    raw = (body_text, None, CurlBody(kind="raw", value=body_text))

    if not normalized_type:
        return raw

    if normalized_type == "application/json" or normalized_type.endswith("+json"):
        try:
            parsed = json.loads(body_text)
        except ValueError as exc:
            issues.append(f"Request body must be valid JSON: {exc}")
            return raw
        encoded = json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)
        return encoded, None, CurlBody(kind="raw", value=encoded)

    if normalized_type == _FORM_URLENCODED:
        record = parse_form_like_input(body_text)
        if record is None:
            issues.append(
                "Form URL-encoded request body must be a JSON object, query string, or key/value lines."
            )
            return raw
        encoded = urlencode([(key, form_text(value)) for key, value in record.items()])
        return encoded, None, CurlBody(kind="raw", value=encoded)

    if normalized_type == _MULTIPART:
        record = parse_form_like_input(body_text)
        if record is None:
            issues.append("Multipart request body must be a JSON object or key/value lines.")
            return raw
        entries = tuple(CurlFormEntry(name=name, value=form_text(value)) for name, value in record.items())
        form_fields = [(entry.name, (None, entry.value)) for entry in entries]
        return None, form_fields, CurlBody(kind="multipart", entries=entries)

    return raw


def parse_form_like_input(value: str) -> Optional[Dict[str, Any]]:
    """Read form fields from a JSON object, a query string or key/value lines."""
    trimmed = value.strip()
    if not trimmed:
        return {}

    try:
        parsed = json.loads(trimmed)
    except ValueError:
        pass
    else:
        return parsed if isinstance(parsed, dict) else None

    if "\n" not in trimmed and "=" in trimmed:
        pairs = parse_qsl(trimmed, keep_blank_values=True)
        if pairs:
            return dict(pairs)

    entries: Dict[str, Any] = {}
    for line in trimmed.splitlines():
        line = line.strip()
        if not line:
            continue
        separator = "=" if "=" in line else ":"
        index = line.find(separator)
        if index <= 0:
            continue
        key = line[:index].strip()
        if key:
            entries[key] = line[index + 1 :].strip()
    return entries or None


def _set_header(headers: Dict[str, str], name: str, value: str) -> None:
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value
