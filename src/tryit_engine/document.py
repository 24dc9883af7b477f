"""OpenAPI document parsing and structural validation.

Raw spec text is parsed as JSON or YAML (whichever the content suggests
first) and checked for the minimal OpenAPI 3.x shape before anything
downstream touches it. Syntax errors carry a best-effort line/column.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import yaml


logger = logging.getLogger(__name__)

SpecFormat = Literal["json", "yaml"]
ParseErrorKind = Literal["parse", "validation"]


class OpenApiParseError(Exception):
    def __init__(
        self,
        message: str,
        kind: ParseErrorKind,
        source_label: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.source_label = source_label
        self.line = line
        self.column = column


@dataclass(frozen=True)
class ParseResult:
    document: Dict[str, Any]
    format: SpecFormat


@dataclass(frozen=True)
class _Attempt:
    status: Literal["parsed", "parse_error", "validation_error"]
    document: Optional[Dict[str, Any]] = None
    error: Optional[OpenApiParseError] = None


_Strategy = Tuple[SpecFormat, Callable[[str, Optional[str]], Any]]


def parse_openapi_document(
    raw_spec: str,
    source_label: Optional[str] = None,
    prefer_yaml: bool = False,
) -> ParseResult:
    trimmed = raw_spec.strip()
    if not trimmed:
        raise OpenApiParseError(
            "Spec is empty. Provide JSON or YAML OpenAPI content.",
            kind="validation",
            source_label=source_label,
        )

    json_first = not prefer_yaml and trimmed[0] in "{["
    strategies: List[_Strategy] = [("json", _parse_json), ("yaml", _parse_yaml)]
    if not json_first:
        strategies.reverse()

    parse_errors: List[OpenApiParseError] = []
    for spec_format, parse in strategies:
        attempt = _attempt(parse, raw_spec, source_label)
        if attempt.status == "parsed" and attempt.document is not None:
            logger.debug("Parsed spec from %s as %s", source_label or "input", spec_format)
            return ParseResult(document=attempt.document, format=spec_format)
        if attempt.status == "validation_error" and attempt.error is not None:
            raise attempt.error
        if attempt.error is not None:
            parse_errors.append(attempt.error)

    primary = parse_errors[0] if parse_errors else None
    message = (
        primary.message
        if primary
        else f"Unable to parse spec from {source_label or 'input'} as JSON or YAML."
    )
    raise OpenApiParseError(
        message,
        kind="parse",
        source_label=source_label,
        line=primary.line if primary else None,
        column=primary.column if primary else None,
    ) from primary


def format_openapi_error(error: BaseException) -> str:
    if isinstance(error, OpenApiParseError):
        if error.line is not None and error.column is not None:
            return f"{error.message} (line {error.line}, column {error.column})"
        return error.message
    message = str(error)
    return message or "An unknown error occurred while loading the OpenAPI spec."


def should_prefer_yaml(source_label: str) -> bool:
    normalized = source_label.lower()
    return normalized.endswith(".yaml") or normalized.endswith(".yml")


def _attempt(
    parse: Callable[[str, Optional[str]], Any], raw_spec: str, source_label: Optional[str]
) -> _Attempt:
    try:
        parsed = parse(raw_spec, source_label)
    except OpenApiParseError as exc:
        return _Attempt(status="parse_error", error=exc)

    try:
        document = validate_openapi_document(parsed, source_label)
    except OpenApiParseError as exc:
        return _Attempt(status="validation_error", error=exc)
    return _Attempt(status="parsed", document=document)


def _parse_json(raw_spec: str, source_label: Optional[str]) -> Any:
    try:
        return json.loads(raw_spec)
    except json.JSONDecodeError as exc:
        line, column = _json_error_location(raw_spec, exc.pos)
        raise OpenApiParseError(
            f"Invalid JSON: {exc.msg}",
            kind="parse",
            source_label=source_label,
            line=line,
            column=column,
        ) from exc


def _parse_yaml(raw_spec: str, source_label: Optional[str]) -> Any:
    try:
        return yaml.safe_load(raw_spec)
    except yaml.YAMLError as exc:
        line, column = _yaml_error_location(exc)
        raise OpenApiParseError(
            f"Invalid YAML: {exc}",
            kind="parse",
            source_label=source_label,
            line=line,
            column=column,
        ) from exc


def validate_openapi_document(value: Any, source_label: Optional[str] = None) -> Dict[str, Any]:
    _require_mapping(value, "OpenAPI root must be an object.", source_label)

    version = value.get("openapi")
    if not isinstance(version, str):
        raise OpenApiParseError(
            "Missing required `openapi` version string.",
            kind="validation",
            source_label=source_label,
        )
    if not version.startswith("3."):
        raise OpenApiParseError(
            f'Unsupported OpenAPI version "{version}". Only OpenAPI 3.x is supported.',
            kind="validation",
            source_label=source_label,
        )

    info = value.get("info")
    _require_mapping(info, "Missing required `info` object.", source_label)
    for field_name in ("title", "version"):
        field_value = info.get(field_name)
        if not isinstance(field_value, str) or not field_value.strip():
            raise OpenApiParseError(
                f"`info.{field_name}` must be a non-empty string.",
                kind="validation",
                source_label=source_label,
            )

    paths = value.get("paths")
    _require_mapping(paths, "Missing required `paths` object.", source_label)
    for path_key, path_item in paths.items():
        if not isinstance(path_key, str) or not path_key.startswith("/"):
            raise OpenApiParseError(
                f'Path key "{path_key}" must start with "/".',
                kind="validation",
                source_label=source_label,
            )
        _require_mapping(path_item, f'Path item for "{path_key}" must be an object.', source_label)

    return value


def _require_mapping(value: Any, message: str, source_label: Optional[str]) -> None:
    if not isinstance(value, dict):
        raise OpenApiParseError(message, kind="validation", source_label=source_label)


def _json_error_location(raw_spec: str, position: int) -> Tuple[Optional[int], Optional[int]]:
    if position < 0:
        return None, None

    line = 1
    column = 1
    for char in raw_spec[:position]:
        if char == "\n":
            line += 1
            column = 1
        else:
            column += 1
    return line, column


def _yaml_error_location(error: yaml.YAMLError) -> Tuple[Optional[int], Optional[int]]:
    mark = getattr(error, "problem_mark", None) or getattr(error, "context_mark", None)
    if mark is None:
        return None, None
    return mark.line + 1, mark.column + 1
