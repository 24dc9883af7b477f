"""Flatten an OpenAPI document into a tag-grouped endpoint catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple


HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
UNTAGGED = "Untagged"

_METHOD_ORDER = {method.upper(): index for index, method in enumerate(HTTP_METHODS)}


@dataclass(frozen=True)
class SpecMetadata:
    title: str
    version: str
    description: Optional[str] = None


@dataclass(frozen=True)
class EndpointNavItem:
    id: str
    method: str
    path: str
    tag: str
    tags: Tuple[str, ...]
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False

    @property
    def method_lower(self) -> str:
        return self.method.lower()


@dataclass(frozen=True)
class EndpointTagGroup:
    tag: str
    endpoints: Tuple[EndpointNavItem, ...]


@dataclass(frozen=True)
class NormalizedOpenApi:
    metadata: SpecMetadata
    endpoints: Tuple[EndpointNavItem, ...] = ()
    endpoint_by_id: Dict[str, EndpointNavItem] = field(default_factory=dict)
    endpoint_groups: Tuple[EndpointTagGroup, ...] = ()

    @property
    def operation_count(self) -> int:
        return len(self.endpoint_by_id)


def normalize_openapi_document(document: Dict[str, Any]) -> NormalizedOpenApi:
    info = document["info"]
    metadata = SpecMetadata(
        title=info["title"],
        version=info["version"],
        description=info.get("description") if isinstance(info.get("description"), str) else None,
    )

    endpoint_by_id: Dict[str, EndpointNavItem] = {}
    grouped: Dict[str, List[EndpointNavItem]] = {}
    used_ids: Set[str] = set()

    for path, path_item in document["paths"].items():
        for method_lower in HTTP_METHODS:
            operation = path_item.get(method_lower)
            if not isinstance(operation, dict):
                continue

            method = method_lower.upper()
            raw_operation_id = operation.get("operationId")
            operation_id = (
                raw_operation_id.strip()
                if isinstance(raw_operation_id, str) and raw_operation_id.strip()
                else None
            )
            endpoint_id = _unique_id(operation_id or f"{method} {path}", used_ids)
            tags = _normalize_tags(operation.get("tags"))

            for tag in tags:
                endpoint = EndpointNavItem(
                    id=endpoint_id,
                    method=method,
                    path=path,
                    tag=tag,
                    tags=tags,
                    operation_id=operation_id,
                    summary=_optional_text(operation.get("summary")),
                    description=_optional_text(operation.get("description")),
                    deprecated=bool(operation.get("deprecated")),
                )
                endpoint_by_id.setdefault(endpoint_id, endpoint)
                grouped.setdefault(tag, []).append(endpoint)

    endpoint_groups = tuple(
        EndpointTagGroup(tag=tag, endpoints=_sorted_endpoints(grouped[tag]))
        for tag in sorted(grouped, key=_tag_sort_key)
    )

    return NormalizedOpenApi(
        metadata=metadata,
        endpoints=_sorted_endpoints(endpoint_by_id.values()),
        endpoint_by_id=endpoint_by_id,
        endpoint_groups=endpoint_groups,
    )


def _normalize_tags(raw_tags: Any) -> Tuple[str, ...]:
    if not isinstance(raw_tags, list):
        return (UNTAGGED,)
    tags = tuple(tag.strip() for tag in raw_tags if isinstance(tag, str) and tag.strip())
    return tags or (UNTAGGED,)


def _unique_id(candidate: str, used_ids: Set[str]) -> str:
    base = candidate.strip()
    if base not in used_ids:
        used_ids.add(base)
        return base

    suffix = 2
    while f"{base} ({suffix})" in used_ids:
        suffix += 1
    unique = f"{base} ({suffix})"
    used_ids.add(unique)
    return unique


def _text_key(value: str) -> Tuple[str, str]:
    return value.casefold(), value


def _tag_sort_key(tag: str) -> Tuple[bool, Tuple[str, str]]:
    return tag == UNTAGGED, _text_key(tag)


def _sorted_endpoints(endpoints: Iterable[EndpointNavItem]) -> Tuple[EndpointNavItem, ...]:
    return tuple(
        sorted(
            endpoints,
            key=lambda endpoint: (
                _text_key(endpoint.path),
                _METHOD_ORDER.get(endpoint.method, len(_METHOD_ORDER)),
                _text_key(endpoint.id),
            ),
        )
    )


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None
