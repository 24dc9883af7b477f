"""Local `$ref` resolution and schema inspection helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AbstractSet, Dict, List, Optional


@dataclass(frozen=True)
class ResolvedSchema:
    schema: Optional[Dict[str, Any]]
    ref_path: Optional[str] = None
    missing_ref: bool = False
    circular_ref: bool = False


@dataclass(frozen=True)
class SchemaChild:
    key: str
    label: str
    schema: Any
    required: bool
    source: str


def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def is_openapi_ref(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


def resolve_openapi_ref(ref: str, document: Dict[str, Any]) -> Any:
    """Follow a local JSON pointer such as ``#/components/schemas/Pet``.

    Returns ``None`` for non-local refs and for pointers with a missing
    segment.
    """
    if not ref.startswith("#/"):
        return None

    segments = [
        segment.replace("~1", "/").replace("~0", "~") for segment in ref[2:].split("/")
    ]

    cursor: Any = document
    for segment in segments:
        if not isinstance(cursor, dict) or segment not in cursor:
            return None
        cursor = cursor[segment]
        if cursor is None:
            return None
    return cursor


def dereference(value: Any, document: Dict[str, Any]) -> Any:
    if not is_openapi_ref(value):
        return value
    return resolve_openapi_ref(value["$ref"], document)


def resolve_schema(
    value: Any,
    document: Dict[str, Any],
    seen_refs: AbstractSet[str] = frozenset(),
) -> ResolvedSchema:
    if is_openapi_ref(value):
        ref_path = value["$ref"]
        if ref_path in seen_refs:
            return ResolvedSchema(schema=None, ref_path=ref_path, circular_ref=True)

        target = resolve_openapi_ref(ref_path, document)
        if target is None:
            return ResolvedSchema(schema=None, ref_path=ref_path, missing_ref=True)

        resolved = resolve_schema(target, document, frozenset(seen_refs) | {ref_path})
        return ResolvedSchema(
            schema=resolved.schema,
            ref_path=resolved.ref_path or ref_path,
            missing_ref=resolved.missing_ref,
            circular_ref=resolved.circular_ref,
        )

    if isinstance(value, dict):
        return ResolvedSchema(schema=value)
    return ResolvedSchema(schema=None)


def get_schema_children(schema: Dict[str, Any]) -> List[SchemaChild]:
    children: List[SchemaChild] = []

    required_list = schema.get("required")
    required = (
        {entry for entry in required_list if isinstance(entry, str)}
        if isinstance(required_list, list)
        else set()
    )

    properties = schema.get("properties")
    if isinstance(properties, dict):
        for key, value in properties.items():
            children.append(
                SchemaChild(
                    key=f"property:{key}",
                    label=key,
                    schema=value,
                    required=key in required,
                    source="property",
                )
            )

    if "items" in schema:
        children.append(
            SchemaChild(key="items", label="items", schema=schema["items"], required=False, source="items")
        )

    for combinator in ("allOf", "anyOf", "oneOf"):
        members = schema.get(combinator)
        if not isinstance(members, list):
            continue
        for index, member in enumerate(members):
            children.append(
                SchemaChild(
                    key=f"{combinator}:{index}",
                    label=f"{combinator}[{index}]",
                    schema=member,
                    required=False,
                    source=combinator,
                )
            )

    additional = schema.get("additionalProperties")
    if additional and additional is not True:
        children.append(
            SchemaChild(
                key="additionalProperties",
                label="additionalProperties",
                schema=additional,
                required=False,
                source="additionalProperties",
            )
        )

    return children


def get_schema_type_label(schema: Dict[str, Any]) -> str:
    explicit = schema.get("type")
    if isinstance(explicit, str):
        return explicit
    if isinstance(explicit, list):
        names = [entry for entry in explicit if isinstance(entry, str)]
        if names:
            return " | ".join(names)

    if isinstance(schema.get("properties"), dict):
        return "object"
    if "items" in schema:
        return "array"
    for combinator in ("oneOf", "anyOf", "allOf"):
        members = schema.get(combinator)
        if isinstance(members, list) and members:
            return combinator
    return "unknown"
