"""Representative example values derived from OpenAPI schemas."""

from __future__ import annotations

import json
from typing import Any, AbstractSet, Dict, Optional
from urllib.parse import urlencode

from .schema import get_schema_type_label, resolve_schema


MAX_SAMPLE_DEPTH = 6

# Distinguishes "no example declared" from an explicit `example: null`.
MISSING: Any = object()

_STRING_SAMPLES = {
    "date": "2024-01-01",
    "date-time": "2024-01-01T00:00:00Z",
    "uuid": "00000000-0000-4000-8000-000000000000",
    "email": "user@example.com",
    "uri": "https://example.com",
    "url": "https://example.com",
    "byte": "<binary>",
    "binary": "<binary>",
}


def pick_openapi_example(value: Any) -> Any:
    if not isinstance(value, dict):
        return MISSING
    if "example" in value:
        return value["example"]
    if "examples" in value:
        return _pick_from_examples(value["examples"])
    return MISSING


def pick_media_type_example(media_type: Any) -> Any:
    if not isinstance(media_type, dict):
        return MISSING

    direct = pick_openapi_example(media_type)
    if direct is not MISSING:
        return direct
    if "schema" in media_type:
        return pick_openapi_example(media_type["schema"])
    return MISSING


def generate_schema_example(schema: Any, document: Dict[str, Any]) -> Any:
    return build_schema_example(schema, document, 0, frozenset())


def build_schema_example(
    node: Any,
    document: Dict[str, Any],
    depth: int = 0,
    seen_refs: AbstractSet[str] = frozenset(),
) -> Any:
    if depth > MAX_SAMPLE_DEPTH:
        return None

    resolved = resolve_schema(node, document, seen_refs)
    schema = resolved.schema
    if schema is None:
        return None
    if resolved.ref_path:
        seen_refs = frozenset(seen_refs) | {resolved.ref_path}

    explicit = pick_openapi_example(schema)
    if explicit is not MISSING:
        return explicit

    enum = schema.get("enum")
    if isinstance(enum, list) and enum:
        return enum[0]

    if "default" in schema:
        return schema["default"]

    type_label = get_schema_type_label(schema)
    if type_label == "object":
        return _sample_object(schema, document, depth, seen_refs)
    if type_label == "array":
        return [build_schema_example(schema.get("items"), document, depth + 1, seen_refs)]
    if type_label in ("integer", "number"):
        return 0
    if type_label == "boolean":
        return True
    if type_label == "string":
        string_format = schema.get("format")
        return _STRING_SAMPLES.get(string_format, "string") if isinstance(string_format, str) else "string"
    if type_label in ("oneOf", "anyOf", "allOf"):
        return build_schema_example(schema[type_label][0], document, depth + 1, seen_refs)
    return None


def stringify_example(value: Any, content_type: Optional[str] = None) -> str:
    """Render an example as editable body text for the given content type."""
    if value is MISSING:
        return ""

    normalized = normalize_content_type(content_type)

    if normalized == "application/json":
        if isinstance(value, str):
            try:
                return json.dumps(json.loads(value), indent=2, ensure_ascii=False)
            except ValueError:
                return value
        return json.dumps(value, indent=2, ensure_ascii=False)

    if normalized == "application/x-www-form-urlencoded":
        record = _as_form_record(value)
        if record is not None:
            return urlencode([(key, form_text(entry)) for key, entry in record.items()])

    if normalized == "multipart/form-data":
        record = _as_form_record(value)
        if record is not None:
            return "\n".join(f"{key}: {form_text(entry)}" for key, entry in record.items())

    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, int, float, list, dict)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


def normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _sample_object(
    schema: Dict[str, Any],
    document: Dict[str, Any],
    depth: int,
    seen_refs: AbstractSet[str],
) -> Dict[str, Any]:
    sample: Dict[str, Any] = {}

    properties = schema.get("properties")
    if isinstance(properties, dict):
        required_list = schema.get("required")
        required = (
            {entry for entry in required_list if isinstance(entry, str)}
            if isinstance(required_list, list)
            else set()
        )
        keys = [key for key in properties if key in required] if required else list(properties)
        for key in keys:
            sample[key] = build_schema_example(properties[key], document, depth + 1, seen_refs)

    additional = schema.get("additionalProperties")
    if not sample and additional and additional is not True:
        sample["additionalProp"] = build_schema_example(additional, document, depth + 1, seen_refs)

    return sample


def _pick_from_examples(examples: Any) -> Any:
    if isinstance(examples, list) and examples:
        return examples[0]
    if not isinstance(examples, dict):
        return MISSING

    for entry in examples.values():
        if isinstance(entry, dict) and "value" in entry:
            return entry["value"]
        return entry
    return MISSING


def _as_form_record(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def form_text(value: Any) -> str:
    """Coerce a decoded form value to the text sent on the wire."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
