import json
from pathlib import Path

import pytest

from tryit_engine.document import (
    OpenApiParseError,
    format_openapi_error,
    parse_openapi_document,
    should_prefer_yaml,
)

FIXTURES = Path(__file__).parent / "fixtures"

MINIMAL = {
    "openapi": "3.0.0",
    "info": {"title": "Demo", "version": "1.0"},
    "paths": {"/ping": {"get": {"responses": {}}}},
}


class TestParseFormats:
    def test_parse_json(self):
        result = parse_openapi_document(json.dumps(MINIMAL))
        assert result.format == "json"
        assert result.document["info"]["title"] == "Demo"

    def test_parse_yaml_fixture(self):
        text = (FIXTURES / "petstore.yaml").read_text(encoding="utf-8")
        result = parse_openapi_document(text, source_label="petstore.yaml")
        assert result.format == "yaml"
        assert "/pets" in result.document["paths"]

    def test_json_content_parsed_as_yaml_when_preferred(self):
        result = parse_openapi_document(json.dumps(MINIMAL), prefer_yaml=True)
        assert result.format == "yaml"
        assert result.document["openapi"] == "3.0.0"

    def test_broken_json_falls_back_to_yaml(self):
        # Flow-style YAML is not valid JSON because of the unquoted keys.
        text = "{openapi: '3.1.0', info: {title: T, version: '1'}, paths: {}}"
        result = parse_openapi_document(text)
        assert result.format == "yaml"


class TestParseErrors:
    def test_empty_input_is_validation_error(self):
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document("   \n  ")
        assert exc_info.value.kind == "validation"
        assert "empty" in exc_info.value.message

    def test_swagger_2_rejected(self):
        doc = {**MINIMAL, "openapi": "2.0"}
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(json.dumps(doc))
        assert exc_info.value.kind == "validation"
        assert "Only OpenAPI 3.x" in exc_info.value.message

    def test_missing_openapi_field(self):
        doc = {key: value for key, value in MINIMAL.items() if key != "openapi"}
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(json.dumps(doc))
        assert exc_info.value.message == "Missing required `openapi` version string."

    def test_blank_title(self):
        doc = {**MINIMAL, "info": {"title": "  ", "version": "1"}}
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(json.dumps(doc))
        assert exc_info.value.message == "`info.title` must be a non-empty string."

    def test_path_key_without_slash(self):
        doc = {**MINIMAL, "paths": {"ping": {}}}
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(json.dumps(doc))
        assert 'Path key "ping" must start with "/".' == exc_info.value.message

    def test_path_item_must_be_object(self):
        doc = {**MINIMAL, "paths": {"/ping": []}}
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(json.dumps(doc))
        assert exc_info.value.kind == "validation"

    def test_validation_error_is_not_retried_as_yaml(self):
        # Valid JSON, invalid document: the YAML strategy must not run.
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document('["not", "an", "object"]')
        assert exc_info.value.kind == "validation"
        assert exc_info.value.message == "OpenAPI root must be an object."

    def test_json_syntax_error_reports_first_error_location(self):
        text = '{\n  "openapi": "3.0.0",\n  "info": {\n    "title": "x",,\n  }\n}'
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(text)
        error = exc_info.value
        assert error.kind == "parse"
        assert error.message.startswith("Invalid JSON:")
        assert error.line == 4
        assert error.column == 18

    def test_yaml_syntax_error_location(self):
        text = "openapi: 3.0.0\ninfo:\n  title: [unclosed\n  version: 1\n"
        with pytest.raises(OpenApiParseError) as exc_info:
            parse_openapi_document(text)
        error = exc_info.value
        assert error.kind == "parse"
        assert error.message.startswith("Invalid YAML:")
        assert error.line is not None
        assert error.column is not None


class TestFormatting:
    def test_format_with_location(self):
        error = OpenApiParseError("Invalid JSON: boom", kind="parse", line=3, column=7)
        assert format_openapi_error(error) == "Invalid JSON: boom (line 3, column 7)"

    def test_format_without_location(self):
        error = OpenApiParseError("Spec is empty.", kind="validation")
        assert format_openapi_error(error) == "Spec is empty."

    def test_format_other_exception(self):
        assert format_openapi_error(RuntimeError("disk on fire")) == "disk on fire"

    def test_prefer_yaml_by_extension(self):
        assert should_prefer_yaml("https://example.com/openapi.YAML")
        assert should_prefer_yaml("spec.yml")
        assert not should_prefer_yaml("spec.json")
