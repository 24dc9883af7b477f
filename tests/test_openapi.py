import json
from pathlib import Path

import httpx
import pytest

from tryit_engine.document import parse_openapi_document
from tryit_engine.normalize import normalize_openapi_document
from tryit_engine.openapi import (
    SpecFetchError,
    SpecLoader,
    collect_auth_options,
    collect_parameters,
    default_request_body,
    request_body_content_types,
    resolve_base_url,
)

FIXTURES = Path(__file__).parent / "fixtures"
SPEC_URL = "https://specs.example.com/petstore.yaml"
PROXY = "http://localhost:9090"


@pytest.fixture
def petstore():
    text = (FIXTURES / "petstore.yaml").read_text(encoding="utf-8")
    document = parse_openapi_document(text).document
    return document, normalize_openapi_document(document)


class TestParameters:
    def test_path_item_parameters_and_refs(self, petstore):
        document, catalog = petstore
        parameters = collect_parameters(document, catalog.endpoint_by_id["showPetById"])
        assert [(p.location, p.name, p.required) for p in parameters] == [
            ("path", "petId", True),
            ("header", "X-Trace-Id", True),
        ]
        assert parameters[0].schema == {"type": "string"}

    def test_operation_overrides_path_item(self, petstore):
        document, catalog = petstore
        parameters = collect_parameters(document, catalog.endpoint_by_id["DELETE /pets/{petId}"])
        trace = [p for p in parameters if p.name == "X-Trace-Id"]
        assert len(trace) == 1
        assert trace[0].required is False

    def test_query_parameters(self, petstore):
        document, catalog = petstore
        parameters = collect_parameters(document, catalog.endpoint_by_id["listPets"])
        assert {p.name: p.required for p in parameters} == {"limit": False, "status": True}


class TestAuthOptions:
    def test_global_security(self, petstore):
        document, catalog = petstore
        options = collect_auth_options(document, catalog.endpoint_by_id["listPets"])
        assert [(o.id, o.kind, o.label) for o in options] == [("bearerAuth", "bearer", "bearerAuth (Bearer JWT)")]

    def test_operation_security(self, petstore):
        document, catalog = petstore
        options = collect_auth_options(document, catalog.endpoint_by_id["showPetById"])
        assert len(options) == 1
        assert options[0].kind == "apiKey"
        assert options[0].api_key_name == "X-API-Key"
        assert options[0].api_key_in == "header"

    def test_all_schemes_without_requirements(self):
        document = {
            "openapi": "3.0.0",
            "info": {"title": "t", "version": "1"},
            "paths": {"/x": {"get": {}}},
            "components": {
                "securitySchemes": {
                    "basic": {"type": "http", "scheme": "Basic"},
                    "digest": {"type": "http", "scheme": "digest"},
                    "key": {"type": "apiKey", "in": "query", "name": "api_key"},
                    "cookieKey": {"type": "apiKey", "in": "cookie", "name": "sid"},
                }
            },
        }
        endpoint = normalize_openapi_document(document).endpoint_by_id["GET /x"]
        options = collect_auth_options(document, endpoint)
        assert [(o.id, o.kind) for o in options] == [("basic", "basic"), ("key", "apiKey")]

    def test_empty_security_means_no_auth(self, petstore):
        document, catalog = petstore
        operation = document["paths"]["/pets"]["get"]
        operation["security"] = []
        assert collect_auth_options(document, catalog.endpoint_by_id["listPets"]) == []

        document["security"] = []
        del operation["security"]
        assert collect_auth_options(document, catalog.endpoint_by_id["listPets"]) == []


class TestBodyAndServers:
    def test_body_from_schema(self, petstore):
        document, catalog = petstore
        endpoint = catalog.endpoint_by_id["createPet"]
        assert request_body_content_types(document, endpoint) == [
            "application/json",
            "application/x-www-form-urlencoded",
        ]

        content_type, text = default_request_body(document, endpoint)
        assert content_type == "application/json"
        assert json.loads(text) == {"name": "string", "status": "available"}

        content_type, text = default_request_body(document, endpoint, "application/x-www-form-urlencoded")
        assert content_type == "application/x-www-form-urlencoded"
        assert text == "name=string&status=available"

    def test_no_body(self, petstore):
        document, catalog = petstore
        assert default_request_body(document, catalog.endpoint_by_id["listPets"]) == (None, "")

    def test_base_url_precedence(self, petstore):
        document, catalog = petstore
        assert resolve_base_url(document) == "https://petstore.example.com/v1"
        assert resolve_base_url(document, catalog.endpoint_by_id["listPets"]) == "https://petstore.example.com/v1"
        assert resolve_base_url(document, catalog.endpoint_by_id["GET /health"]) == "https://eu.status.example.com"

    def test_base_url_missing(self):
        document = {"openapi": "3.0.0", "info": {"title": "t", "version": "1"}, "paths": {}}
        assert resolve_base_url(document) == ""


class TestSpecLoader:
    @pytest.mark.asyncio
    async def test_direct_fetch(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="openapi: 3.0.0", headers={"content-type": "application/yaml"})
        )
        fetched = await SpecLoader(PROXY, transport=transport).fetch(SPEC_URL)
        assert fetched.content == "openapi: 3.0.0"
        assert fetched.content_type == "application/yaml"
        assert fetched.via_proxy is False

    @pytest.mark.asyncio
    async def test_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with pytest.raises(SpecFetchError) as exc_info:
            await SpecLoader(PROXY, transport=transport).fetch(SPEC_URL)
        assert exc_info.value.message == "Failed to load spec from URL (HTTP 404 Not Found)."
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_cross_origin_failure_uses_proxy(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            if request.url.host == "specs.example.com":
                raise httpx.ConnectError("blocked", request=request)
            return httpx.Response(
                200, json={"url": SPEC_URL, "content": "openapi: 3.1.0", "contentType": "text/yaml"}
            )

        loader = SpecLoader(PROXY, current_origin="http://localhost:5173", transport=httpx.MockTransport(handler))
        fetched = await loader.fetch(SPEC_URL)

        assert fetched.via_proxy is True
        assert fetched.content == "openapi: 3.1.0"
        assert fetched.content_type == "text/yaml"
        assert seen[1].path == "/api/spec/fetch"
        assert seen[1].params["url"] == SPEC_URL

    @pytest.mark.asyncio
    async def test_proxy_error_message_is_surfaced(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "specs.example.com":
                raise httpx.ConnectError("blocked", request=request)
            return httpx.Response(502, json={"error": "Upstream responded with HTTP 500 Internal Server Error."})

        loader = SpecLoader(PROXY, current_origin="http://localhost:5173", transport=httpx.MockTransport(handler))
        with pytest.raises(SpecFetchError) as exc_info:
            await loader.fetch(SPEC_URL)
        assert exc_info.value.message == "Upstream responded with HTTP 500 Internal Server Error."

    @pytest.mark.asyncio
    async def test_non_transport_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("bad gzip stream", request=request)

        loader = SpecLoader(PROXY, current_origin="http://localhost:5173", transport=httpx.MockTransport(handler))
        with pytest.raises(SpecFetchError) as exc_info:
            await loader.fetch(SPEC_URL)
        assert exc_info.value.message == "Failed to load spec from URL: bad gzip stream"

    @pytest.mark.asyncio
    async def test_no_fallback_without_origin(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SpecFetchError) as exc_info:
            await SpecLoader(PROXY, transport=httpx.MockTransport(handler)).fetch(SPEC_URL)
        assert exc_info.value.message == "Failed to load spec from URL: refused"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cache(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text="openapi: 3.0.0")

        loader = SpecLoader(PROXY, cache_seconds=60, transport=httpx.MockTransport(handler))
        await loader.fetch(SPEC_URL)
        await loader.fetch(SPEC_URL)
        assert len(calls) == 1
