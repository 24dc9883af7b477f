"""CLI entry point for the Try It engine."""

from __future__ import annotations

import asyncio
import functools
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import click
import uvicorn

from .config import Settings, get_settings
from .curl import build_curl_command
from .executors import ExecutionError
from .logging import configure_logging
from .models import AuthSelection
from .openapi import collect_auth_options, collect_parameters, request_body_content_types
from .server import build_app
from .session import SpecSession


async def _serve(settings: Settings) -> None:
    config = uvicorn.Config(
        build_app(settings), host=settings.server_host, port=settings.server_port
    )
    server = uvicorn.Server(config)
    await server.serve()


def _pairs(_ctx: click.Context, _param: click.Parameter, values: Tuple[str, ...]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}")
        result[name.strip()] = value
    return result


def _header_pairs(_ctx: click.Context, _param: click.Parameter, values: Tuple[str, ...]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for item in values:
        colon, equals = item.find(":"), item.find("=")
        separator = ":" if colon > 0 and (equals < 0 or colon < equals) else "="
        name, sep, value = item.partition(separator)
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value' or Name=value, got {item!r}")
        result[name.strip()] = value.strip()
    return result


def _request_options(command: Callable) -> Callable:
    options = [
        click.option("--base-url", default=None, help="Override the server URL from the spec."),
        click.option("-p", "--path", "path_params", multiple=True, callback=_pairs, help="Path parameter NAME=VALUE."),
        click.option("-q", "--query", "query_params", multiple=True, callback=_pairs, help="Query parameter NAME=VALUE."),
        click.option("-H", "--header", "header_params", multiple=True, callback=_header_pairs, help="Header 'Name: value'."),
        click.option("-c", "--cookie", "cookie_params", multiple=True, callback=_pairs, help="Cookie NAME=VALUE."),
        click.option("--body", default=None, help="Request body text, or @file to read it from a file."),
        click.option("--content-type", default=None, help="Request body content type."),
        click.option("--accept", default=None, help="Accept header value."),
        click.option("--bearer", default=None, help="Bearer token."),
        click.option("--basic", default=None, help="Basic auth credentials USER:PASSWORD."),
        click.option("--api-key", default=None, help="API key NAME=VALUE."),
        click.option("--api-key-in", default="header", type=click.Choice(["header", "query"]), help="Where to send the API key."),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def _auth_selection(bearer: Optional[str], basic: Optional[str], api_key: Optional[str], api_key_in: str) -> AuthSelection:
    chosen = [flag for flag, value in (("--bearer", bearer), ("--basic", basic), ("--api-key", api_key)) if value]
    if len(chosen) > 1:
        raise click.UsageError(f"Choose one auth mode, got {', '.join(chosen)}.")
    if bearer:
        return AuthSelection(kind="bearer", bearer_token=bearer)
    if basic:
        username, _, password = basic.partition(":")
        return AuthSelection(kind="basic", username=username, password=password)
    if api_key:
        name, _, value = api_key.partition("=")
        return AuthSelection(kind="apiKey", api_key_name=name, api_key_value=value, api_key_in=api_key_in)
    return AuthSelection()


def _read_body(body: Optional[str]) -> Optional[str]:
    if body is None or not body.startswith("@"):
        return body
    try:
        return Path(body[1:]).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise click.ClickException(f"Cannot read request body from {body[1:]}: {exc}") from exc


def _load_session(spec: str) -> SpecSession:
    session = SpecSession()
    if spec.startswith(("http://", "https://")):
        asyncio.run(session.load_from_url(spec))
    else:
        session.load_from_file(Path(spec))
    if session.state.error:
        raise click.ClickException(session.state.error)
    return session


def _prepare(session: SpecSession, endpoint_id: str, options: Dict) -> None:
    state = session.select(endpoint_id)
    if state.selected_endpoint_id != endpoint_id:
        raise click.ClickException(f"Unknown endpoint: {endpoint_id}")

    changes: Dict = {
        "path_params": options["path_params"],
        "query_params": options["query_params"],
        "header_params": options["header_params"],
        "cookie_params": options["cookie_params"],
        "auth": _auth_selection(options["bearer"], options["basic"], options["api_key"], options["api_key_in"]),
    }
    if options["base_url"] is not None:
        changes["base_url"] = options["base_url"]
    body = _read_body(options["body"])
    if body is not None:
        changes["body_text"] = body
    if options["content_type"] is not None:
        changes["content_type"] = options["content_type"]
    if options["accept"] is not None:
        changes["accept_header"] = options["accept"]
    session.update_draft(**changes)


def _report_errors(command: Callable) -> Callable:
    @functools.wraps(command)
    def wrapper(*args, **kwargs):  # type: ignore[no-untyped-def]
        try:
            return command(*args, **kwargs)
        except ExecutionError as exc:
            lines = [f"[{exc.kind}] {exc.message}"]
            lines.extend(f"  - {issue}" for issue in exc.issues[1:])
            if exc.details:
                lines.append(f"  {exc.details}")
            raise click.ClickException("\n".join(lines)) from exc

    return wrapper


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to TRYIT_LOG_LEVEL).")
def main(log_level: Optional[str]):
    """Explore OpenAPI specs and send requests built from them."""
    configure_logging((log_level or get_settings().log_level).upper())


@main.command()
@click.option("--host", default=None, help="Bind address.")
@click.option("--port", default=None, type=int, help="Bind port.")
def serve(host: Optional[str], port: Optional[int]):
    """Run the HTTP and spec-fetch proxy server."""
    settings = get_settings()
    updates = {key: value for key, value in (("server_host", host), ("server_port", port)) if value is not None}
    asyncio.run(_serve(settings.model_copy(update=updates)))


@main.command()
@click.argument("spec")
def endpoints(spec: str):
    """List endpoints grouped by tag."""
    session = _load_session(spec)
    catalog = session.state.catalog
    metadata = catalog.metadata
    click.echo(f"{metadata.title} {metadata.version} ({catalog.operation_count} operations)")
    for group in catalog.endpoint_groups:
        click.echo(f"\n[{group.tag}]")
        for endpoint in group.endpoints:
            suffix = "  (deprecated)" if endpoint.deprecated else ""
            click.echo(f"  {endpoint.method:<7} {endpoint.path}  {endpoint.id}{suffix}")


@main.command()
@click.argument("spec")
@click.argument("endpoint_id")
def describe(spec: str, endpoint_id: str):
    """Show parameters, auth options and a body example for an endpoint."""
    session = _load_session(spec)
    state = session.select(endpoint_id)
    endpoint = state.selected_endpoint
    if endpoint is None or state.document is None or endpoint.id != endpoint_id:
        raise click.ClickException(f"Unknown endpoint: {endpoint_id}")

    click.echo(f"{endpoint.method} {endpoint.path}")
    if endpoint.summary:
        click.echo(endpoint.summary)
    click.echo(f"Base URL: {state.draft.base_url or '(none)'}")

    parameters = collect_parameters(state.document, endpoint)
    if parameters:
        click.echo("\nParameters:")
        for parameter in parameters:
            flag = " (required)" if parameter.required else ""
            click.echo(f"  {parameter.location:<7} {parameter.name}{flag}")

    auth_options = collect_auth_options(state.document, endpoint)
    if auth_options:
        click.echo("\nAuth:")
        for option in auth_options:
            click.echo(f"  {option.kind:<7} {option.label}")

    content_types = request_body_content_types(state.document, endpoint)
    if content_types:
        click.echo(f"\nBody ({', '.join(content_types)}):")
        click.echo(state.draft.body_text)


@main.command()
@click.argument("spec")
@click.argument("endpoint_id")
@_request_options
@_report_errors
def curl(spec: str, endpoint_id: str, **options):
    """Print the curl command for a request."""
    session = _load_session(spec)
    _prepare(session, endpoint_id, options)
    click.echo(build_curl_command(session.build_request()))


@main.command()
@click.argument("spec")
@click.argument("endpoint_id")
@_request_options
@click.option("--timeout-ms", default=None, type=int, help="Request timeout in milliseconds.")
@click.option("-i", "--include", is_flag=True, help="Print response headers.")
@_report_errors
def send(spec: str, endpoint_id: str, timeout_ms: Optional[int], include: bool, **options):
    """Build and send a request, then print the response."""
    session = _load_session(spec)
    _prepare(session, endpoint_id, options)
    result = asyncio.run(session.send(timeout_ms))

    click.echo(f"{result.status} {result.status_text} ({result.duration_ms} ms)")
    if include:
        for name, value in sorted(result.headers.items()):
            click.echo(f"{name}: {value}")
        click.echo("")
    click.echo(result.body_text)


if __name__ == "__main__":
    main()
