"""Render built requests as copy-pasteable curl commands."""

from __future__ import annotations

from typing import List

from .models import BuiltRequest


def build_curl_command(request: BuiltRequest) -> str:
    parts: List[str] = ["curl", "-X", shell_quote(request.method.upper()), shell_quote(request.url)]

    for name, value in sorted(request.headers.items(), key=lambda item: (item[0].casefold(), item[0])):
        parts.extend(["-H", shell_quote(f"{name}: {value}")])

    if request.curl_body is not None:
        if request.curl_body.kind == "raw":
            parts.extend(["--data-raw", shell_quote(request.curl_body.value)])
        else:
            for entry in request.curl_body.entries:
                parts.extend(["-F", shell_quote(f"{entry.name}={entry.value}")])

    return " ".join(parts)


def shell_quote(value: str) -> str:
    """Single-quote for POSIX shells; always quotes, even safe words."""
    return "'" + value.replace("'", "'\"'\"'") + "'"
