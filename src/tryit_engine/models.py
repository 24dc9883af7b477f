"""Internal models for request drafts, built requests and proxy payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


ParamLocation = Literal["path", "query", "header", "cookie"]
AuthKind = Literal["none", "bearer", "basic", "apiKey"]


@dataclass(frozen=True)
class ParameterDefinition:
    name: str
    location: ParamLocation
    required: bool = False
    description: str = ""
    schema: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AuthOption:
    id: str
    label: str
    kind: str
    description: str = ""
    api_key_name: Optional[str] = None
    api_key_in: Optional[str] = None


@dataclass(frozen=True)
class AuthSelection:
    kind: AuthKind = "none"
    bearer_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    api_key_name: Optional[str] = None
    api_key_in: Optional[str] = None
    api_key_value: Optional[str] = None


@dataclass(frozen=True)
class BuildRequestInput:
    method: str
    path_template: str
    base_url: str
    parameters: List[ParameterDefinition] = field(default_factory=list)
    path_params: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    header_params: Dict[str, str] = field(default_factory=dict)
    cookie_params: Dict[str, str] = field(default_factory=dict)
    body_text: str = ""
    content_type: Optional[str] = None
    accept_header: Optional[str] = None
    auth: Optional[AuthSelection] = None


@dataclass(frozen=True)
class CurlFormEntry:
    name: str
    value: str


@dataclass(frozen=True)
class CurlBody:
    kind: Literal["raw", "multipart"]
    value: str = ""
    entries: Tuple[CurlFormEntry, ...] = ()


@dataclass(frozen=True)
class BuiltRequest:
    method: str
    url: str
    headers: Dict[str, str]
    content: Optional[str] = None
    form_fields: Optional[List[Tuple[str, Tuple[None, str]]]] = None
    curl_body: Optional[CurlBody] = None

    def transport_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": dict(self.headers)}
        if self.form_fields is not None:
            kwargs["files"] = list(self.form_fields)
        elif self.content is not None:
            kwargs["content"] = self.content
        return kwargs


@dataclass(frozen=True)
class ExecutionResult:
    method: str
    url: str
    status: int
    status_text: str
    duration_ms: int
    headers: Dict[str, str]
    body_text: str
    content_type: Optional[str] = None


class ProxyFormEntry(BaseModel):
    name: str = ""
    value: str = ""


class ProxyBodyNone(BaseModel):
    kind: Literal["none"] = "none"


class ProxyBodyRaw(BaseModel):
    kind: Literal["raw"]
    value: str = ""


class ProxyBodyMultipart(BaseModel):
    kind: Literal["multipart"]
    entries: List[ProxyFormEntry] = Field(default_factory=list)


ProxyBody = Annotated[
    Union[ProxyBodyNone, ProxyBodyRaw, ProxyBodyMultipart], Field(discriminator="kind")
]


class ProxyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: Optional[str] = None
    url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: Optional[float] = Field(default=None, alias="timeoutMs")
    body: Optional[ProxyBody] = None


class ProxyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: str
    url: str
    status: int
    status_text: str = Field(alias="statusText")
    duration_ms: float = Field(alias="durationMs")
    headers: Dict[str, str]
    body_text: str = Field(alias="bodyText")
    content_type: Optional[str] = Field(default=None, alias="contentType")

    def to_result(self) -> ExecutionResult:
        return ExecutionResult(
            method=self.method,
            url=self.url,
            status=self.status,
            status_text=self.status_text,
            duration_ms=int(self.duration_ms),
            headers=dict(self.headers),
            body_text=self.body_text,
            content_type=self.content_type,
        )


class SpecFetchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    content: str
    content_type: Optional[str] = Field(default=None, alias="contentType")
