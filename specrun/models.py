"""Core data types shared across the compiler, executor and dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

ParameterLocation = Literal["path", "query", "header", "cookie", "body"]
AuthType = Literal["bearer", "apiKey", "basic"]


@dataclass(frozen=True)
class ToolParameter:
    """One input of a tool, taken from an OpenAPI parameter object."""

    name: str
    location: ParameterLocation
    required: bool
    schema: dict[str, Any]
    description: Optional[str] = None


@dataclass
class ToolDefinition:
    """A single callable HTTP operation.

    Everything except ``base_url`` is fixed at compile time. The env
    reload controller rewrites ``base_url`` in place so that existing
    references see the new server.
    """

    name: str
    description: str
    method: str
    path: str
    parameters: list[ToolParameter]
    base_url: str
    operation_id: Optional[str] = None
    request_body: Optional[dict[str, Any]] = None
    responses: dict[str, Any] = field(default_factory=dict)
    security: list[Any] = field(default_factory=list)

    @property
    def parameter_names(self) -> set[str]:
        return {p.name for p in self.parameters}


@dataclass
class ParsedSpec:
    """A loaded description document and the tools compiled from it."""

    api_name: str
    file_path: str
    document: dict[str, Any]
    tools: list[ToolDefinition]


@dataclass
class AuthRecord:
    """Credentials for one API, derived from environment variables."""

    type: AuthType
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    header_name: Optional[str] = None


@dataclass
class ApiCallResult:
    """Normalized outcome of one outbound request."""

    request_url: str
    request_body: Any
    status: int | str | None
    body: Any

    @property
    def ok(self) -> bool:
        return isinstance(self.status, int) and 200 <= self.status < 300

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestUrl": self.request_url,
            "requestBody": self.request_body,
            "response": {
                "status": self.status,
                "body": self.body,
            },
        }
