"""Compile a description document into tool definitions.

Walks every (path, verb) pair, merges path-level and operation-level
parameters, resolves local $refs and computes the base URL each tool
calls. A broken operation is logged and skipped; the rest of the
document still compiles.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from .errors import SpecLoadError
from .loader import get_paths, load_document, resolve_pointer
from .models import ParsedSpec, ToolDefinition, ToolParameter
from .naming import api_name_from_file, build_tool_name

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://api-server.placeholder"

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")

_PARAM_LOCATIONS = {"path", "query", "header", "cookie", "body"}

# Swagger 2.0 inline parameter keys copied into a synthesized schema
_INLINE_SCHEMA_KEYS = ("format", "items", "enum", "default")

_SERVER_VAR_RE = re.compile(r"\{([^}]+)\}")


# ---------------------------------------------------------------------------
# Base URL
# ---------------------------------------------------------------------------

def _is_swagger2(document: dict[str, Any]) -> bool:
    return document.get("swagger") == "2.0"


def _is_openapi3(document: dict[str, Any]) -> bool:
    return bool(document.get("openapi"))


def get_base_path(document: dict[str, Any]) -> Optional[str]:
    """Return the document's basePath with a leading slash, if any."""
    raw = document.get("basePath")
    if not isinstance(raw, str) or not raw.strip():
        return None
    trimmed = raw.strip()
    return trimmed if trimmed.startswith("/") else f"/{trimmed}"


def append_base_path(base_url: str, base_path: Optional[str]) -> str:
    """Add base_path to a URL that has no path of its own."""
    if not base_path:
        return base_url
    try:
        parts = urlsplit(base_url)
    except ValueError:
        return base_url
    if not parts.scheme or not parts.netloc:
        return base_url
    if parts.path and parts.path != "/":
        return base_url
    return urlunsplit((parts.scheme, parts.netloc, base_path, parts.query, parts.fragment)).rstrip("/")


def _resolve_server_url(server: Any) -> str:
    """Substitute {var} placeholders with the server's declared defaults."""
    if not isinstance(server, dict):
        return DEFAULT_SERVER_URL
    url = server.get("url")
    if not isinstance(url, str) or not url:
        return DEFAULT_SERVER_URL

    variables = server.get("variables")
    if not isinstance(variables, dict):
        return url

    def _substitute(match: re.Match) -> str:
        variable = variables.get(match.group(1))
        if isinstance(variable, dict) and isinstance(variable.get("default"), str):
            return variable["default"]
        return match.group(0)

    return _SERVER_VAR_RE.sub(_substitute, url)


def get_base_url(document: dict[str, Any]) -> str:
    """Pick the base URL tools of this document call."""
    base_path = get_base_path(document)

    if _is_openapi3(document):
        override = document.get("x-base-url")
        if isinstance(override, str) and override.strip():
            return append_base_path(override.strip(), base_path)

        servers = document.get("servers")
        if isinstance(servers, list) and servers:
            return append_base_path(_resolve_server_url(servers[0]), base_path)

    if _is_swagger2(document):
        schemes = document.get("schemes")
        scheme = schemes[0] if isinstance(schemes, list) and schemes else "https"
        host = document.get("host") if isinstance(document.get("host"), str) else ""
        if host:
            return f"{scheme}://{host}{base_path or ''}"

    return DEFAULT_SERVER_URL


def resolve_tool_base_url(document: dict[str, Any], server_url: str) -> str:
    """Base URL for tools when the server is overridden by configuration."""
    if _is_swagger2(document) or _is_openapi3(document):
        return append_base_path(server_url, get_base_path(document))
    return server_url


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

def _parameter_schema(param: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Find the schema of a parameter in any of the forms OpenAPI allows."""
    schema = param.get("schema")
    if isinstance(schema, dict):
        return schema

    content = param.get("content")
    if isinstance(content, dict):
        preferred = content.get("application/json")
        if not (isinstance(preferred, dict) and preferred.get("schema")):
            preferred = next(
                (entry for entry in content.values() if isinstance(entry, dict) and entry.get("schema")),
                None,
            )
        if preferred and isinstance(preferred.get("schema"), dict):
            return preferred["schema"]

    if param.get("type"):
        synthesized: dict[str, Any] = {"type": param["type"]}
        for key in _INLINE_SCHEMA_KEYS:
            if key in param:
                synthesized[key] = param[key]
        return synthesized

    return None


def extract_parameters(raw_params: list[Any], document: dict[str, Any]) -> list[ToolParameter]:
    """Resolve and normalize a list of parameter objects or $refs."""
    params: list[ToolParameter] = []
    for raw in raw_params:
        if not isinstance(raw, dict):
            continue
        param = resolve_pointer(document, raw["$ref"]) if "$ref" in raw else raw
        if not isinstance(param, dict):
            continue

        name = param.get("name")
        location = param.get("in")
        schema = _parameter_schema(param)
        if not name or location not in _PARAM_LOCATIONS or schema is None:
            continue

        params.append(ToolParameter(
            name=str(name),
            location=location,
            required=bool(param.get("required")) or location == "path",
            schema=schema,
            description=param.get("description"),
        ))
    return params


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _make_description(method: str, path: str, operation: dict[str, Any]) -> str:
    return operation.get("summary") or operation.get("description") or f"{method.upper()} {path}"


def _request_body(operation: dict[str, Any], document: dict[str, Any]) -> Optional[dict[str, Any]]:
    body = operation.get("requestBody")
    if isinstance(body, dict) and "$ref" in body:
        body = resolve_pointer(document, body["$ref"])
    return body if isinstance(body, dict) and body else None


def build_tool(
    namespace: str,
    method: str,
    path: str,
    operation: dict[str, Any],
    path_params: list[Any],
    document: dict[str, Any],
    base_url: str,
) -> ToolDefinition:
    """Build the tool definition for a single operation."""
    if not isinstance(operation, dict):
        raise TypeError(f"operation is {type(operation).__name__}, expected an object")

    raw_params = [*path_params, *(operation.get("parameters") or [])]
    return ToolDefinition(
        name=build_tool_name(namespace, method, path, operation.get("operationId")),
        description=_make_description(method, path, operation),
        operation_id=operation.get("operationId"),
        method=method.upper(),
        path=path,
        parameters=extract_parameters(raw_params, document),
        request_body=_request_body(operation, document),
        responses=operation.get("responses") or {},
        security=operation.get("security") or [],
        base_url=base_url,
    )


def compile_tools(document: dict[str, Any], namespace: str) -> list[ToolDefinition]:
    """Emit one tool per (path, verb) operation of the document."""
    tools: list[ToolDefinition] = []
    base_url = get_base_url(document)

    for path, path_item in get_paths(document).items():
        if not isinstance(path_item, dict):
            continue
        path_params = path_item.get("parameters") or []
        if not isinstance(path_params, list):
            path_params = []

        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if operation is None:
                continue
            try:
                tools.append(build_tool(namespace, method, path, operation, path_params, document, base_url))
            except Exception:
                logger.exception("Failed to create tool for %s %s", method.upper(), path)

    return tools


def _looks_like_description(file_path: Path) -> bool:
    name = file_path.name.lower()
    return any(token in name for token in ("openapi", "swagger", "api"))


def parse_spec_file(file_path: str | Path) -> Optional[ParsedSpec]:
    """Load one description file and compile its tools.

    Returns None when the file cannot be loaded; other files are
    unaffected.
    """
    path = Path(file_path)
    try:
        document = load_document(path)
    except SpecLoadError as e:
        if _looks_like_description(path):
            logger.error("Failed to parse OpenAPI spec at %s: %s", path, e.reason)
        else:
            logger.info("Skipping %s - not a valid OpenAPI specification", path.name)
        return None

    api_name = api_name_from_file(path)
    tools = compile_tools(document, api_name)
    logger.debug("Compiled %d tools from %s", len(tools), path)
    return ParsedSpec(api_name=api_name, file_path=str(path), document=document, tools=tools)
