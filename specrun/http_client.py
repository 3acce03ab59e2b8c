"""Execute one tool call as an HTTP request.

``HttpClient.execute_request`` never raises: every outcome, including
connection failures, comes back as an ApiCallResult.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .auth import apply_authentication
from .models import ApiCallResult, AuthRecord, ToolDefinition

logger = logging.getLogger(__name__)

USER_AGENT = "specrun/1.0.0"
REQUEST_TIMEOUT = 30.0

# Header values never written to debug logs
_REDACT_HEADERS = {"authorization", "x-api-key"}

_DEBUG_ENV_VARS = ("SPECRUN_HTTP_DEBUG", "SPECRUN_DEBUG_HTTP")


@dataclass
class PreparedRequest:
    method: str
    url: str
    headers: dict[str, str]
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _query_pairs(params: dict[str, Any]) -> list[tuple[str, str]]:
    """Flatten query params: lists repeat the key, objects become JSON text."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _stringify(entry)) for entry in value)
        elif isinstance(value, dict):
            pairs.append((key, json.dumps(value, separators=(",", ":"))))
        else:
            pairs.append((key, _stringify(value)))
    return pairs


def build_url(tool: ToolDefinition, args: dict[str, Any]) -> str:
    """Join base URL and path, filling in supplied path parameters."""
    url = tool.base_url.rstrip("/") + tool.path
    for param in tool.parameters:
        if param.location == "path" and args.get(param.name) is not None:
            url = url.replace(f"{{{param.name}}}", quote(_stringify(args[param.name]), safe="!'()*"))
    return url


def build_request_body(tool: ToolDefinition, args: dict[str, Any]) -> Any:
    """Pick the request body from the arguments.

    Precedence: ``body``, then ``requestBody``, then (for tools without a
    formal request body) the value of a body-location parameter, then
    every argument that is not a declared parameter.
    """
    if args.get("body") is not None:
        return args["body"]
    if args.get("requestBody") is not None:
        return args["requestBody"]

    if not tool.request_body:
        body_param = next((p for p in tool.parameters if p.location == "body"), None)
        if body_param is not None and args.get(body_param.name) is not None:
            return args[body_param.name]

    declared = tool.parameter_names
    leftovers = {
        key: value
        for key, value in args.items()
        if key not in declared and key not in ("body", "requestBody")
    }
    return leftovers or None


def build_request(
    tool: ToolDefinition,
    args: dict[str, Any],
    auth: Optional[AuthRecord] = None,
) -> PreparedRequest:
    """Assemble method, URL, headers, query and body for one call."""
    url = build_url(tool, args)

    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    headers = apply_authentication(headers, auth)

    params: dict[str, Any] = {}
    for param in tool.parameters:
        value = args.get(param.name)
        if value is None:
            continue
        if param.location == "header":
            # Header names are case-insensitive; the parameter replaces any match
            for existing in [k for k in headers if k.lower() == param.name.lower()]:
                del headers[existing]
            headers[param.name] = _stringify(value)
        elif param.location == "query":
            params[param.name] = value

    body = build_request_body(tool, args)
    if body is not None and not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = "application/json"

    return PreparedRequest(method=tool.method.upper(), url=url, headers=headers, params=params, body=body)


def build_request_url(url: str, params: dict[str, Any]) -> str:
    """Render the full URL including query string, as it was requested."""
    if not url or not params:
        return url
    try:
        return str(httpx.URL(url).copy_merge_params(_query_pairs(params)))
    except (httpx.InvalidURL, TypeError, ValueError):
        return url


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _redact(headers: Any) -> dict[str, str]:
    return {
        key: "[redacted]" if key.lower() in _REDACT_HEADERS else value
        for key, value in dict(headers).items()
    }


def http_debug_enabled() -> bool:
    """Check the SPECRUN_HTTP_DEBUG switch."""
    for var in _DEBUG_ENV_VARS:
        if os.environ.get(var, "").lower() in ("1", "true", "yes"):
            return True
    return False


class HttpClient:
    """Issues tool requests over httpx."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    async def _send(self, request: PreparedRequest) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            kwargs: dict[str, Any] = {"headers": request.headers}
            if request.params:
                kwargs["params"] = _query_pairs(request.params)
            if request.body is not None:
                kwargs["json"] = request.body
            return await client.request(request.method, request.url, **kwargs)

    async def execute_request(
        self,
        tool: ToolDefinition,
        args: dict[str, Any],
        auth: Optional[AuthRecord] = None,
    ) -> ApiCallResult:
        """Build, send and normalize one request."""
        request: Optional[PreparedRequest] = None
        try:
            request = build_request(tool, args, auth)
            self._log_request(request)
            response = await self._send(request)
            self._log_response(response)
            return ApiCallResult(
                request_url=build_request_url(request.url, request.params),
                request_body=request.body,
                status=response.status_code,
                body=_decode_body(response),
            )
        except httpx.TransportError as e:
            self._log_error(e)
            return ApiCallResult(
                request_url=build_request_url(request.url, request.params) if request else "",
                request_body=request.body if request else None,
                status="Unknown",
                body=None,
            )
        except Exception as e:
            logger.warning("Request for %s failed: %s", tool.name, e)
            return ApiCallResult(
                request_url=build_request_url(request.url, request.params) if request else "",
                request_body=request.body if request else None,
                status="Error",
                body={"error": str(e)},
            )

    def _log_request(self, request: PreparedRequest) -> None:
        if not http_debug_enabled():
            return
        logger.debug("HTTP Request: %s", json.dumps({
            "method": request.method,
            "url": request.url,
            "headers": _redact(request.headers),
            "params": request.params,
            "data": request.body,
        }, indent=2, default=str))

    def _log_response(self, response: httpx.Response) -> None:
        if not http_debug_enabled():
            return
        logger.debug("HTTP Response: %s", json.dumps({
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "headers": _redact(response.headers),
            "data": _decode_body(response),
        }, indent=2, default=str))

    def _log_error(self, error: httpx.TransportError) -> None:
        if not http_debug_enabled():
            return
        logger.debug("HTTP Error: %s (%s)", error, type(error).__name__)
