"""Build pydantic validators from OpenAPI schema fragments.

Handles:
- string / integer / number / boolean scalars (strict, no coercion)
- arrays, recursing into ``items``
- objects, one field per property, with additionalProperties as
  forbid / allow / typed catch-all
- document-local $ref resolution
- anything else (missing type, allOf/oneOf/anyOf, garbage) as Any

Synthesis never raises. Recursion stops at MAX_DEPTH and the remainder
is accepted as Any, which also covers cyclic $ref chains.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
    model_validator,
)

from .loader import resolve_pointer
from .models import ToolDefinition

logger = logging.getLogger(__name__)

MAX_DEPTH = 8

_SCALARS: dict[str, Any] = {
    "string": StrictStr,
    "integer": StrictInt,
    "number": Union[StrictInt, StrictFloat],
    "boolean": StrictBool,
}


def _model_name(name: str) -> str:
    """Turn an arbitrary label into a readable class name."""
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", name) if p]
    return "".join(p[:1].upper() + p[1:] for p in parts) or "Model"


def _resolve(schema: Any, document: Optional[dict[str, Any]]) -> Any:
    """Follow a $ref chain one hop at a time, stopping at the first miss."""
    seen: set[str] = set()
    while isinstance(schema, dict) and "$ref" in schema:
        ref = schema["$ref"]
        if document is None or ref in seen:
            return None
        seen.add(ref)
        schema = resolve_pointer(document, ref)
    return schema


def _aliased_fields(
    entries: list[tuple[str, Any, bool, Optional[str]]],
) -> dict[str, Any]:
    """Build create_model field definitions keyed by internal names.

    External names may be any string (``X-Request-Id``, ``_id``, ``json``),
    so every field gets a neutral attribute name and carries the real
    name as its alias.
    """
    fields: dict[str, Any] = {}
    for index, (name, annotation, required, description) in enumerate(entries):
        if required:
            info = Field(..., alias=name, description=description)
        else:
            info = Field(None, alias=name, description=description)
        fields[f"field_{index}"] = (annotation, info)
    return fields


def _catchall_validator(extra_type: Any):
    """Validate every extra key of an object against one type."""
    adapter = TypeAdapter(extra_type)

    @model_validator(mode="after")
    def _check_extras(self):
        extras = self.__pydantic_extra__ or {}
        for key, value in extras.items():
            try:
                extras[key] = adapter.validate_python(value)
            except ValidationError as e:
                raise ValueError(f"additional property {key!r} is invalid: {e}") from e
        return self

    return _check_extras


def _object_model(
    schema: dict[str, Any],
    document: Optional[dict[str, Any]],
    name: str,
    depth: int,
) -> Any:
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    required = schema.get("required")
    required_set = set(required) if isinstance(required, list) else set()

    entries = []
    for prop_name, prop_schema in properties.items():
        prop_type = schema_to_type(prop_schema, document, f"{name}_{prop_name}", depth + 1)
        entries.append((str(prop_name), prop_type, prop_name in required_set, None))

    additional = schema.get("additionalProperties")
    validators = {}
    if additional is False:
        config = ConfigDict(extra="forbid")
    elif isinstance(additional, dict):
        config = ConfigDict(extra="allow")
        extra_type = schema_to_type(additional, document, f"{name}_extra", depth + 1)
        if extra_type is not Any:
            validators["check_extras"] = _catchall_validator(extra_type)
    else:
        config = ConfigDict(extra="allow")

    return create_model(
        _model_name(name),
        __config__=config,
        __validators__=validators or None,
        **_aliased_fields(entries),
    )


def schema_to_type(
    schema: Any,
    document: Optional[dict[str, Any]] = None,
    name: str = "Object",
    depth: int = 0,
) -> Any:
    """Map one OpenAPI schema fragment to a type pydantic can validate."""
    if depth > MAX_DEPTH:
        return Any

    schema = _resolve(schema, document)
    if not isinstance(schema, dict):
        return Any

    schema_type = schema.get("type")
    if not isinstance(schema_type, str):
        return Any

    try:
        if schema_type in _SCALARS:
            return _SCALARS[schema_type]
        if schema_type == "array":
            items = schema.get("items") or {}
            return list[schema_to_type(items, document, f"{name}_item", depth + 1)]
        if schema_type == "object":
            return _object_model(schema, document, name, depth)
    except Exception:
        # A fragment pydantic refuses to model still must not sink the tool
        logger.warning("Could not build validator for %s; accepting any value", name, exc_info=True)
    return Any


def build_input_model(
    tool: ToolDefinition,
    document: Optional[dict[str, Any]] = None,
) -> type[BaseModel]:
    """Build the validator for a tool's whole argument object.

    One field per parameter, optional unless the parameter is required.
    A declared request body adds an optional ``body`` field and lets the
    model keep unknown keys, so callers can pass the body nested under
    ``body`` or flattened at the top level.
    """
    by_name: dict[str, tuple[str, Any, bool, Optional[str]]] = {}
    for param in tool.parameters:
        field_type = schema_to_type(param.schema, document, f"{tool.name}_{param.name}")
        by_name[param.name] = (param.name, field_type, param.required, param.description)

    if tool.request_body:
        by_name["body"] = ("body", Any, False, "Request body data")

    config = ConfigDict(extra="allow" if tool.request_body else "ignore")
    return create_model(
        f"{_model_name(tool.name)}Input",
        __config__=config,
        **_aliased_fields(list(by_name.values())),
    )


def validate_arguments(model: type[BaseModel], arguments: Any) -> dict[str, Any]:
    """Validate arguments and return the supplied values under their real names.

    Raises pydantic.ValidationError on bad input.
    """
    instance = model.model_validate(arguments)
    return instance.model_dump(by_alias=True, exclude_unset=True)


def prepare_tool_arguments(
    tool: ToolDefinition,
    model: type[BaseModel],
    arguments: Any,
) -> dict[str, Any]:
    """Validate a tool call and keep undeclared keys for the request body.

    Declared parameters come from the validated model; every other key is
    forwarded untouched so the executor can send it as the body.
    """
    validated = validate_arguments(model, arguments)
    declared = tool.parameter_names
    passthrough = {k: v for k, v in arguments.items() if k not in declared}
    return {**passthrough, **validated}
