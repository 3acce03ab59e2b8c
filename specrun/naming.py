"""Derive API namespaces and tool names.

Namespace: lower-cased file stem with a trailing swagger/openapi token
removed and non-alphanumeric runs collapsed to ``_``.

Tool name pattern: {namespace}_{operationId}, or when the operation has
no operationId, {namespace}_{verb}_{static path segments}.

Examples:
  cars.openapi.yaml, operationId addCar      -> cars_addCar
  petstore-swagger.json, GET /pets/{petId}   -> petstore_get_pets
  my api.yml, GET /                          -> my_api_get_root
  cars.json, GET /v1/car-models/{id}/photos  -> cars_get_v1_carmodels_photos
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

_SUFFIX_RE = re.compile(r"[._-](swagger|openapi)$", re.IGNORECASE)
_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def api_name_from_file(file_path: str | Path) -> str:
    """Build the API namespace slug from a description file path."""
    stem = Path(file_path).stem
    stem = _SUFFIX_RE.sub("", stem)
    return _NON_ALNUM_RUN_RE.sub("_", stem.lower()).strip("_")


def _static_segments(path: str) -> list[str]:
    """Non-parameter path segments with non-alphanumerics removed."""
    parts = [p for p in path.split("/") if p and not p.startswith("{")]
    return [_NON_ALNUM_RE.sub("", p) for p in parts]


def build_tool_name(
    namespace: str,
    method: str,
    path: str,
    operation_id: Optional[str] = None,
) -> str:
    """Build a tool name from namespace, HTTP method and path.

    Returns a name like 'cars_addCar' or 'cars_get_cars'.
    """
    if operation_id:
        return f"{namespace}_{operation_id}"

    path_name = "_".join(_static_segments(path)) or "root"
    return f"{namespace}_{method.lower()}_{path_name}"
