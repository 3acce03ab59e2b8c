"""Load and validate OpenAPI / Swagger description documents.

Reads .json/.yaml/.yml files, checks they look like an API description,
and walks document-local $ref pointers. Also owns the on-disk rewrite of
server URLs when ``{NAME}_SERVER_URL`` is configured.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

import yaml

from .errors import SpecLoadError
from .naming import api_name_from_file

logger = logging.getLogger(__name__)

DESCRIPTION_EXTENSIONS = {".json", ".yaml", ".yml"}

# Common project files that share an extension with description documents
_SKIP_FILES = {
    "package.json",
    "package-lock.json",
    "tsconfig.json",
    ".eslintrc.json",
    "jest.config.json",
}


def is_description_file(path: str | Path) -> bool:
    """Check whether a filename could hold an API description."""
    p = Path(path)
    if p.suffix.lower() not in DESCRIPTION_EXTENSIONS:
        return False
    return p.name.lower() not in _SKIP_FILES


def find_description_files(specs_dir: Path) -> list[Path]:
    """List candidate description files in a directory, creating it if missing."""
    if not specs_dir.exists():
        specs_dir.mkdir(parents=True, exist_ok=True)
        return []
    files = [p for p in sorted(specs_dir.iterdir()) if p.is_file() and is_description_file(p)]
    logger.debug("Found %d description files in %s", len(files), specs_dir)
    return files


def _read_document(path: Path) -> tuple[Any, str]:
    """Parse a file as JSON or YAML depending on its extension."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text), "json"
    return yaml.safe_load(text), "yaml"


def validate_document(document: Any, path: str) -> dict[str, Any]:
    """Check the structural minimum of an OpenAPI 3.x / Swagger 2.0 document."""
    if not isinstance(document, dict):
        raise SpecLoadError(path, "document root is not an object")

    if "openapi" in document:
        if not str(document["openapi"]).startswith("3."):
            raise SpecLoadError(path, f"unsupported openapi version {document['openapi']!r}")
    elif "swagger" in document:
        if str(document["swagger"]) != "2.0":
            raise SpecLoadError(path, f"unsupported swagger version {document['swagger']!r}")
    else:
        raise SpecLoadError(path, "missing 'openapi' or 'swagger' version field")

    if not isinstance(document.get("info"), dict):
        raise SpecLoadError(path, "missing 'info' object")

    paths = document.get("paths", {})
    if paths is not None and not isinstance(paths, dict):
        raise SpecLoadError(path, "'paths' is not an object")

    return document


def load_document(path: str | Path) -> dict[str, Any]:
    """Read and validate one description document."""
    p = Path(path)
    try:
        document, _ = _read_document(p)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise SpecLoadError(str(p), f"could not parse: {e}") from e
    return validate_document(document, str(p))


def resolve_pointer(document: Any, ref: str) -> Optional[Any]:
    """Walk a document-local JSON pointer like ``#/components/schemas/Car``.

    Returns None for external refs or pointers that lead nowhere.
    """
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return None

    node = document
    for raw in ref[2:].split("/"):
        part = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node


def get_paths(document: dict[str, Any]) -> dict[str, Any]:
    """Extract paths from the document."""
    return document.get("paths") or {}


# ---------------------------------------------------------------------------
# Server URL persistence
# ---------------------------------------------------------------------------

def resolve_server_url(api_name: str, env: Mapping[str, str]) -> Optional[str]:
    """Return the trimmed ``{NAME}_SERVER_URL`` value, if set."""
    value = env.get(f"{api_name.upper()}_SERVER_URL")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _apply_openapi3_server_url(document: dict[str, Any], url: str) -> bool:
    servers = document.get("servers")
    if isinstance(servers, list) and servers:
        first = servers[0]
        if not isinstance(first, dict) or first.get("url") != url:
            servers[0] = {**(first if isinstance(first, dict) else {}), "url": url}
            return True
        return False
    document["servers"] = [{"url": url}]
    return True


def _apply_swagger2_server_url(document: dict[str, Any], url: str) -> bool:
    updated = False
    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        has_path = bool(parts.path) and parts.path != "/"
        schemes = document.get("schemes")
        if not isinstance(schemes, list) or not schemes or schemes[0] != parts.scheme:
            document["schemes"] = [parts.scheme]
            updated = True
        if document.get("host") != parts.netloc:
            document["host"] = parts.netloc
            updated = True
        if has_path and document.get("basePath") != parts.path:
            document["basePath"] = parts.path
            updated = True

    if "servers" in document:
        del document["servers"]
        updated = True
    return updated


def apply_server_url(document: dict[str, Any], url: str) -> bool:
    """Point a document at a new server. Returns True if anything changed."""
    if document.get("swagger") == "2.0":
        return _apply_swagger2_server_url(document, url)
    if document.get("openapi"):
        return _apply_openapi3_server_url(document, url)
    return False


def update_spec_server_urls(files: list[str] | list[Path], env: Mapping[str, str]) -> None:
    """Rewrite description files whose API has ``{NAME}_SERVER_URL`` set."""
    for file_path in files:
        path = Path(file_path)
        api_name = api_name_from_file(path)
        if not api_name:
            continue

        url = resolve_server_url(api_name, env)
        if not url:
            continue

        try:
            document, fmt = _read_document(path)
        except (OSError, ValueError, yaml.YAMLError):
            logger.warning("Could not read %s to update its server URL", path)
            continue
        if not isinstance(document, dict):
            continue

        if not apply_server_url(document, url):
            continue

        if fmt == "json":
            path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        logger.info("Updated server URL of %s to %s", path.name, url)
