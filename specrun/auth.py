"""Credentials from environment variables.

Naming convention, per API name (upper-cased namespace):
  {NAME}_API_KEY       -> apiKey, sent as X-API-Key
  {NAME}_BEARER_TOKEN  -> bearer
  {NAME}_TOKEN         -> bearer
  {NAME}_USERNAME      -> basic (username)
  {NAME}_PASSWORD      -> basic (password)
  {NAME}_SERVER_URL    -> base URL override (see loader.resolve_server_url)

Values come from the process environment overlaid with ``<specs>/.env``.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from pathlib import Path
from typing import Iterable, Mapping, Optional

from dotenv import dotenv_values

from .models import AuthRecord
from .naming import api_name_from_file

logger = logging.getLogger(__name__)

ENV_FILE_NAME = ".env"
ENV_PLACEHOLDER_COMMENT = "# SpecRun placeholders"
DEFAULT_API_KEY_HEADER = "X-API-Key"

_ENV_KEY_RE = re.compile(r"^([A-Z0-9_]+)\s*=")

# Checked in order; the first matching rule classifies the variable.
# (pattern, auth type, record field, substring that disqualifies the key)
_RULES: list[tuple[re.Pattern, str, str, Optional[str]]] = [
    (re.compile(r"^(.+)_API_KEY$"), "apiKey", "token", None),
    (re.compile(r"^(.+)_BEARER_TOKEN$"), "bearer", "token", None),
    (re.compile(r"^(.+)_TOKEN$"), "bearer", "token", "BEARER"),
    (re.compile(r"^(.+)_USERNAME$"), "basic", "username", None),
    (re.compile(r"^(.+)_PASSWORD$"), "basic", "password", None),
]


def _classify(key: str) -> Optional[tuple[str, str, str]]:
    """Return (api_name, auth_type, field) for a recognized variable name."""
    for pattern, auth_type, field, excluded in _RULES:
        match = pattern.match(key)
        if not match or (excluded and excluded in key):
            continue
        return match.group(1).lower(), auth_type, field
    return None


def build_auth_records(env: Mapping[str, str]) -> dict[str, AuthRecord]:
    """Derive the full set of auth records from an environment mapping.

    The first variable seen for an API fixes its type; a later bearer
    variable upgrades it to bearer. No other transition happens, so the
    result depends on the mapping's iteration order.
    """
    records: dict[str, AuthRecord] = {}
    for key, value in env.items():
        if not value:
            continue
        classified = _classify(key)
        if classified is None:
            continue
        api_name, auth_type, field = classified

        record = records.get(api_name)
        if record is None:
            record = records[api_name] = AuthRecord(type=auth_type)
        if auth_type == "bearer" and record.type != "bearer":
            record.type = "bearer"

        setattr(record, field, value)

        if auth_type == "apiKey" and not record.header_name:
            record.header_name = DEFAULT_API_KEY_HEADER

    return records


def load_env_file(specs_dir: Path) -> None:
    """Overlay ``<specs>/.env`` onto the process environment."""
    env_path = specs_dir / ENV_FILE_NAME
    if not env_path.exists():
        return
    for key, value in dotenv_values(env_path).items():
        if value is not None:
            os.environ[key] = value


def load_auth_config(specs_dir: Path) -> dict[str, AuthRecord]:
    """Reload the .env file and rebuild every auth record."""
    load_env_file(specs_dir)
    records = build_auth_records(os.environ)
    logger.debug("Loaded auth for %d APIs: %s", len(records), ", ".join(sorted(records)))
    return records


def apply_authentication(headers: dict[str, str], record: Optional[AuthRecord]) -> dict[str, str]:
    """Return a copy of headers with the record's credentials applied."""
    if record is None:
        return headers

    result = dict(headers)
    if record.type == "bearer":
        if record.token:
            result["Authorization"] = f"Bearer {record.token}"
    elif record.type == "apiKey":
        if record.token and record.header_name:
            result[record.header_name] = record.token
    elif record.type == "basic":
        if record.username and record.password:
            credentials = base64.b64encode(f"{record.username}:{record.password}".encode()).decode()
            result["Authorization"] = f"Basic {credentials}"
    return result


def _existing_env_keys(content: str) -> set[str]:
    keys = set()
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _ENV_KEY_RE.match(stripped)
        if match:
            keys.add(match.group(1))
    return keys


def ensure_env_keys_for_specs(specs_dir: Path, spec_files: Iterable[str | Path]) -> list[str]:
    """Append empty ``_SERVER_URL`` / ``_BEARER_TOKEN`` entries for new APIs.

    Returns the keys that were added.
    """
    env_path = specs_dir / ENV_FILE_NAME
    content = env_path.read_text(encoding="utf-8") if env_path.exists() else ""
    existing = _existing_env_keys(content)

    missing: list[str] = []
    for spec_file in spec_files:
        api_name = api_name_from_file(spec_file)
        if not api_name:
            continue
        prefix = api_name.upper()
        for key in (f"{prefix}_SERVER_URL", f"{prefix}_BEARER_TOKEN"):
            if key not in existing and key not in missing:
                missing.append(key)

    if not missing:
        return []

    additions = []
    if ENV_PLACEHOLDER_COMMENT not in content:
        additions.append(ENV_PLACEHOLDER_COMMENT)
    additions.extend(f"{key}=" for key in missing)

    separator = "\n" if content and not content.endswith("\n") else ""
    env_path.write_text(f"{content}{separator}" + "\n".join(additions) + "\n", encoding="utf-8")
    logger.info("Added %d placeholder keys to %s", len(missing), env_path)
    return missing
