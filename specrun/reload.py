"""Pick up .env edits without recompiling the catalog.

A change to ``<specs>/.env`` rebuilds every auth record and re-points
the base URL of already compiled tools for APIs that have
``{NAME}_SERVER_URL`` set. The tool objects are updated in place, so
anything holding a reference sees the new URL.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from .auth import load_auth_config
from .compiler import resolve_tool_base_url
from .loader import resolve_server_url, update_spec_server_urls
from .models import AuthRecord, ParsedSpec
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

WATCH_DEBOUNCE_SECONDS = 0.05
WATCH_POLL_SECONDS = 0.5


def update_tool_base_urls(
    specs: Iterable[ParsedSpec],
    registry: ToolRegistry,
    env: Mapping[str, str],
) -> int:
    """Push ``{NAME}_SERVER_URL`` onto every compiled tool of each API.

    Returns the number of tools touched.
    """
    touched = 0
    for spec in specs:
        server_url = resolve_server_url(spec.api_name, env)
        if not server_url:
            continue
        base_url = resolve_tool_base_url(spec.document, server_url)

        for tool in spec.tools:
            tool.base_url = base_url
            touched += 1
        # Entries may hold a different object when a name was re-registered
        for entry in registry.entries_for_api(spec.api_name):
            entry.tool.base_url = base_url

        logger.info("Base URL for %s is now %s", spec.api_name, base_url)
    return touched


def refresh_environment(
    specs_dir: Path,
    specs: list[ParsedSpec],
    registry: ToolRegistry,
) -> dict[str, AuthRecord]:
    """Reload credentials and server URLs. Never awaits."""
    auth = load_auth_config(specs_dir)
    update_spec_server_urls([s.file_path for s in specs], os.environ)
    update_tool_base_urls(specs, registry, os.environ)
    return auth


class EnvReloader:
    """Tracks the .env file and calls ``on_change`` when it changes.

    Changes are noticed two ways: ``refresh_if_changed`` compares the
    file's mtime whenever a tool runs, and ``watch`` polls in the
    background with a short debounce.
    """

    def __init__(
        self,
        env_path: Path,
        on_change: Callable[[], None],
        debounce: float = WATCH_DEBOUNCE_SECONDS,
        poll_interval: float = WATCH_POLL_SECONDS,
    ) -> None:
        self.env_path = env_path
        self.on_change = on_change
        self.debounce = debounce
        self.poll_interval = poll_interval
        self._last_mtime: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    def _mtime(self) -> Optional[float]:
        try:
            return self.env_path.stat().st_mtime
        except OSError:
            return None

    def mark_current(self) -> None:
        """Record the current mtime as already applied."""
        self._last_mtime = self._mtime()

    def refresh_if_changed(self, force: bool = False) -> bool:
        """Run ``on_change`` if the file changed since the last refresh.

        A failed refresh is logged and leaves the previous state in place;
        the mtime is not recorded, so the next call tries again.
        """
        current = self._mtime()
        if not force and current == self._last_mtime:
            return False
        try:
            self.on_change()
        except Exception:
            logger.exception("Failed to reload %s; keeping previous configuration", self.env_path)
            return False
        self._last_mtime = current
        return True

    async def watch(self) -> None:
        """Poll the file until cancelled, refreshing once edits settle."""
        while True:
            await asyncio.sleep(self.poll_interval)
            if self._mtime() == self._last_mtime:
                continue
            # Let a burst of writes finish before reloading
            seen = self._mtime()
            while True:
                await asyncio.sleep(self.debounce)
                latest = self._mtime()
                if latest == seen:
                    break
                seen = latest
            logger.debug("%s changed, refreshing environment", self.env_path)
            self.refresh_if_changed(force=True)

    def start(self) -> None:
        """Start the background watcher on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.watch())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
