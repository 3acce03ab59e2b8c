"""Tool registry: the single lookup table for execution, batch and listing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from pydantic import BaseModel

from .models import ParsedSpec, ToolDefinition
from .schema_parser import build_input_model

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    spec: ParsedSpec
    tool: ToolDefinition
    model: type[BaseModel]


class ToolRegistry:
    """Map of tool name to its spec, definition and argument validator.

    Writes only happen while specs are loaded; everything else reads.
    A name registered twice keeps the later definition.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}

    def register_spec(self, spec: ParsedSpec) -> int:
        """Register every tool of a parsed spec. Returns how many were added."""
        for tool in spec.tools:
            self.register(spec, tool)
        return len(spec.tools)

    def register(self, spec: ParsedSpec, tool: ToolDefinition) -> RegistryEntry:
        if tool.name in self._entries:
            logger.warning("Tool %s from %s replaces an earlier definition", tool.name, spec.file_path)
        entry = RegistryEntry(spec=spec, tool=tool, model=build_input_model(tool, spec.document))
        self._entries[tool.name] = entry
        return entry

    def get(self, name: str) -> Optional[RegistryEntry]:
        return self._entries.get(name)

    def entries_for_api(self, api_name: str) -> list[RegistryEntry]:
        return [e for e in self._entries.values() if e.spec.api_name == api_name]

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
