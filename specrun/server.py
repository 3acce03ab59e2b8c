"""SpecRun application: owns the catalog and wires the pieces together.

Loading a specs directory compiles every description file into the tool
registry; after that only the env refresh mutates shared state. A
protocol adapter sits on top of ``invoke``, ``run_batch``, the registry
and the response store.
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .auth import ENV_FILE_NAME, ensure_env_keys_for_specs, load_auth_config
from .batch import BatchDispatcher, BatchOutcome
from .compiler import parse_spec_file
from .errors import ToolValidationError, UnknownToolError
from .http_client import HttpClient
from .loader import find_description_files, update_spec_server_urls
from .models import ApiCallResult, AuthRecord, ParsedSpec
from .registry import ToolRegistry
from .reload import EnvReloader, refresh_environment
from .schema_parser import prepare_tool_arguments

logger = logging.getLogger(__name__)

RESPONSE_URI_PREFIX = "specrun://responses"


@dataclass
class PublishedResponse:
    uri: str
    name: str
    description: str
    text: str
    mime_type: str = "application/json"


class ResponseStore:
    """Named JSON payloads published as retrievable resources."""

    def __init__(self) -> None:
        self._responses: dict[str, PublishedResponse] = {}
        self._counter = itertools.count(1)

    def publish(self, name: str, description: str, payload: Any) -> PublishedResponse:
        resource_id = f"{int(time.time() * 1000)}-{next(self._counter)}-{random.randrange(1_000_000)}"
        response = PublishedResponse(
            uri=f"{RESPONSE_URI_PREFIX}/{resource_id}",
            name=name,
            description=description,
            text=json.dumps(payload, indent=2, default=str),
        )
        self._responses[response.uri] = response
        return response

    def get(self, uri: str) -> Optional[PublishedResponse]:
        return self._responses.get(uri)

    def __len__(self) -> int:
        return len(self._responses)


class SpecRun:
    """Loads description documents and executes their tools."""

    def __init__(self, specs_dir: str | Path, http_client: Optional[HttpClient] = None) -> None:
        self.specs_dir = Path(specs_dir).resolve()
        self.env_path = self.specs_dir / ENV_FILE_NAME
        self.registry = ToolRegistry()
        self.parsed_specs: dict[str, ParsedSpec] = {}
        self.auth_config: dict[str, AuthRecord] = {}
        self.http_client = http_client or HttpClient()
        self.responses = ResponseStore()
        self.reloader = EnvReloader(self.env_path, self.refresh_env_config)
        self.batch = BatchDispatcher(
            self.registry,
            self.http_client,
            get_auth=lambda: self.auth_config,
            before_run=self.reloader.refresh_if_changed,
        )

    # -- loading ------------------------------------------------------------

    def load_specs(self) -> int:
        """Compile every description file in the specs directory.

        Returns the number of tools registered.
        """
        files = find_description_files(self.specs_dir)
        ensure_env_keys_for_specs(self.specs_dir, files)
        self.auth_config = load_auth_config(self.specs_dir)
        update_spec_server_urls(files, os.environ)
        self.reloader.mark_current()

        registered = 0
        for file_path in files:
            spec = parse_spec_file(file_path)
            if spec is None:
                continue
            self.parsed_specs[spec.file_path] = spec
            registered += self.registry.register_spec(spec)
            logger.info("Loaded %s: %d tools", spec.api_name, len(spec.tools))

        logger.info(
            "Loaded %d API specifications with %d tools from %s",
            len(self.parsed_specs), registered, self.specs_dir,
        )
        return registered

    def refresh_env_config(self) -> None:
        """Rebuild auth records and base URLs from the current .env."""
        self.auth_config = refresh_environment(self.specs_dir, list(self.parsed_specs.values()), self.registry)

    @property
    def specs(self) -> list[ParsedSpec]:
        return list(self.parsed_specs.values())

    @property
    def tool_count(self) -> int:
        return sum(len(spec.tools) for spec in self.parsed_specs.values())

    # -- execution ----------------------------------------------------------

    async def invoke(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> ApiCallResult:
        """Validate arguments and execute a single tool call.

        Raises UnknownToolError or ToolValidationError before any request
        is made; transport problems come back inside the result.
        """
        self.reloader.refresh_if_changed()
        entry = self.registry.get(tool_name)
        if entry is None:
            raise UnknownToolError(tool_name)

        try:
            args = prepare_tool_arguments(entry.tool, entry.model, arguments or {})
        except ValidationError as e:
            raise ToolValidationError(tool_name, e) from e

        auth = self.auth_config.get(entry.spec.api_name)
        return await self.http_client.execute_request(entry.tool, args, auth)

    async def invoke_and_publish(
        self, tool_name: str, arguments: Optional[dict[str, Any]] = None,
    ) -> PublishedResponse:
        result = await self.invoke(tool_name, arguments)
        return self.responses.publish(
            f"SpecRun Response {tool_name}",
            f"Response for {tool_name}",
            result.to_dict(),
        )

    async def run_batch(
        self,
        tool_name: str,
        items: list[Any],
        fail_fast: bool = False,
        confirm_large_batch: bool = False,
        confirm_large_batch_token: Optional[str] = None,
    ) -> tuple[BatchOutcome, PublishedResponse]:
        """Run a batch and publish its consolidated payload."""
        outcome = await self.batch.run(
            tool_name,
            items,
            fail_fast=fail_fast,
            confirm_large_batch=confirm_large_batch,
            confirm_large_batch_token=confirm_large_batch_token,
        )
        if outcome.confirmation_required:
            name, description = "SpecRun Batch Confirmation Required", "Batch execution confirmation required"
        elif "error" in outcome.payload:
            name, description = "SpecRun Batch Error", "Batch execution error"
        else:
            tool = outcome.payload["toolName"]
            name, description = f"SpecRun Batch {tool}", f"Batch responses for {tool}"
        return outcome, self.responses.publish(name, description, outcome.payload)

    # -- lifecycle ----------------------------------------------------------

    def start_watching(self) -> None:
        self.reloader.start()

    async def stop(self) -> None:
        await self.reloader.stop()
