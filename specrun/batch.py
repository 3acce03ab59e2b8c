"""Run one tool over many argument sets.

Batches larger than LARGE_BATCH_THRESHOLD need a confirmation token.
The first oversized call executes nothing and hands back a token bound
to the tool name and item count; repeating the call with that token
(within the TTL) runs the batch. Tokens are single-use.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .http_client import HttpClient
from .models import AuthRecord
from .registry import ToolRegistry
from .schema_parser import prepare_tool_arguments

logger = logging.getLogger(__name__)

BATCH_TOOL_NAME = "specrun_batch"
LARGE_BATCH_THRESHOLD = 200
LARGE_BATCH_TOKEN_TTL_SECONDS = 5 * 60

_TOOL_NAME_PREFIXES = ("mcp_specrun_", "specrun_")

CONFIRMATION_MESSAGE = (
    f"Batch execution over {LARGE_BATCH_THRESHOLD} items requires user confirmation."
    " Re-run with confirmLargeBatch: true and confirmLargeBatchToken to proceed."
)
CONFIRMATION_PROMPT = (
    "Confirmation required: ask the user to approve this batch, then retry with"
    " confirmLargeBatch: true and the provided confirmLargeBatchToken."
)


def normalize_tool_name(value: str) -> str:
    """Strip whitespace and a protocol-side tool prefix."""
    trimmed = value.strip()
    for prefix in _TOOL_NAME_PREFIXES:
        if trimmed.startswith(prefix):
            return trimmed[len(prefix):]
    return trimmed


@dataclass
class _PendingConfirmation:
    tool_name: str
    count: int
    expires_at: float


class ConfirmationStore:
    """In-memory single-use tokens for large batches.

    Expired tokens are dropped when they are looked up. ``consume`` does
    not await, so a token cannot be accepted twice.
    """

    def __init__(
        self,
        ttl: float = LARGE_BATCH_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._pending: dict[str, _PendingConfirmation] = {}

    def issue(self, tool_name: str, count: int) -> str:
        token = str(uuid.uuid4())
        self._pending[token] = _PendingConfirmation(tool_name, count, self._clock() + self.ttl)
        return token

    def consume(self, token: str, tool_name: str, count: int) -> bool:
        """Accept and invalidate a token if it matches this batch."""
        if not token:
            return False
        pending = self._pending.get(token)
        if pending is None:
            return False
        if pending.expires_at <= self._clock():
            del self._pending[token]
            return False
        if pending.tool_name != tool_name or pending.count != count:
            return False
        del self._pending[token]
        return True

    def __len__(self) -> int:
        return len(self._pending)


@dataclass
class BatchOutcome:
    """What a batch call produced, ready to publish to the caller."""

    payload: dict[str, Any]
    is_error: bool = False
    confirmation_required: bool = False
    message: Optional[str] = None
    executed: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)


class BatchDispatcher:
    """Validates and executes batch items strictly in order."""

    def __init__(
        self,
        registry: ToolRegistry,
        http_client: HttpClient,
        get_auth: Callable[[], dict[str, AuthRecord]],
        confirmations: Optional[ConfirmationStore] = None,
        before_run: Optional[Callable[[], None]] = None,
    ) -> None:
        self.registry = registry
        self.http_client = http_client
        self.get_auth = get_auth
        self.confirmations = confirmations or ConfirmationStore()
        self.before_run = before_run

    async def run(
        self,
        tool_name: str,
        items: list[Any],
        fail_fast: bool = False,
        confirm_large_batch: bool = False,
        confirm_large_batch_token: Optional[str] = None,
    ) -> BatchOutcome:
        if self.before_run is not None:
            self.before_run()

        normalized = normalize_tool_name(str(tool_name or ""))
        entry = self.registry.get(normalized)
        if entry is None:
            return BatchOutcome(
                payload={
                    "toolName": tool_name,
                    "normalizedToolName": normalized,
                    "error": f"Unknown tool: {normalized}",
                },
                is_error=True,
            )

        items = list(items) if isinstance(items, (list, tuple)) else []
        count = len(items)

        if count > LARGE_BATCH_THRESHOLD and not (
            confirm_large_batch
            and self.confirmations.consume(confirm_large_batch_token or "", normalized, count)
        ):
            token = self.confirmations.issue(normalized, count)
            logger.info("Batch of %d items for %s needs confirmation", count, normalized)
            return BatchOutcome(
                payload={
                    "toolName": normalized,
                    "count": count,
                    "threshold": LARGE_BATCH_THRESHOLD,
                    "confirmLargeBatchToken": token,
                    "confirmLargeBatchTokenTtlMs": int(self.confirmations.ttl * 1000),
                    "message": CONFIRMATION_MESSAGE,
                },
                is_error=True,
                confirmation_required=True,
                message=CONFIRMATION_PROMPT,
            )

        results: list[dict[str, Any]] = []
        executed = 0
        for index, item_args in enumerate(items):
            try:
                args = prepare_tool_arguments(entry.tool, entry.model, item_args)
            except ValidationError as e:
                results.append({"index": index, "error": str(e)})
                if fail_fast:
                    break
                continue

            try:
                auth = self.get_auth().get(entry.spec.api_name)
                output = await self.http_client.execute_request(entry.tool, args, auth)
            except Exception as e:
                logger.warning("Batch item %d of %s failed: %s", index, normalized, e)
                results.append({"index": index, "error": str(e)})
                if fail_fast:
                    break
                continue

            executed += 1
            results.append({"index": index, "result": output.to_dict()})

        return BatchOutcome(
            payload={"toolName": normalized, "count": count, "results": results},
            executed=executed,
            results=results,
        )
