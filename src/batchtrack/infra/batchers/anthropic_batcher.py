"""Anthropic Message Batches adapter."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import Any

import anthropic

from batchtrack.exceptions import ProviderError
from batchtrack.infra.batchers.base import Batcher, BatchResult
from batchtrack.models import BatchStatus, MessageInput, MessageStatus, Model, TokenUsage

logger = logging.getLogger(__name__)

# Anthropic processing_status → BatchStatus mapping. Unknown values → ENDED.
_STATUS_MAP: dict[str, BatchStatus] = {
    "in_progress": BatchStatus.IN_PROGRESS,
    "canceling": BatchStatus.CANCELING,
    "ended": BatchStatus.ENDED,
}

# Anthropic result.type → MessageStatus mapping
_RESULT_MAP: dict[str, MessageStatus] = {
    "succeeded": MessageStatus.SUCCEEDED,
    "errored": MessageStatus.ERRORED,
    "canceled": MessageStatus.CANCELED,
    "expired": MessageStatus.EXPIRED,
}


def map_status(processing_status: str | None) -> BatchStatus:
    return _STATUS_MAP.get(processing_status or "", BatchStatus.ENDED)


def anthropic_model(name: str, params: dict[str, Any] | None = None) -> Model:
    """Build a Model for the Messages API.

    ``params`` are passed through to every request (``max_tokens``,
    ``temperature``, ``thinking``...). With extended thinking enabled the
    answer is the second content block.
    """
    params = {"model": name, **(params or {})}
    params.setdefault("max_tokens", 4096)
    thinking = params.get("thinking") or {}
    content_index = 1 if thinking.get("type") == "enabled" else 0
    return Model(name=name, params=params, content_index=content_index)


class AnthropicBatcher(Batcher[anthropic.Anthropic]):
    """Batcher on top of ``client.messages.batches``."""

    provider_name = "anthropic"

    def _submit(self, messages: Sequence[MessageInput]) -> tuple[str, BatchStatus]:
        requests = [self._build_batch_request(m) for m in messages]
        try:
            batch = self.client.messages.batches.create(requests=requests)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic batch submission failed: {e}") from e
        logger.debug("Submitted Anthropic batch %s (%d requests)", batch.id, len(requests))
        return batch.id, map_status(batch.processing_status)

    def _fetch_job(self, batch_id: str) -> tuple[BatchStatus, Any]:
        try:
            batch = self.client.messages.batches.retrieve(batch_id)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic batch retrieve failed: {e}") from e
        status = map_status(getattr(batch, "processing_status", None))
        logger.debug("Anthropic batch %s status: %s", batch_id, status.value)
        return status, batch

    def _iter_results(self, batch_id: str, job: Any) -> Iterator[BatchResult]:
        try:
            for entry in self.client.messages.batches.results(batch_id):
                yield self._parse_entry(entry)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic batch results failed: {e}") from e

    def _parse_entry(self, entry: Any) -> BatchResult:
        custom_id = entry.custom_id
        result = entry.result
        status = _RESULT_MAP.get(result.type, MessageStatus.ERRORED)

        if status is not MessageStatus.SUCCEEDED:
            return BatchResult(custom_id=custom_id, status=status, error=_error_message(result))

        message = result.message
        index = self.model.content_index
        if index >= len(message.content):
            return BatchResult(custom_id=custom_id, status=status, content_kind="missing")

        block = message.content[index]
        usage = message.usage
        return BatchResult(
            custom_id=custom_id,
            status=status,
            content_kind=block.type,
            text=getattr(block, "text", None) if block.type == "text" else None,
            usage=TokenUsage(
                input_tokens=getattr(usage, "input_tokens", None),
                output_tokens=getattr(usage, "output_tokens", None),
                cache_creation_input_tokens=getattr(usage, "cache_creation_input_tokens", None),
                cache_read_input_tokens=getattr(usage, "cache_read_input_tokens", None),
            ),
        )

    def _build_batch_request(self, message: MessageInput) -> dict:
        """Convert a MessageInput to Anthropic batch request format."""
        system: dict[str, Any] = {"type": "text", "text": self.prompt.text}
        if self.prompt.cache:
            system["cache_control"] = {"type": "ephemeral"}

        return {
            "custom_id": message.id,
            "params": {
                **self.model.params,
                "system": [system],
                "messages": [{"role": "user", "content": message.content}],
            },
        }


def _error_message(result: Any) -> str | None:
    """Provider error text of an errored result; None for canceled/expired."""
    if result.type != "errored":
        return None
    error = getattr(result, "error", None)
    # ErrorResponse wraps the actual error object: result.error.error.message
    inner = getattr(error, "error", error)
    message = getattr(inner, "message", None)
    return message if message is not None else str(error)
