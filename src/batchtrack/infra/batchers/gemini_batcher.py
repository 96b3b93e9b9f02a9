"""Google Gemini Batch API adapter (google-genai SDK).

Requests are staged as one JSONL file in an ObjectStore and the job reads
them from there; results come back as a JSONL file keyed by message id.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from typing import Any

from google import genai
from google.genai import errors

from batchtrack.exceptions import ProviderError
from batchtrack.infra.batchers.base import Batcher, BatchResult, OnError
from batchtrack.infra.object_store import ObjectStore
from batchtrack.infra.storage import Storage
from batchtrack.models import (
    BatchStatus,
    MessageInput,
    MessageStatus,
    MessageUpdate,
    Model,
    Prompt,
    TokenUsage,
)

logger = logging.getLogger(__name__)

# Gemini / Vertex JobState → BatchStatus. Names and numeric codes both occur.
_IN_PROGRESS = {
    "JOB_STATE_QUEUED",
    "JOB_STATE_PENDING",
    "JOB_STATE_RUNNING",
    "JOB_STATE_PAUSED",
    "JOB_STATE_UPDATING",
}
_IN_PROGRESS_CODES = {1, 2, 3, 8, 10}
_CANCELING = "JOB_STATE_CANCELLING"
_CANCELING_CODE = 6

# Terminal job state → status of messages that never got a result
_LEFTOVER_STATUS: dict[str, MessageStatus] = {
    "JOB_STATE_CANCELLED": MessageStatus.CANCELED,
    "JOB_STATE_EXPIRED": MessageStatus.EXPIRED,
}
_STATE_NAMES = {
    4: "JOB_STATE_SUCCEEDED",
    5: "JOB_STATE_FAILED",
    7: "JOB_STATE_CANCELLED",
    9: "JOB_STATE_EXPIRED",
    11: "JOB_STATE_PARTIALLY_SUCCEEDED",
}


def _state_name(state: Any) -> str | None:
    if state is None:
        return None
    if isinstance(state, int) and not isinstance(state, bool):
        return _STATE_NAMES.get(state, str(state))
    return str(getattr(state, "value", state))


def map_state(state: Any) -> BatchStatus:
    """Map a job state (enum, name or numeric code) to a canonical status.

    Absent or unknown states are treated as ended.
    """
    if state is None:
        return BatchStatus.ENDED
    if isinstance(state, int) and not isinstance(state, bool):
        if state in _IN_PROGRESS_CODES:
            return BatchStatus.IN_PROGRESS
        if state == _CANCELING_CODE:
            return BatchStatus.CANCELING
        return BatchStatus.ENDED

    name = _state_name(state)
    if name in _IN_PROGRESS:
        return BatchStatus.IN_PROGRESS
    if name == _CANCELING:
        return BatchStatus.CANCELING
    return BatchStatus.ENDED


def gemini_model(name: str, config: dict[str, Any] | None = None) -> Model:
    """Build a Model for Gemini; ``config`` is the generation config.

    With ``thinking_config.include_thoughts`` the response starts with a thought
    summary part, so the answer is the second part.
    """
    config = dict(config or {})
    thinking = config.get("thinking_config") or {}
    content_index = 1 if thinking.get("include_thoughts") else 0
    return Model(name=name, params=config, content_index=content_index)


def _part_kind(part: dict) -> str:
    if part.get("thought"):
        return "thought"
    if "text" in part:
        return "text"
    return next(iter(part), "empty")


def _usage(response: dict) -> TokenUsage:
    meta = response.get("usageMetadata") or response.get("usage_metadata") or {}
    return TokenUsage(
        input_tokens=meta.get("promptTokenCount", meta.get("prompt_token_count")),
        output_tokens=meta.get("candidatesTokenCount", meta.get("candidates_token_count")),
        cache_read_input_tokens=meta.get(
            "cachedContentTokenCount", meta.get("cached_content_token_count")
        ),
    )


class GeminiBatcher(Batcher[genai.Client]):
    """Batcher on top of ``client.batches`` with file-staged input."""

    provider_name = "gemini"

    def __init__(
        self,
        storage: Storage,
        client: genai.Client,
        model: Model,
        prompt: Prompt,
        object_store: ObjectStore,
    ) -> None:
        super().__init__(storage, client, model, prompt)
        self.object_store = object_store

    def _submit(self, messages: Sequence[MessageInput]) -> tuple[str, BatchStatus]:
        lines = [json.dumps(self._build_batch_line(m), ensure_ascii=False) for m in messages]
        payload = ("\n".join(lines) + "\n").encode("utf-8")
        display_name = f"batchtrack-{messages[0].id}-{len(messages)}"
        src = self.object_store.put(f"{display_name}.jsonl", payload)

        try:
            job = self.client.batches.create(
                model=self.model.name,
                src=src,
                config={"display_name": display_name},
            )
        except errors.APIError as e:
            raise ProviderError(f"Gemini batch submission failed: {e}") from e
        logger.debug("Submitted Gemini batch %s from %s", job.name, src)
        return job.name, map_state(getattr(job, "state", None))

    def _fetch_job(self, batch_id: str) -> tuple[BatchStatus, Any]:
        try:
            job = self.client.batches.get(name=batch_id)
        except errors.APIError as e:
            raise ProviderError(f"Gemini batch get failed: {e}") from e
        state = getattr(job, "state", None)
        status = map_state(state)
        logger.debug("Gemini batch %s state %s → %s", batch_id, state, status.value)
        return status, job

    def _iter_results(self, batch_id: str, job: Any) -> Iterator[BatchResult]:
        dest = getattr(job, "dest", None)
        file_name = getattr(dest, "file_name", None)
        if not file_name:
            logger.warning("Gemini batch %s ended without an output file", batch_id)
            return

        for line in self.object_store.iter_lines(file_name):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                raise ProviderError(f"Malformed result line in {file_name}: {e}") from e
            yield self._parse_entry(entry)

    def _finalize(self, batch_id: str, job: Any, on_error: OnError) -> None:
        """Close out messages the job never reported on."""
        leftovers = self.storage.message_ids(batch_id, MessageStatus.CREATED)
        if not leftovers:
            return

        state = _state_name(getattr(job, "state", None))
        status = _LEFTOVER_STATUS.get(state or "", MessageStatus.ERRORED)
        error = f"No result for message (job state {state})"
        logger.warning(
            "Gemini batch %s: %d messages without result, marking %s",
            batch_id,
            len(leftovers),
            status.value,
        )
        for message_id in leftovers:
            self.storage.update_message(MessageUpdate(id=message_id, status=status, error=error))
            on_error(message_id, status.value)

    def _parse_entry(self, entry: dict) -> BatchResult:
        key = str(entry.get("key", ""))

        if entry.get("error"):
            error = entry["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return BatchResult(custom_id=key, status=MessageStatus.ERRORED, error=message)

        response = entry.get("response") or {}
        candidates = response.get("candidates") or []
        if not candidates:
            feedback = response.get("promptFeedback") or response.get("prompt_feedback") or {}
            reason = feedback.get("blockReason") or feedback.get("block_reason") or "unknown"
            return BatchResult(
                custom_id=key,
                status=MessageStatus.ERRORED,
                error=f"No candidates in response (block reason: {reason})",
            )

        parts = (candidates[0].get("content") or {}).get("parts") or []
        usage = _usage(response)
        index = self.model.content_index
        if index >= len(parts):
            return BatchResult(
                custom_id=key, status=MessageStatus.SUCCEEDED, content_kind="missing", usage=usage
            )

        part = parts[index]
        kind = _part_kind(part)
        return BatchResult(
            custom_id=key,
            status=MessageStatus.SUCCEEDED,
            content_kind=kind,
            text=part.get("text") if kind == "text" else None,
            usage=usage,
        )

    def _build_batch_line(self, message: MessageInput) -> dict:
        """Convert a MessageInput to one Gemini batch JSONL line."""
        # Prompt caching is implicit on Gemini 2.5+: prompt.cache is not acted on.
        request: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": message.content}]}],
            "system_instruction": {"parts": [{"text": self.prompt.text}]},
        }
        if self.model.params:
            request["generation_config"] = dict(self.model.params)
        return {"key": message.id, "request": request}
