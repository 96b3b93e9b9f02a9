"""Batcher contract: submit a batch, poll it, reconcile per-message results.

State machine of a batch::

    created --submit--> in_progress --poll--> in_progress | canceling | ended
    canceling --poll--> ended
    ended --reconcile--> every message succeeded | errored | canceled | expired

Subclasses implement the provider wire protocol (``_submit``,
``_fetch_job``, ``_iter_results``); the persistence ordering and the
per-message reconciliation live here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from batchtrack.infra.storage import Storage
from batchtrack.models import (
    BatchError,
    BatchStatus,
    MessageInput,
    MessageStatus,
    MessageUpdate,
    Model,
    Prompt,
    TokenUsage,
)

logger = logging.getLogger(__name__)

OnValue = Callable[[str, str], Any]
OnError = Callable[[str, BatchError], Any]

ClientT = TypeVar("ClientT")


@dataclass
class BatchResult:
    """Provider result of one message, translated to canonical terms.

    For ``succeeded`` results ``content_kind`` names the kind of the content
    element at the model's content index ("text" is the only usable kind).
    """

    custom_id: str
    status: MessageStatus
    content_kind: str | None = None
    text: str | None = None
    usage: TokenUsage | None = None
    error: str | None = None


class Batcher(ABC, Generic[ClientT]):
    """Submits and reconciles batches against one provider.

    Every dependency is injected: ``storage`` for durability, ``client`` for
    the provider SDK, ``model``/``prompt`` for the request shape.
    """

    provider_name: str = ""

    def __init__(self, storage: Storage, client: ClientT, model: Model, prompt: Prompt) -> None:
        self.storage = storage
        self.client = client
        self.model = model
        self.prompt = prompt

    # ── Provider hooks ──

    @abstractmethod
    def _submit(self, messages: Sequence[MessageInput]) -> tuple[str, BatchStatus]:
        """Send one provider submission. Returns (batch_id, canonical status)."""

    @abstractmethod
    def _fetch_job(self, batch_id: str) -> tuple[BatchStatus, Any]:
        """Retrieve ``batch_id``. Returns (canonical status, provider batch object).

        The batch object is handed to ``_iter_results`` and ``_finalize`` of the
        same ``read`` call.
        """

    @abstractmethod
    def _iter_results(self, batch_id: str, job: Any) -> Iterator[BatchResult]:
        """Lazily yield the results of an ended batch in provider order."""

    def _finalize(self, batch_id: str, job: Any, on_error: OnError) -> None:
        """Hook run after all results were reconciled. Default: nothing."""

    # ── Public API ──

    def create(self, messages: Sequence[MessageInput]) -> str:
        """Submit ``messages`` as one batch and persist it. Returns the batch id.

        The batch row is written before any message row. Re-invoking after a
        partial persistence failure is safe: existing rows are left as-is.
        """
        if not messages:
            raise ValueError("Cannot submit empty batch")

        batch_id, status = self._submit(messages)
        self.storage.create_batch(batch_id, status)
        for message in messages:
            self.storage.create_message(
                id=message.id,
                batch_id=batch_id,
                status=MessageStatus.CREATED,
                input=message.content,
                model_name=self.model.name,
                prompt_name=self.prompt.name,
            )

        logger.info(
            "Created %s batch %s with %d messages", self.provider_name, batch_id, len(messages)
        )
        return batch_id

    def read(self, batch_id: str, on_value: OnValue, on_error: OnError) -> None:
        """Poll ``batch_id``; once it has ended, reconcile every message.

        Returns without touching messages while the batch is still running.
        """
        status, job = self._fetch_job(batch_id)
        self.storage.update_batch(batch_id, status)

        if status is not BatchStatus.ENDED:
            logger.info("Batch %s has not ended yet (%s)", batch_id, status.value)
            return

        count = 0
        for result in self._iter_results(batch_id, job):
            self._reconcile(result, on_value, on_error)
            count += 1

        self._finalize(batch_id, job, on_error)
        logger.info("Reconciled %d results of %s batch %s", count, self.provider_name, batch_id)

    # ── Reconciliation ──

    def _reconcile(self, result: BatchResult, on_value: OnValue, on_error: OnError) -> None:
        custom_id = result.custom_id

        existing = self.storage.get_message(custom_id)
        if existing is not None and existing.status.is_terminal:
            logger.debug("Message %s already %s, skipping", custom_id, existing.status.value)
            return

        if result.status is MessageStatus.SUCCEEDED:
            if result.content_kind == "text" and result.text is not None:
                self.storage.update_message(
                    MessageUpdate.with_usage(
                        custom_id, MessageStatus.SUCCEEDED, result.usage, output=result.text
                    )
                )
                on_value(custom_id, result.text)
                return

            error = f'Got "{result.content_kind}" instead of "text"'
            logger.warning("Message %s is not text: %s", custom_id, error)
            self.storage.update_message(
                MessageUpdate(id=custom_id, status=MessageStatus.ERRORED, error=error)
            )
            on_error(custom_id, MessageStatus.ERRORED.value)
            return

        logger.warning(
            "Message %s has not succeeded: %s %s", custom_id, result.status.value, result.error
        )
        self.storage.update_message(
            MessageUpdate(id=custom_id, status=result.status, error=result.error)
        )
        on_error(custom_id, result.status.value)
