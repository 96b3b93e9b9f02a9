"""Persistence contract for batches and messages."""

from __future__ import annotations

from abc import ABC, abstractmethod

from batchtrack.models import (
    BatchRecord,
    BatchStatus,
    MessageRecord,
    MessageStatus,
    MessageUpdate,
)


class Storage(ABC):
    """Durable store of batch and message rows.

    Every write is idempotent so that ``create``/``read`` can be repeated by
    at-least-once callers and run concurrently from several pollers:

    - ``create_*`` inserts if absent and never overwrites an existing row.
    - ``update_*`` updates if present and never creates a row.
    - ``update_message`` always writes ``status`` and merges every other
      field: a None value leaves the stored value untouched.

    All operations raise ``PersistenceError`` on I/O or constraint failure.
    """

    @abstractmethod
    def create_batch(self, id: str, status: BatchStatus) -> None:
        """Insert a batch row unless one with this id exists."""

    @abstractmethod
    def update_batch(self, id: str, status: BatchStatus) -> None:
        """Set the status of an existing batch. No-op for unknown ids."""

    @abstractmethod
    def random_batches(self, limit: int, status: BatchStatus) -> list[str]:
        """Return up to ``limit`` ids of batches in ``status``, in random order.

        No lease is taken: concurrent callers may receive the same ids.
        """

    @abstractmethod
    def random_unreconciled_batches(self, limit: int) -> list[str]:
        """Return up to ``limit`` ended batches that still have created messages.

        These are batches whose reconciliation was interrupted after the
        ended status had been stored.
        """

    @abstractmethod
    def create_message(
        self,
        id: str,
        batch_id: str,
        status: MessageStatus,
        input: str,
        model_name: str = "",
        prompt_name: str = "",
    ) -> None:
        """Insert a message row unless one with this id exists."""

    @abstractmethod
    def update_message(self, data: MessageUpdate) -> None:
        """Merge ``data`` into an existing message row. No-op for unknown ids."""

    @abstractmethod
    def get_batch(self, id: str) -> BatchRecord | None:
        """Read back a batch row."""

    @abstractmethod
    def get_message(self, id: str) -> MessageRecord | None:
        """Read back a message row."""

    @abstractmethod
    def message_ids(self, batch_id: str, status: MessageStatus | None = None) -> list[str]:
        """Ids of the messages of ``batch_id``, optionally filtered by status."""

    def init_schema(self) -> None:
        """Create tables if the backend needs it. Default: nothing to do."""

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
