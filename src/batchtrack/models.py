"""Entity model shared by storage and batchers: statuses, messages, model and prompt."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class BatchStatus(str, Enum):
    """Canonical, provider-agnostic batch status."""

    IN_PROGRESS = "in_progress"
    CANCELING = "canceling"
    ENDED = "ended"

    @property
    def is_terminal(self) -> bool:
        return self is BatchStatus.ENDED


class MessageStatus(str, Enum):
    """Lifecycle status of a single message within a batch."""

    CREATED = "created"
    SUCCEEDED = "succeeded"
    ERRORED = "errored"
    CANCELED = "canceled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        """Every status except ``created`` is final."""
        return self is not MessageStatus.CREATED


# Kinds passed to ``on_error`` callbacks.
BatchError = Literal["errored", "canceled", "expired"]


@dataclass
class TokenUsage:
    """Token counters reported for one message. None = not reported."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


@dataclass
class MessageInput:
    """A caller request: custom id + user content."""

    id: str
    content: str


@dataclass
class MessageUpdate:
    """Partial update of a message row.

    ``status`` is always written. Every other field left as None keeps the
    value already stored.
    """

    id: str
    status: MessageStatus
    output: str | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @classmethod
    def with_usage(
        cls,
        id: str,
        status: MessageStatus,
        usage: TokenUsage | None,
        **kwargs: Any,
    ) -> MessageUpdate:
        usage = usage or TokenUsage()
        return cls(
            id=id,
            status=status,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_creation_input_tokens=usage.cache_creation_input_tokens,
            cache_read_input_tokens=usage.cache_read_input_tokens,
            **kwargs,
        )

    def merge_fields(self) -> dict[str, Any]:
        """Optional columns that carry a value in this update."""
        fields = {
            "output": self.output,
            "error": self.error,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_input_tokens": self.cache_creation_input_tokens,
            "cache_read_input_tokens": self.cache_read_input_tokens,
        }
        return {k: v for k, v in fields.items() if v is not None}


@dataclass
class BatchRecord:
    """Persisted batch row."""

    id: str
    status: BatchStatus


@dataclass
class MessageRecord:
    """Persisted message row."""

    id: str
    batch_id: str
    status: MessageStatus
    input: str
    model_name: str = ""
    prompt_name: str = ""
    output: str | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


# ── Configuration values ──


@dataclass(frozen=True)
class Model:
    """Model name plus provider-specific generation parameters.

    ``content_index`` is the position of the answer in a multi-part response.
    It is fixed at construction; use the provider helpers to derive it from
    ``params`` (e.g. extended thinking shifts the answer to index 1).
    """

    name: str
    params: dict[str, Any] = field(default_factory=dict)
    content_index: int = 0


@dataclass(frozen=True)
class Prompt:
    """Named system instruction, optionally cached provider-side."""

    name: str
    text: str
    cache: bool = False
