"""Track provider-side LLM batch jobs from submission to per-message results."""

from batchtrack.exceptions import BatchTrackError, PersistenceError, ProviderError
from batchtrack.models import (
    BatchStatus,
    MessageInput,
    MessageStatus,
    MessageUpdate,
    Model,
    Prompt,
    TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    "BatchStatus",
    "BatchTrackError",
    "MessageInput",
    "MessageStatus",
    "MessageUpdate",
    "Model",
    "PersistenceError",
    "Prompt",
    "ProviderError",
    "TokenUsage",
]
