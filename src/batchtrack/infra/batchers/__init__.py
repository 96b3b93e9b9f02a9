from batchtrack.infra.batchers.anthropic_batcher import AnthropicBatcher, anthropic_model
from batchtrack.infra.batchers.base import Batcher, BatchResult, OnError, OnValue
from batchtrack.infra.batchers.gemini_batcher import GeminiBatcher, gemini_model

__all__ = [
    "AnthropicBatcher",
    "Batcher",
    "BatchResult",
    "GeminiBatcher",
    "OnError",
    "OnValue",
    "anthropic_model",
    "gemini_model",
]
