"""
LLM provider integrations used to generate agent replies.

Only the Anthropic Messages API is wired up. Other providers should expose
the same ``send`` surface through ``ProviderRouter``.
"""

from .anthropic import AnthropicClient, AnthropicError
from .provider_router import ChatClient, ProviderRouter, UnknownProviderError
from .types import LLMMessage, LLMResult, UsageMetrics

__all__ = [
    "AnthropicClient",
    "AnthropicError",
    "ChatClient",
    "LLMMessage",
    "LLMResult",
    "ProviderRouter",
    "UnknownProviderError",
    "UsageMetrics",
]
