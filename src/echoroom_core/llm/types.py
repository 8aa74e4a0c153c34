from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


MessageRole = Literal["system", "user", "assistant"]
ContentBlock = Dict[str, Any]


@dataclass
class LLMMessage:
    """Chat message sent to a model provider."""

    role: MessageRole
    content: str

    def content_blocks(self) -> List[ContentBlock]:
        text = self.content.strip()
        if not text:
            return []
        return [{"type": "text", "text": text}]


@dataclass
class UsageMetrics:
    """Token accounting returned by the provider."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


@dataclass
class LLMResult:
    """Normalized model response."""

    text: str
    stop_reason: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[UsageMetrics] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)
