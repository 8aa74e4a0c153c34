"""Dispatch agent-response requests to a named model provider."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .anthropic import AnthropicClient
from .types import LLMMessage, LLMResult

logger = logging.getLogger(__name__)

MessageInput = Union[LLMMessage, Mapping[str, Any], Tuple[str, str]]


class UnknownProviderError(ValueError):
    """Raised when a caller references a provider that is not registered."""


class ChatClient(Protocol):
    def send_messages(
        self,
        messages: Sequence[LLMMessage],
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult: ...


class ProviderRouter:
    """Holds one chat client per provider name.

    Clients are either passed in directly or built lazily from a factory the
    first time a provider is used, so constructing a router never needs
    credentials.
    """

    def __init__(
        self,
        *,
        anthropic_client: Optional[ChatClient] = None,
        factories: Optional[Mapping[str, Callable[[], ChatClient]]] = None,
    ) -> None:
        self._clients: Dict[str, ChatClient] = {}
        self._factories: Dict[str, Callable[[], ChatClient]] = {"anthropic": AnthropicClient}
        for name, factory in (factories or {}).items():
            self._factories[_key(name)] = factory
        if anthropic_client is not None:
            self._clients["anthropic"] = anthropic_client
        self._lock = threading.Lock()

    @property
    def providers(self) -> List[str]:
        return sorted(set(self._factories) | set(self._clients))

    def register(self, provider: str, client: ChatClient) -> None:
        with self._lock:
            self._clients[_key(provider)] = client

    def send(
        self,
        *,
        provider: str,
        model: Optional[str],
        messages: Sequence[MessageInput],
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        client = self._client_for(provider)
        logger.debug(f"Routing {len(messages)} messages to {_key(provider)} (model={model})")
        return client.send_messages(
            _normalise_messages(messages),
            system=system,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    @classmethod
    def lazy_default(cls) -> "ProviderRouter":
        return cls()

    def _client_for(self, provider: str) -> ChatClient:
        key = _key(provider)
        with self._lock:
            client = self._clients.get(key)
            if client is not None:
                return client
            factory = self._factories.get(key)
            if factory is None:
                raise UnknownProviderError(f"Provider '{provider}' is not registered with this router.")
            client = factory()
            self._clients[key] = client
            return client


def _key(provider: str) -> str:
    return provider.lower().strip()


def _normalise_messages(messages: Sequence[MessageInput]) -> List[LLMMessage]:
    normalised: List[LLMMessage] = []
    for entry in messages:
        if isinstance(entry, LLMMessage):
            normalised.append(entry)
        elif isinstance(entry, tuple) and len(entry) == 2:
            normalised.append(LLMMessage(role=entry[0], content=str(entry[1])))
        elif isinstance(entry, Mapping):
            role = entry.get("role")
            content = entry.get("content")
            if not isinstance(role, str) or content is None:
                raise ValueError(f"Message needs a string role and content: {entry!r}")
            normalised.append(LLMMessage(role=role, content=str(content)))
        else:
            raise TypeError(f"Unsupported message input type: {type(entry)!r}")
    return normalised
