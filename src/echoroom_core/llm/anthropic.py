"""Text-only client for Anthropic's Messages API, used for agent replies."""

from __future__ import annotations

import json
import logging
import os
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .types import LLMMessage, LLMResult, UsageMetrics


LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"


@dataclass
class AnthropicError(Exception):
    """Raised when the Anthropic API request fails."""

    status_code: Optional[int]
    message: str
    response_text: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class AnthropicClient:
    """Send a rendered meeting transcript and return the agent's text reply.

    Credentials and endpoint come from the arguments or from
    ``ANTHROPIC_API_KEY``, ``ANTHROPIC_API_URL`` and ``ANTHROPIC_MODEL``.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        api_version: str = "2023-06-01",
        default_model: Optional[str] = None,
        default_max_output_tokens: int = 512,
        timeout: float = 30.0,
    ) -> None:
        resolved_key = (api_key or os.environ.get("ANTHROPIC_API_KEY") or "").strip()
        if not resolved_key:
            raise ValueError("Missing Anthropic API key (set ANTHROPIC_API_KEY)")

        self.api_key = resolved_key
        self.base_url = (base_url or os.environ.get("ANTHROPIC_API_URL") or "https://api.anthropic.com").rstrip("/")
        self.api_version = api_version
        self.default_model = default_model or os.environ.get("ANTHROPIC_MODEL") or DEFAULT_MODEL
        self.default_max_output_tokens = int(default_max_output_tokens)
        self.timeout = timeout

    def send_messages(
        self,
        messages: Sequence[LLMMessage],
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        """Invoke the Messages API and normalize the response.

        System-role messages are folded into the ``system`` field after the
        explicit ``system`` argument.
        """
        turns = _merge_turns(messages)
        if not turns:
            raise ValueError("No non-system messages supplied for Anthropic call.")

        body: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": turns,
            "max_tokens": max_tokens or self.default_max_output_tokens,
        }
        system_text = _system_text(messages, system)
        if system_text:
            body["system"] = system_text
        if temperature is not None:
            body["temperature"] = float(temperature)

        payload, response_text = self._http_request(body)
        return _to_result(payload, response_text)

    def _http_request(self, body: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
        request = urllib.request.Request(
            url=f"{self.base_url}/v1/messages",
            data=json.dumps(body).encode("utf-8"),
            headers={
                "content-type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = response.getcode()
                raw_bytes = response.read()
        except urllib.error.HTTPError as exc:
            raise _http_error(exc) from None
        except urllib.error.URLError as exc:
            reason = getattr(exc, "reason", None) or str(exc)
            raise AnthropicError(status_code=None, message=f"Anthropic request failed: {reason}") from exc
        except socket.timeout as exc:
            raise AnthropicError(status_code=None, message="Anthropic request timed out") from exc

        response_text = raw_bytes.decode("utf-8") if raw_bytes else ""
        if not response_text:
            return {}, ""
        try:
            return json.loads(response_text), response_text
        except json.JSONDecodeError as exc:
            raise AnthropicError(
                status_code=status,
                message="Anthropic response was not valid JSON.",
                response_text=response_text,
            ) from exc


def _merge_turns(messages: Sequence[LLMMessage]) -> List[Dict[str, Any]]:
    # The API rejects consecutive turns from the same role.
    turns: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        blocks = message.content_blocks()
        if not blocks:
            continue
        if turns and turns[-1]["role"] == message.role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": message.role, "content": blocks})
    return turns


def _system_text(messages: Sequence[LLMMessage], override: Optional[str]) -> Optional[str]:
    parts = [(override or "").strip()]
    parts.extend(m.content.strip() for m in messages if m.role == "system")
    return "\n\n".join(part for part in parts if part) or None


def _http_error(exc: urllib.error.HTTPError) -> AnthropicError:
    error_bytes = exc.read()
    error_text = error_bytes.decode("utf-8", errors="ignore") if error_bytes else ""
    message = ""
    try:
        parsed = json.loads(error_text) if error_text else None
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        message = str(parsed["error"].get("message") or "")
    return AnthropicError(
        status_code=exc.code,
        message=message or f"Anthropic API error ({exc.code})",
        response_text=error_text or None,
    )


def _to_result(payload: Mapping[str, Any], response_text: str) -> LLMResult:
    text = "\n".join(
        str(block["text"])
        for block in payload.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
    ).strip()

    usage = None
    usage_payload = payload.get("usage")
    if isinstance(usage_payload, dict) and usage_payload:
        usage = UsageMetrics(
            input_tokens=_safe_int(usage_payload.get("input_tokens")),
            output_tokens=_safe_int(usage_payload.get("output_tokens")),
        )

    LOGGER.debug(f"Anthropic response stop_reason={payload.get('stop_reason')}")
    return LLMResult(
        text=text,
        stop_reason=payload.get("stop_reason"),
        model=payload.get("model"),
        usage=usage,
        raw={"response": dict(payload), "text": response_text},
    )


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
