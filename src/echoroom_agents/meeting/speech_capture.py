"""Speech Capture - wraps a streaming speech-to-text source.

The recognizer reports results through listener callbacks. This controller
turns them into an explicit state machine (idle, starting, listening,
stopping) and accumulates finalized segments onto the text that was in the
input box when capture started.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"


class CaptureErrorKind(str, Enum):
    NO_SPEECH = "no_speech"
    AUDIO_CAPTURE = "audio_capture"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


_ERROR_CODES = {
    "no-speech": CaptureErrorKind.NO_SPEECH,
    "audio-capture": CaptureErrorKind.AUDIO_CAPTURE,
    "not-allowed": CaptureErrorKind.PERMISSION_DENIED,
    "service-not-allowed": CaptureErrorKind.PERMISSION_DENIED,
    "network": CaptureErrorKind.NETWORK,
    "aborted": CaptureErrorKind.ABORTED,
}

ERROR_MESSAGES = {
    CaptureErrorKind.NO_SPEECH: "No speech detected. Please try again.",
    CaptureErrorKind.AUDIO_CAPTURE: "Microphone problem. Ensure it's connected and permission is granted.",
    CaptureErrorKind.PERMISSION_DENIED: (
        "Permission to use the microphone was denied or has not been granted. "
        "Please check your site settings."
    ),
    CaptureErrorKind.NETWORK: "Network error during speech recognition.",
    CaptureErrorKind.ABORTED: "Speech recognition was stopped.",
    CaptureErrorKind.UNKNOWN: "Speech recognition failed. Please try again.",
}


def classify_error(code: Optional[str]) -> CaptureErrorKind:
    """Map a recognizer error code onto a capture error category."""
    if not code:
        return CaptureErrorKind.UNKNOWN
    return _ERROR_CODES.get(code.strip().lower(), CaptureErrorKind.UNKNOWN)


@dataclass
class CaptureError:
    kind: CaptureErrorKind
    message: str
    code: Optional[str] = None

    @property
    def user_visible(self) -> bool:
        # Aborted is what stop() causes; it is expected.
        return self.kind != CaptureErrorKind.ABORTED


class RecognitionListener(Protocol):
    def on_start(self) -> None: ...

    def on_result(self, final_text: str, interim_text: str) -> None: ...

    def on_error(self, code: str, message: Optional[str] = None) -> None: ...

    def on_end(self) -> None: ...


class RecognitionSource(Protocol):
    """Continuous recognizer supplied by the host platform."""

    is_supported: bool

    def start(self, listener: RecognitionListener) -> None: ...

    def stop(self) -> None: ...


def _join(base: str, segment: str) -> str:
    if not base:
        return segment
    if not segment:
        return base
    return f"{base} {segment}"


def _classify_exception(exc: BaseException) -> CaptureErrorKind:
    if isinstance(exc, PermissionError):
        return CaptureErrorKind.PERMISSION_DENIED
    if isinstance(exc, ConnectionError):
        return CaptureErrorKind.NETWORK
    if isinstance(exc, OSError):
        return CaptureErrorKind.AUDIO_CAPTURE
    return CaptureErrorKind.UNKNOWN


class SpeechCaptureController:
    """Drives a RecognitionSource and reports text upward via callbacks.

    Callbacks:
        on_listening_change(bool): listening started or stopped
        on_interim(str): live preview, base text plus interim words
        on_final(str): committed text after a finalized segment
        on_error(CaptureError): user-visible failures only
    """

    def __init__(
        self,
        source: Optional[RecognitionSource],
        *,
        on_listening_change: Optional[Callable[[bool], None]] = None,
        on_interim: Optional[Callable[[str], None]] = None,
        on_final: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[CaptureError], None]] = None,
    ) -> None:
        self._source = source
        self._on_listening_change = on_listening_change
        self._on_interim = on_interim
        self._on_final = on_final
        self._on_error = on_error

        self.state = CaptureState.IDLE
        self.committed_text = ""
        self._base_text = ""
        self._discarding = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_supported(self) -> bool:
        return self._source is not None and bool(getattr(self._source, "is_supported", False))

    @property
    def is_listening(self) -> bool:
        return self.state in (CaptureState.LISTENING, CaptureState.STOPPING)

    def start(self, base_text: str = "") -> bool:
        """Begin capturing. Returns False when unsupported or already active."""
        if not self.is_supported or self._source is None:
            logger.debug("Capture start ignored: recognition not supported")
            return False
        if self.state != CaptureState.IDLE:
            return False

        self._base_text = base_text.strip()
        self.committed_text = self._base_text
        self.state = CaptureState.STARTING
        self._idle.clear()

        try:
            self._source.start(self)
        except Exception as exc:
            logger.warning(f"Recognition source failed to start: {exc!r}")
            kind = _classify_exception(exc)
            self._finish()
            self._report(CaptureError(kind=kind, message=ERROR_MESSAGES[kind]))
            return False

        logger.debug("Capture starting")
        return True

    def stop(self, discard: bool = False) -> None:
        """Ask the source to stop.

        With ``discard``, results the source still delivers before it
        acknowledges the stop are dropped instead of reported.
        """
        if discard and self.state != CaptureState.IDLE:
            self._discarding = True
        if self.state not in (CaptureState.STARTING, CaptureState.LISTENING):
            return
        self.state = CaptureState.STOPPING
        try:
            self._source.stop()
        except Exception:
            logger.exception("Recognition source failed to stop cleanly")
            self._finish()

    async def wait_idle(self, timeout: float) -> bool:
        """Wait for the source to acknowledge a stop.

        Forces the controller idle and returns False if it does not within
        ``timeout`` seconds.
        """
        if self._idle.is_set():
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Recognition source did not acknowledge stop, forcing idle")
            self._finish()
            return False

    # ------------------------------------------------------------------ #
    # RecognitionListener
    # ------------------------------------------------------------------ #

    def on_start(self) -> None:
        if self.state != CaptureState.STARTING:
            return
        self.state = CaptureState.LISTENING
        logger.info("Capture listening")
        if self._on_listening_change:
            self._on_listening_change(True)

    def on_result(self, final_text: str, interim_text: str) -> None:
        if not self.is_listening or self._discarding:
            return

        segment = (final_text or "").strip()
        if segment:
            self.committed_text = _join(self._base_text, segment)
            self._base_text = self.committed_text
            if self._on_final:
                self._on_final(self.committed_text)

        interim = (interim_text or "").strip()
        if interim and self._on_interim:
            self._on_interim(_join(self._base_text, interim))

    def on_error(self, code: str, message: Optional[str] = None) -> None:
        kind = classify_error(code)
        if kind == CaptureErrorKind.ABORTED:
            logger.debug("Recognition aborted by stop(), not reporting")
        else:
            logger.warning(f"Recognition error code={code!r} message={message!r}")
            self._report(CaptureError(kind=kind, message=ERROR_MESSAGES[kind], code=code))
        self._finish()

    def on_end(self) -> None:
        self._finish()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _finish(self) -> None:
        self._discarding = False
        if self.state == CaptureState.IDLE:
            self._idle.set()
            return
        was_listening = self.is_listening
        self.state = CaptureState.IDLE
        self._base_text = ""
        self._idle.set()
        logger.info("Capture stopped")
        if was_listening and self._on_listening_change:
            self._on_listening_change(False)

    def _report(self, error: CaptureError) -> None:
        if error.user_visible and self._on_error:
            self._on_error(error)
