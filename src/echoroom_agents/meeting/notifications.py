"""User-facing notifications raised by the meeting runtime."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """Short human-readable message for the host UI (a toast, a log line...)."""

    title: str
    description: str
    severity: Severity = Severity.ERROR


NotifyCallback = Callable[[Notification], None]
