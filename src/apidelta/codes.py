"""Message severities and the notification sink used across a comparison run.

Notifications collect recoverable anomalies (malformed diff records, missing
history, soft resolver failures) so a build can finish and report them instead
of aborting.
"""

import logging
from enum import Enum
from typing import List

from pydantic import BaseModel


logger = logging.getLogger(__name__)


class MessageSeverity(int, Enum):
    """Severity levels for build notifications."""

    ERROR = 0
    WARNING = 1
    INFORMATION = 2
    HINT = 3


_LOG_LEVELS = {
    MessageSeverity.ERROR: logging.ERROR,
    MessageSeverity.WARNING: logging.WARNING,
    MessageSeverity.INFORMATION: logging.INFO,
    MessageSeverity.HINT: logging.DEBUG,
}


class NotificationMessage(BaseModel):
    """A single notification raised during a comparison."""
    severity: MessageSeverity
    message: str


class Notifications:
    """Append-only notification sink, mirrored to the module logger."""

    def __init__(self) -> None:
        self.messages: List[NotificationMessage] = []

    def push(self, severity: MessageSeverity, message: str) -> None:
        self.messages.append(NotificationMessage(severity=severity, message=message))
        logger.log(_LOG_LEVELS[severity], message)

    def error(self, message: str) -> None:
        self.push(MessageSeverity.ERROR, message)

    def warning(self, message: str) -> None:
        self.push(MessageSeverity.WARNING, message)

    @property
    def errors(self) -> List[NotificationMessage]:
        return [m for m in self.messages if m.severity == MessageSeverity.ERROR]

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)
