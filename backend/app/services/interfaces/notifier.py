"""
Notification gateway interface.
Lets the admission controller report status changes without knowing how
they are delivered.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class OutcomeKind(str, enum.Enum):
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    APPROVED = "approved"
    PROMOTED = "promoted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    REMOVED = "removed"
    CUSTOM = "custom"
    ORGANIZER_CONTACT = "organizer_contact"


@dataclass(frozen=True)
class Notification:
    contact: str
    event_title: str
    outcome: OutcomeKind
    name: Optional[str] = None
    message: Optional[str] = None
    event_id: Optional[int] = None


class Notifier(ABC):
    """
    Interface for notification delivery.

    Implementations:
    - LogNotifier: writes a structured log line (default, development)
    - SmtpNotifier: sends an email through the configured SMTP relay
    """

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        """
        Deliver one notification.

        Args:
            notification: recipient, event title and outcome kind

        Raises whatever the transport raises; the dispatcher turns failures
        into log lines so callers never see them.
        """
        pass
