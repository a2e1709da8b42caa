"""
Notification delivery.

NOTIFICATION STRATEGY
=====================

Admission operations collect Notification records while they hold the
event lock and hand them to the dispatcher only after the transaction has
committed. The dispatcher runs each delivery as its own asyncio task:

  - a slow or failing mail relay never delays the HTTP response
  - a failure is logged and counted, never raised, and never reverts the
    committed transition
  - `drain()` waits for in-flight deliveries (shutdown, tests)
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Iterable

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_notification
from app.services.interfaces.notifier import Notification, Notifier, OutcomeKind

logger = get_logger(__name__)

_SUBJECTS = {
    OutcomeKind.REGISTERED: "Registration confirmed: {title}",
    OutcomeKind.WAITLISTED: "Registration pending: {title}",
    OutcomeKind.APPROVED: "Registration approved: {title}",
    OutcomeKind.PROMOTED: "A spot opened up: {title}",
    OutcomeKind.REJECTED: "Registration update: {title}",
    OutcomeKind.WITHDRAWN: "Registration withdrawn: {title}",
    OutcomeKind.REMOVED: "Registration removed: {title}",
    OutcomeKind.CUSTOM: "Update for {title}",
    OutcomeKind.ORGANIZER_CONTACT: "Participant message about {title}",
}

_BODIES = {
    OutcomeKind.REGISTERED: "You have been successfully registered for {title}.",
    OutcomeKind.WAITLISTED: "Your registration for {title} is pending. We will let you know once a spot is confirmed.",
    OutcomeKind.APPROVED: "Your registration for {title} has been approved.",
    OutcomeKind.PROMOTED: "A spot became available and your registration for {title} is now approved.",
    OutcomeKind.REJECTED: (
        "We regret to inform you that your registration for {title} has been declined. "
        "If you believe this is an error, please contact the event organizer."
    ),
    OutcomeKind.WITHDRAWN: "Your registration for {title} has been withdrawn.",
    OutcomeKind.REMOVED: (
        "Your registration for {title} has been removed. "
        "If you believe this is an error, please contact the event organizer."
    ),
}


def render(notification: Notification) -> tuple[str, str]:
    """Return (subject, body) for a notification."""
    title = notification.event_title
    subject = _SUBJECTS[notification.outcome].format(title=title)
    greeting = f"Hello {notification.name},\n\n" if notification.name else "Hello,\n\n"
    if notification.message:
        text = notification.message
    else:
        text = _BODIES.get(notification.outcome, "").format(title=title)
    return subject, f"{greeting}{text}\n\nBest regards,\nEvent Management Team"


class LogNotifier(Notifier):
    """Writes notifications to the log instead of sending them."""

    async def notify(self, notification: Notification) -> None:
        subject, _ = render(notification)
        logger.info(
            "notification_logged",
            contact=notification.contact,
            outcome=notification.outcome.value,
            event_id=notification.event_id,
            subject=subject,
        )


class SmtpNotifier(Notifier):
    """Sends notifications as plain-text email. smtplib blocks, so it runs in a worker thread."""

    def __init__(self, host: str, port: int, sender: str, username: str = "", password: str = "",
                 use_tls: bool = True, timeout: int = 10):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, notification: Notification) -> EmailMessage:
        subject, body = render(notification)
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = notification.contact
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
            if self.use_tls:
                client.starttls()
            if self.username:
                client.login(self.username, self.password)
            client.send_message(message)

    async def notify(self, notification: Notification) -> None:
        await asyncio.to_thread(self._send, self._build_message(notification))
        logger.info(
            "notification_sent",
            contact=notification.contact,
            outcome=notification.outcome.value,
            event_id=notification.event_id,
        )


class NotificationDispatcher:
    """Fire-and-forget delivery on top of a Notifier."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, notifications: Iterable[Notification]) -> int:
        scheduled = 0
        for notification in notifications:
            task = asyncio.create_task(self._deliver(notification))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            scheduled += 1
        return scheduled

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self.notifier.notify(notification)
        except Exception as e:
            # Delivery is best effort; the transition is already committed
            logger.error(
                "notification_failed",
                contact=notification.contact,
                outcome=notification.outcome.value,
                event_id=notification.event_id,
                error=str(e),
            )
            record_notification(notification.outcome.value, delivered=False)
        else:
            record_notification(notification.outcome.value, delivered=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def build_notifier() -> Notifier:
    """
    Get configured notifier.

    NOTIFIER_BACKEND selects the transport:
    - log (default): LogNotifier
    - smtp: SmtpNotifier using the SMTP_* settings
    """
    settings = get_settings()
    if settings.NOTIFIER_BACKEND == "smtp":
        return SmtpNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.SMTP_SENDER,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout=settings.SMTP_TIMEOUT,
        )
    return LogNotifier()
