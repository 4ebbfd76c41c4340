"""
Notification Service — Outbound email/SMS dispatch.
Transport is simulated through the log; failures are logged, never raised.
"""
import logging
from typing import Dict, Any, List

from licensing.utils.validators import validate_email

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget sender: send(identifier, message) -> None."""

    def send(self, identifier: str, message: str) -> None:
        channel = "email" if validate_email(identifier) else "sms"
        try:
            self._deliver(channel, identifier, message)
        except Exception:
            logger.exception("Notification to %s via %s failed", identifier, channel)

    def _deliver(self, channel: str, identifier: str, message: str) -> Dict[str, Any]:
        """Simulates a provider call (SMTP relay / SMS gateway)."""
        logger.info("[%s] Sending to %s (%d chars)", channel.upper(), identifier, len(message))
        return {"success": True, "channel": channel, "status": "sent"}


class InMemoryNotificationService(NotificationService):
    """Keeps every message in memory; used by tests and local demos."""

    def __init__(self):
        self.outbox: List[Dict[str, str]] = []

    def _deliver(self, channel: str, identifier: str, message: str) -> Dict[str, Any]:
        self.outbox.append({"channel": channel, "to": identifier, "message": message})
        return {"success": True, "channel": channel, "status": "queued"}

    def messages_to(self, identifier: str) -> List[str]:
        return [m["message"] for m in self.outbox if m["to"] == identifier]


_default_notifier = NotificationService()


def get_notifier() -> NotificationService:
    """FastAPI dependency for the process-wide notifier."""
    return _default_notifier
