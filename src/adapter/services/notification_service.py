"""Billing alert channels

Alerts always go to the log. When BILLING_ALERT_WEBHOOK is configured they
are also posted as JSON to that URL.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
import httpx
from src.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# Alert types that mean money may be wrong; everything else is a warning
CRITICAL_ALERTS = {"invariant_violation", "metering_failure"}


def _stringify(context: Optional[Dict[str, Any]]) -> Dict[str, str]:
    return {key: str(value) for key, value in (context or {}).items()}


class LoggingNotificationService(NotificationService):
    async def send_billing_alert(
        self,
        alert_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        level = logging.ERROR if alert_type in CRITICAL_ALERTS else logging.WARNING
        details = " ".join(f"{key}={value}" for key, value in _stringify(context).items())
        logger.log(level, f"[billing:{alert_type}] {message} {details}".rstrip())
        return True


class WebhookNotificationService(NotificationService):
    """
    Posts alerts to an HTTP endpoint (Slack relay, PagerDuty bridge, ...)

    A delivery failure is logged and reported as False, never raised.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def send_billing_alert(
        self,
        alert_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        body = {
            "source": "billing",
            "alert_type": alert_type,
            "critical": alert_type in CRITICAL_ALERTS,
            "message": message,
            "context": _stringify(context),
            "raised_at": datetime.utcnow().isoformat(),
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.webhook_url, json=body)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Alert {alert_type} not delivered to webhook: {e}")
                return False

        logger.debug(f"Alert {alert_type} delivered to webhook")
        return True


class CompositeNotificationService(NotificationService):
    """Fans an alert out to every channel; succeeds when any channel does"""

    def __init__(self, services: List[NotificationService]):
        self.services = services

    async def send_billing_alert(
        self,
        alert_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        delivered = 0
        for channel in self.services:
            try:
                delivered += bool(await channel.send_billing_alert(alert_type, message, context))
            except Exception as e:
                logger.error(f"Alert channel {type(channel).__name__} crashed: {e}")
        return delivered > 0


def create_notification_service(webhook_url: Optional[str] = None) -> NotificationService:
    if not webhook_url:
        return LoggingNotificationService()
    return CompositeNotificationService([LoggingNotificationService(), WebhookNotificationService(webhook_url)])
