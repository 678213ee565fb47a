"""Notification Service Interface

Defines the contract for billing alerts (metering failures, invariant
violations, gateway outages).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class NotificationService(ABC):
    """
    Abstract notification service for sending billing alerts

    Implementations can send notifications via:
    - Logging
    - Webhook (HTTP POST)
    """

    @abstractmethod
    async def send_billing_alert(
        self,
        alert_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send a billing alert

        Args:
            alert_type: Machine readable alert category (e.g., invariant_violation)
            message: Human readable summary
            context: Identifiers of the affected tenant, subscription or invoice

        Returns:
            True if notification sent successfully, False otherwise
        """
        pass
