"""
Outbound notifications

Delivery itself (email/SMS) is an external collaborator. WebhookNotifier hands
each message to a relay over HTTP with automatic retries; LoggingNotifier keeps
messages in memory for local runs and tests.
"""

import logging
import threading
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel, Field
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    recipient_id: str
    recipient_type: str = "donor"
    kind: str
    subject: str
    body: str
    links: Dict[str, str] = Field(default_factory=dict)
    request_id: Optional[str] = None


class Notifier:
    """Interface"""

    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Records every message and logs it"""

    def __init__(self):
        self.sent: List[Notification] = []
        self._lock = threading.Lock()

    def send(self, notification: Notification) -> None:
        with self._lock:
            self.sent.append(notification)
        logger.info(
            f"[Notifier] {notification.kind} -> {notification.recipient_type} "
            f"{notification.recipient_id}: {notification.subject}"
        )

    def sent_to(self, recipient_id: str) -> List[Notification]:
        with self._lock:
            return [n for n in self.sent if n.recipient_id == recipient_id]


class WebhookNotifier(Notifier):
    """
    Posts notifications to a relay webhook with automatic retries.

    Features:
    - Retry logic with exponential backoff
    - Timeout handling
    - Error logging
    """

    def __init__(self, webhook_url: str, api_key: Optional[str] = None, timeout: float = 30.0):
        self.webhook_url = webhook_url
        headers = {"X-API-Key": api_key} if api_key else {}
        self.client = httpx.Client(timeout=timeout, headers=headers)
        logger.info(f"Initialized webhook notifier: {self.webhook_url}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError))
    )
    def send(self, notification: Notification) -> None:
        logger.debug(f"POST {self.webhook_url} kind={notification.kind}")
        response = self.client.post(self.webhook_url, json=notification.model_dump())
        response.raise_for_status()

    def close(self):
        """Close HTTP client"""
        self.client.close()


# ============================================
# Message builders
# ============================================

def donor_alert(donor, request, hospital, accept_url: str, decline_url: str, distance_km: float) -> Notification:
    return Notification(
        recipient_id=donor.id,
        kind="donor_alert",
        request_id=request.id,
        subject=f"URGENT: {request.blood_type} blood needed at {hospital.name}",
        body=(
            f"Hi {donor.first_name or 'donor'}, {hospital.name} ({distance_km:.1f} km away) needs "
            f"{request.units_needed} unit(s) of {request.blood_type} blood. "
            f"Urgency: {request.urgency.upper()}. Please let us know if you can donate."
        ),
        links={"accept": accept_url, "decline": decline_url},
    )


def hospital_details(donor, request, hospital, eta_minutes: Optional[int]) -> Notification:
    eta_text = f" Estimated arrival: {eta_minutes} minutes." if eta_minutes else ""
    return Notification(
        recipient_id=donor.id,
        kind="hospital_details",
        request_id=request.id,
        subject=f"Thank you! Please head to {hospital.name}",
        body=(
            f"Address: {hospital.address}. Contact: {hospital.contact_person or 'Blood bank'} "
            f"({hospital.phone or 'n/a'}).{eta_text} Please bring a photo ID."
        ),
    )


def selection_confirmed(donor, request, hospital, eta_minutes: int) -> Notification:
    return Notification(
        recipient_id=donor.id,
        kind="donor_selected",
        request_id=request.id,
        subject=f"You have been selected to donate at {hospital.name}",
        body=(
            f"Please proceed to {hospital.address}. Expected travel time {eta_minutes} minutes. "
            f"The blood bank team is expecting you."
        ),
    )


def not_selected(donor, request, hospital) -> Notification:
    return Notification(
        recipient_id=donor.id,
        kind="donor_not_selected",
        request_id=request.id,
        subject="Thank you for responding",
        body=(
            f"Another donor has been confirmed for the {request.blood_type} request at "
            f"{hospital.name}. You do not need to travel. Thank you for being ready to help."
        ),
    )
