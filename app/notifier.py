"""
Best-effort WhatsApp notifications through the messaging gateway.

Sends are fire-and-forget: handlers schedule them with BackgroundTasks, a
failed call is logged and dropped, and nothing is ever retried.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from app.config import Settings
from app.logger import get_logger

logger = get_logger(__name__)


class NotificationDispatcher:
    """Client for the outbound messaging API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.api_url = settings.notify_api_url
        self.api_key = settings.notify_api_key
        self.timeout = settings.notify_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def send(self, phone: Optional[str], message: str) -> Optional[Dict[str, Any]]:
        """
        Post one message. Returns the provider's reply (JSON, or the raw text
        under ``response``), or None when the send was skipped or failed.
        """
        if not self.is_configured:
            logger.debug("Notification skipped: messaging API not configured")
            return None
        if not phone:
            logger.debug("Notification skipped: recipient has no phone number")
            return None

        payload = {"apiKey": self.api_key, "phone": phone, "message": message}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(self.api_url, json=payload)
                resp.raise_for_status()
                logger.info(f"Notification sent to {phone}")
                if "application/json" in resp.headers.get("content-type", ""):
                    return resp.json()
                return {"response": resp.text}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"WhatsApp notification error: {e}")
            return None


def task_assigned_message(title: str, deadline: datetime, description: Optional[str]) -> str:
    return (
        f"New task assigned: {title}\n"
        f"Deadline: {deadline.date().isoformat()}\n"
        f"Description: {description or ''}"
    )


def task_completed_message(title: str) -> str:
    return f"Task completed: {title}"


def document_uploaded_message(name: str) -> str:
    return f"New document uploaded: {name}"


def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier
