"""
Purpose: Fire-and-forget notification dispatch.
What it does:
The core commits a state change first, then calls notify(). notify() only
puts the event on an in-process queue and returns; a worker thread (or an
explicit drain() in tests and scripts) hands it to a transport.

Transports:
- LogTransport: writes the event to the log (default, no external dependency)
- WebhookTransport: POSTs the event as JSON to a configured URL

Rule: A transport failure is logged and counted. It never reaches the caller
and never rolls back or blocks the transition that produced the event.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    NEW_DONATION_NEARBY = "new_donation_nearby"
    DONATION_ACCEPTED = "donation_accepted"
    PICKUP_CONFIRMED = "pickup_confirmed"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    DONATION_EXPIRED = "donation_expired"
    DONATION_REASSIGNED = "donation_reassigned"


@dataclass(frozen=True)
class Notification:
    recipient_id: str
    event: NotificationEvent
    title: str = ""
    message: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event"] = self.event.value
        data["created_at"] = self.created_at.isoformat()
        return data


class NotificationTransportError(Exception):
    """Raised by a transport when delivery fails."""
    pass


class LogTransport:

    def send(self, notification: Notification) -> None:
        logger.info(
            f"Notify {notification.recipient_id} [{notification.event.value}] "
            f"{notification.title}: {notification.message}"
        )


class WebhookTransport:
    """
    Sole responsibility: POST one notification to the collaborator's webhook.
    """

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        if not url:
            raise ValueError("Webhook URL not set. Please set FOODBRIDGE_NOTIFY_WEBHOOK_URL.")
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, notification: Notification) -> None:
        try:
            response = self.session.post(self.url, json=notification.to_json(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationTransportError(f"Webhook delivery to {self.url} failed: {e}") from e


_STOP = object()


class NotificationDispatcher:
    """
    Queue + worker between the transactional core and the transport.
    """

    def __init__(self, transport=None, max_queue_size: int = 1000):
        self.transport = transport or LogTransport()
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_queue_size)
        self._worker: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()
        self.stats = {"queued": 0, "sent": 0, "failed": 0, "dropped": 0}

    # --- producer side ---

    def notify(
        self,
        recipient_id: str,
        event: NotificationEvent,
        payload: Optional[Dict[str, Any]] = None,
        *,
        title: str = "",
        message: str = "",
    ) -> None:
        notification = Notification(
            recipient_id=str(recipient_id),
            event=NotificationEvent(event),
            title=title,
            message=message,
            payload=dict(payload or {}),
        )
        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            self._bump("dropped")
            logger.error(f"Notification queue full; dropped {notification.event.value} for {recipient_id}")
            return
        self._bump("queued")

    # --- consumer side ---

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._worker = threading.Thread(target=self._run, name="notification-dispatcher", daemon=True)
        self._worker.start()
        logger.info("Notification dispatcher: started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Deliver what is already queued, then stop the worker."""
        if not self.is_running:
            return
        self._queue.put(_STOP)
        self._worker.join(timeout)
        self._worker = None
        logger.info("Notification dispatcher: stopped")

    def drain(self) -> int:
        """
        Deliver everything queued right now on the calling thread.
        Only meaningful while the worker is not running. Returns the number processed.
        """
        processed = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return processed
            try:
                if item is not _STOP:
                    self._deliver(item)
                    processed += 1
            finally:
                self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, notification: Notification) -> None:
        try:
            self.transport.send(notification)
        except Exception as e:
            self._bump("failed")
            logger.error(
                f"Notification {notification.event.value} to {notification.recipient_id} failed: {e}",
                exc_info=True,
            )
            return
        self._bump("sent")

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1


def build_transport(webhook_url: Optional[str], timeout: float = 5.0):
    if webhook_url:
        return WebhookTransport(webhook_url, timeout=timeout)
    return LogTransport()
