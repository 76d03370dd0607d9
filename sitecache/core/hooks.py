"""
Extension points for background sync and push notifications.

Nothing in the package produces deferred submissions or push messages; callers
plug in their own queue and notifier.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

log = logging.getLogger(__name__)

CONTACT_FORM_TAG = "contact-form"
CONTACT_ENDPOINT = "/api/contact"
DEFAULT_PUSH_BODY = "New update available!"


@dataclass
class PendingSubmission:
    """A form submission captured while offline."""

    body: bytes
    content_type: str = "application/x-www-form-urlencoded"
    created_at: float = field(default_factory=time.time)


class SyncQueue(Protocol):
    async def pending(self) -> list[PendingSubmission]: ...

    async def remove(self, submission: PendingSubmission) -> None: ...


class InMemorySyncQueue:
    """A SyncQueue kept in memory. Empty unless something adds to it."""

    def __init__(self, submissions: list[PendingSubmission] | None = None):
        self._submissions = list(submissions or [])

    async def add(self, submission: PendingSubmission) -> None:
        self._submissions.append(submission)

    async def pending(self) -> list[PendingSubmission]:
        return list(self._submissions)

    async def remove(self, submission: PendingSubmission) -> None:
        if submission in self._submissions:
            self._submissions.remove(submission)


@dataclass
class NotificationAction:
    action: str
    title: str
    icon: str = ""


@dataclass
class Notification:
    title: str
    body: str
    icon: str = "/icon-192.png"
    badge: str = "/badge-72.png"
    vibrate: list[int] = field(default_factory=lambda: [100, 50, 100])
    data: dict[str, Any] = field(default_factory=dict)
    actions: list[NotificationAction] = field(default_factory=list)


Notifier = Callable[[Notification], Awaitable[None]]


def build_notification(site_name: str, payload: bytes | str | None) -> Notification:
    """Builds the notification shown for a push message."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    return Notification(
        title=site_name,
        body=payload or DEFAULT_PUSH_BODY,
        data={"dateOfArrival": int(time.time() * 1000), "primaryKey": 1},
        actions=[
            NotificationAction("explore", "View Update", "/icon-explore.png"),
            NotificationAction("close", "Close", "/icon-close.png"),
        ],
    )


async def log_notification(notification: Notification) -> None:
    log.info(f"Notification: {notification.title}: {notification.body}")


def notification_click_target(action: str | None) -> str | None:
    """Returns the URL to open for a clicked notification action, if any."""
    if action == "explore":
        return "/"
    return None
