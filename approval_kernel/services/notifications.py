"""
Notification outbox and notifiers.

Responsibility:
    Decouple workflow notifications from the transaction that produced
    them.  ApprovalEngine queues events on a per-session
    ``NotificationOutbox``; the events are handed to their notifier only
    after the caller commits, and dropped if the caller rolls back.

Architecture position:
    Kernel > Services.  Session-level ``after_commit`` / ``after_rollback``
    listeners are registered on import.

Invariants enforced:
    - Delivery happens strictly after commit.  A rolled-back transition
      notifies nobody.
    - A failing notifier never propagates: the failure is logged as
      ``notification_delivery_failed`` and the remaining events are still
      delivered.

Notifiers:
    - LoggingNotifier: writes one structured log line per event.
    - InAppNotifier: inserts a ``notifications`` row in its own session.
    - CompositeNotifier: fans out to several notifiers.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import NotificationEvent, Notifier
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import NotificationDeliveryError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.notification import NotificationModel

logger = get_logger("services.notifications")

OUTBOX_KEY = "approval_notification_outbox"


@dataclass(frozen=True)
class QueuedNotification:
    notifier: Notifier
    user_id: int
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationOutbox:
    """Events waiting for their session to commit."""

    def __init__(self) -> None:
        self._queued: list[QueuedNotification] = []

    @classmethod
    def for_session(cls, session: Session) -> NotificationOutbox:
        outbox = session.info.get(OUTBOX_KEY)
        if outbox is None:
            outbox = cls()
            session.info[OUTBOX_KEY] = outbox
        return outbox

    @property
    def pending(self) -> tuple[QueuedNotification, ...]:
        return tuple(self._queued)

    def queue(
        self,
        notifier: Notifier,
        user_id: int,
        event_type: str,
        payload: dict[str, Any],
    ) -> None:
        self._queued.append(QueuedNotification(notifier, user_id, event_type, payload))

    def discard(self) -> int:
        dropped = len(self._queued)
        self._queued.clear()
        return dropped

    def dispatch(self) -> int:
        """Deliver every queued event; returns the number delivered."""
        batch, self._queued = self._queued, []
        delivered = 0
        for item in batch:
            try:
                item.notifier.notify(item.user_id, item.event_type, item.payload)
            except Exception as exc:
                failure = (
                    exc if isinstance(exc, NotificationDeliveryError)
                    else NotificationDeliveryError(item.user_id, item.event_type, str(exc))
                )
                logger.warning(
                    "notification_delivery_failed",
                    extra={
                        "error_code": failure.code,
                        "user_id": item.user_id,
                        "event_type": item.event_type,
                        "reason": failure.reason,
                        "request_id": item.payload.get("request_id"),
                    },
                )
                continue
            delivered += 1
            logger.info(
                "notification_dispatched",
                extra={
                    "user_id": item.user_id,
                    "event_type": item.event_type,
                    "request_id": item.payload.get("request_id"),
                },
            )
        return delivered


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session: Session) -> None:
    outbox = session.info.get(OUTBOX_KEY)
    if outbox is not None:
        outbox.dispatch()


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    outbox = session.info.get(OUTBOX_KEY)
    if outbox is not None:
        dropped = outbox.discard()
        if dropped:
            logger.info("notifications_discarded", extra={"count": dropped})


# =============================================================================
# Notifiers
# =============================================================================


class LoggingNotifier:
    """Notifier that only writes a structured log line."""

    def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_sent",
            extra={"user_id": user_id, "event_type": event_type, "payload": payload},
        )


_TITLES = {
    NotificationEvent.APPROVAL_NEEDED.value: "Approval required",
    NotificationEvent.APPROVAL_COMPLETED.value: "Request approved",
    NotificationEvent.APPROVAL_REJECTED.value: "Request rejected",
    NotificationEvent.REQUEST_CANCELLED.value: "Request cancelled",
}


def render_message(event_type: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Title and body of an in-app notification."""
    label = payload.get("reference") or payload.get("request_id")
    amount = payload.get("amount")
    if event_type == NotificationEvent.APPROVAL_NEEDED.value:
        body = (
            f"Request {label} for {amount} is waiting for your approval "
            f"at level {payload.get('level')}."
        )
    elif event_type == NotificationEvent.APPROVAL_COMPLETED.value:
        body = f"Request {label} for {amount} has been fully approved."
    elif event_type == NotificationEvent.APPROVAL_REJECTED.value:
        body = (
            f"Request {label} was rejected at level {payload.get('level')}: "
            f"{payload.get('reason')}"
        )
    elif event_type == NotificationEvent.REQUEST_CANCELLED.value:
        body = f"Request {label} has been cancelled."
    else:
        body = f"Request {label}: {event_type}"
    return _TITLES.get(event_type, event_type), body


def _related_request(payload: dict[str, Any]) -> UUID | None:
    value = payload.get("request_id")
    return UUID(str(value)) if value else None


class InAppNotifier:
    """Writes notification rows in a separate, self-committing session."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        title, message = render_message(event_type, payload)
        try:
            with self._session_factory() as session, session.begin():
                session.add(
                    NotificationModel(
                        user_id=user_id,
                        type=event_type,
                        title=title,
                        message=message,
                        related_request_id=_related_request(payload),
                        created_at=self._clock.now(),
                    )
                )
        except Exception as exc:
            raise NotificationDeliveryError(user_id, event_type, str(exc)) from exc


class CompositeNotifier:
    """Delivers to every notifier; one failure does not stop the others."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self._notifiers = tuple(notifiers)

    def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        failures = []
        for notifier in self._notifiers:
            try:
                notifier.notify(user_id, event_type, payload)
            except Exception as exc:
                failures.append(f"{type(notifier).__name__}: {exc}")
        if failures:
            raise NotificationDeliveryError(user_id, event_type, "; ".join(failures))
