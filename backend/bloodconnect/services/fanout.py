"""Best-effort dispatch of workflow effects to notification transports.

By the time effects reach this module the state change they describe has
already committed. Every failure is logged and dropped here; nothing in this
module raises into a caller.
"""
import logging
from collections.abc import Iterable
from functools import lru_cache
from typing import Any, Protocol

from sqlalchemy.orm import sessionmaker

from bloodconnect.config import get_settings
from bloodconnect.database import SessionLocal, get_db_context
from bloodconnect.services.effects import Effect, Email, Notify, Push
from bloodconnect.services.email import SmtpEmailSender
from bloodconnect.services.notifications import create_notification

logger = logging.getLogger(__name__)


class NotificationFanout(Protocol):
    def send(
        self,
        recipient_ids: list[str],
        notification_type: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> None: ...


class EmailCollaborator(Protocol):
    def send(self, to: list[str], template_key: str, data: dict[str, Any]) -> bool: ...


class RealtimePush(Protocol):
    def emit_to_admins(self, event: str, payload: dict[str, Any]) -> None: ...

    def emit_to_donors(self, event: str, payload: dict[str, Any]) -> None: ...


class DatabaseNotificationFanout:
    """Writes one Notification row per recipient in its own session."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def send(
        self,
        recipient_ids: list[str],
        notification_type: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> None:
        if not recipient_ids:
            return
        with get_db_context(self.session_factory) as db:
            for user_id in recipient_ids:
                create_notification(db, user_id, notification_type, title, message, metadata)


class LoggingRealtimePush:
    """Realtime channel stand-in that records broadcasts in the log."""

    def emit_to_admins(self, event: str, payload: dict[str, Any]) -> None:
        logger.info(f"push[admins] {event}: {payload}")

    def emit_to_donors(self, event: str, payload: dict[str, Any]) -> None:
        logger.info(f"push[donors] {event}: {payload}")


class EffectDispatcher:
    """Routes effects to their collaborators, isolating each failure."""

    def __init__(
        self,
        notifier: NotificationFanout,
        email: EmailCollaborator,
        push: RealtimePush,
    ):
        self.notifier = notifier
        self.email = email
        self.push = push

    def dispatch(self, effects: Iterable[Effect]) -> dict:
        """Perform every effect. Returns counts of delivered and failed effects."""
        delivered = 0
        failed = 0
        for effect in effects:
            try:
                self._dispatch_one(effect)
                delivered += 1
            except Exception:
                logger.exception(f"Failed to dispatch {type(effect).__name__} effect: {effect}")
                failed += 1
        return {"delivered": delivered, "failed": failed}

    def _dispatch_one(self, effect: Effect) -> None:
        if isinstance(effect, Notify):
            self.notifier.send(effect.recipient_ids, effect.type, effect.title, effect.message, effect.metadata)
        elif isinstance(effect, Email):
            self.email.send(effect.to, effect.template_key, effect.data)
        elif isinstance(effect, Push):
            if effect.audience == "admins":
                self.push.emit_to_admins(effect.event, effect.payload)
            elif effect.audience == "donors":
                self.push.emit_to_donors(effect.event, effect.payload)
            else:
                raise ValueError(f"Unknown push audience: {effect.audience}")
        else:
            raise TypeError(f"Unsupported effect: {effect!r}")


@lru_cache
def get_dispatcher() -> EffectDispatcher:
    """Default dispatcher wired from settings."""
    return EffectDispatcher(
        notifier=DatabaseNotificationFanout(SessionLocal),
        email=SmtpEmailSender(get_settings()),
        push=LoggingRealtimePush(),
    )
