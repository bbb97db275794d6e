"""Side effects produced by workflow transitions.

Services never talk to transports directly. Each state-changing call returns
the new state together with the effects to dispatch once it has committed.
"""
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Notify:
    """In-app notification for a set of users."""

    recipient_ids: list[str]
    type: str
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Email:
    to: list[str]
    template_key: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Push:
    """Realtime broadcast to every connected admin or donor."""

    audience: str  # admins, donors
    event: str
    payload: dict[str, Any] = field(default_factory=dict)


Effect = Notify | Email | Push


@dataclass
class TransitionResult(Generic[T]):
    """New authoritative state plus the effects still to be dispatched."""

    entity: T
    effects: list[Effect] = field(default_factory=list)
