"""Audit trail for reward issuance in KidLeague."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .clock import Clock, SystemClock

SYSTEM_ACTOR = "system"


@dataclass(slots=True)
class AuditEvent:
    """One spin, pack opening or champion award.

    ``actor`` is the participant who triggered the issuance, or
    :data:`SYSTEM_ACTOR` for scheduled awards; ``target`` is the product or
    participant it applied to.
    """

    actor: str
    action: str
    target: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)

    def involves(self, participant_id: str) -> bool:
        return participant_id in (self.actor, self.target)


class AuditLog:
    """Append-only record of rewards handed out by the engine."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._events: list[AuditEvent] = []

    def record(
        self,
        actor: str,
        action: str,
        target: str,
        *,
        details: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent:
        event = AuditEvent(actor, action, target, self._clock.now(), dict(details or {}))
        self._events.append(event)
        return event

    def entries(
        self,
        *,
        action: str | None = None,
        target: str | None = None,
        since: datetime | None = None,
    ) -> tuple[AuditEvent, ...]:
        return tuple(
            event
            for event in self._events
            if (action is None or event.action == action)
            and (target is None or event.target == target)
            and (since is None or event.timestamp >= since)
        )

    def for_participant(self, participant_id: str) -> tuple[AuditEvent, ...]:
        """Everything issued by or to ``participant_id``, oldest first."""

        return tuple(event for event in self._events if event.involves(participant_id))

    def counts(self) -> Dict[str, int]:
        return dict(Counter(event.action for event in self._events))

    def latest(self) -> AuditEvent | None:
        return self._events[-1] if self._events else None


__all__ = ["SYSTEM_ACTOR", "AuditEvent", "AuditLog"]
