"""Canonical event payloads emitted by the runtime."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

SCOPE_ENTITY = "entity"
SCOPE_HOUSEHOLD = "household"


@dataclass(frozen=True)
class PresenceEvent:
    """Presence change, per person or for the whole household."""

    scope: str
    presence: str
    previous: str | None
    identity: str | None = None
    label: str | None = None
    reason: str = ""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
