"""Presence snapshot models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class Presence(StrEnum):
    PRESENT = "present"
    NOT_PRESENT = "not_present"


class NetworkLiveness(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class GeofenceState(StrEnum):
    ENTERED = "entered"
    EXITED = "exited"


class AggregationPolicy(StrEnum):
    ANYONE = "anyone"
    EVERYONE = "everyone"


class MirroredMode(StrEnum):
    OFF = "off"
    HOME = "home"
    AWAY = "away"
    NIGHT = "night"


@dataclass(frozen=True)
class EntitySnapshot:
    """Observable attributes of one tracked entity."""

    identity: str
    label: str
    presence: Presence
    network_liveness: NetworkLiveness
    geofence_state: GeofenceState
    last_activity: datetime | None
    last_heartbeat_epoch: int
    heartbeat_timeout: int
    manual_liveness: bool = False

    @property
    def is_present(self) -> bool:
        return self.presence is Presence.PRESENT


@dataclass(frozen=True)
class HouseholdSnapshot:
    """Composite presence published after every aggregate recompute."""

    ts: str
    presence: Presence
    policy: AggregationPolicy
    entity_count: int
    present_count: int
    guest_override: bool
    mirrored_mode: MirroredMode | None
    last_activity: datetime | None = None
    entities: dict[str, EntitySnapshot] = field(default_factory=dict)

    @property
    def is_present(self) -> bool:
        return self.presence is Presence.PRESENT

    @classmethod
    def empty(cls) -> "HouseholdSnapshot":
        return cls(
            ts=datetime.now(timezone.utc).isoformat(),
            presence=Presence.NOT_PRESENT,
            policy=AggregationPolicy.ANYONE,
            entity_count=0,
            present_count=0,
            guest_override=False,
            mirrored_mode=None,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
