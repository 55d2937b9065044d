"""Entity registry builders for All-in-One Presence."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..const import DOMAIN, MIRRORED_MODES, POLICIES
from ..models import PresenceOptions
from ..runtime.identity import identity_slug
from ..runtime.snapshot import HouseholdSnapshot, Presence

ENTITY_ATTRIBUTES = ("network_liveness", "geofence_state", "last_activity")


@dataclass(frozen=True)
class PresenceEntityDescription:
    key: str
    name: str
    attribute: str
    identity: str | None = None
    device_name: str | None = None


@dataclass(frozen=True)
class PresenceSelectDescription(PresenceEntityDescription):
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class PresenceRegistry:
    sensors: list[PresenceEntityDescription]
    binary_sensors: list[PresenceEntityDescription]
    selects: list[PresenceSelectDescription]


def build_registry(options: PresenceOptions) -> PresenceRegistry:
    sensors: list[PresenceEntityDescription] = []
    binaries: list[PresenceEntityDescription] = []
    selects: list[PresenceSelectDescription] = []

    # Household
    binaries.append(_d("home", "Anyone Home", "presence"))
    binaries.append(_d("guest_override", "Guest Override", "guest_override"))
    sensors.append(_d("entity_count", "Tracked People", "entity_count"))
    sensors.append(_d("present_count", "People Home", "present_count"))
    sensors.append(_d("mirrored_mode", "Mirrored Mode", "mirrored_mode"))
    sensors.append(_d("last_activity", "Household Last Activity", "last_activity"))
    selects.append(
        PresenceSelectDescription(
            key=entity_key("policy"), name="Aggregation Policy", attribute="policy", options=tuple(POLICIES)
        )
    )
    selects.append(
        PresenceSelectDescription(
            key=entity_key("mirrored_mode_select"),
            name="Mode",
            attribute="mirrored_mode",
            options=tuple(MIRRORED_MODES),
        )
    )

    # People
    for person in options.people:
        slug = identity_slug(person.identity)
        label = person.label
        binaries.append(_d(f"{slug}_presence", f"{label} Presence", "presence", person.identity, label))
        sensors.append(_d(f"{slug}_network", f"{label} Network", "network_liveness", person.identity, label))
        sensors.append(_d(f"{slug}_geofence", f"{label} Geofence", "geofence_state", person.identity, label))
        sensors.append(
            _d(f"{slug}_last_activity", f"{label} Last Activity", "last_activity", person.identity, label)
        )

    return PresenceRegistry(sensors=sensors, binary_sensors=binaries, selects=selects)


def read_value(snapshot: HouseholdSnapshot, desc: PresenceEntityDescription) -> Any:
    """Current value of a description's attribute, household or per person."""
    source: Any = snapshot
    if desc.identity is not None:
        source = snapshot.entities.get(desc.identity)
        if source is None:
            return None
    value = getattr(source, desc.attribute, None)
    if isinstance(value, Presence):
        return value is Presence.PRESENT
    if isinstance(value, Enum):
        return value.value
    return value


def entity_key(key: str) -> str:
    return key if key.startswith(f"{DOMAIN}_") else f"{DOMAIN}_{key}"


def _d(
    key: str, name: str, attribute: str, identity: str | None = None, device_name: str | None = None
) -> PresenceEntityDescription:
    return PresenceEntityDescription(
        key=entity_key(key), name=name, attribute=attribute, identity=identity, device_name=device_name
    )
