"""Persistence bridge: JSON-safe dump/restore of engine state."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .engine import AggregationEngine
from .snapshot import GeofenceState, MirroredMode, NetworkLiveness, Presence

_LOGGER = logging.getLogger(__name__)

KEY_ENTITIES = "entities"
KEY_HOUSEHOLD = "household"


def dump_state(engine: AggregationEngine) -> dict[str, Any]:
    """Serializable state of every machine plus the household cell.

    The aggregation policy is configuration and lives in the entry options.
    """
    entities: dict[str, dict[str, Any]] = {}
    for machine in engine.machines():
        snap = machine.snapshot()
        entities[snap.identity] = {
            "label": snap.label,
            "heartbeat_timeout": snap.heartbeat_timeout,
            "network_liveness": str(snap.network_liveness),
            "geofence_state": str(snap.geofence_state),
            "presence": str(snap.presence),
            "last_activity": _iso(snap.last_activity),
            "manual_liveness": snap.manual_liveness,
            # Audit only; never restored into the machine.
            "last_heartbeat_epoch": snap.last_heartbeat_epoch,
        }

    return {
        KEY_ENTITIES: entities,
        KEY_HOUSEHOLD: {
            "guest_override": engine.guest_override,
            "mirrored_mode": str(engine.mirrored_mode) if engine.mirrored_mode else None,
            "presence": str(engine.presence),
            "last_activity": _iso(engine.last_activity),
        },
    }


def restore_state(engine: AggregationEngine, data: dict[str, Any] | None) -> int:
    """Load saved state into the engine's attached machines.

    Only entities already attached are restored; saved entries for people no
    longer configured are ignored. Returns the number of restored entities.
    Missing data means "never initialized".
    """
    if not data:
        _LOGGER.debug("No saved presence state, starting from defaults")
        return 0

    household = data.get(KEY_HOUSEHOLD) or {}
    if household:
        mode = household.get("mirrored_mode")
        engine.restore_household(
            guest_override=bool(household.get("guest_override", False)),
            mirrored_mode=_enum(MirroredMode, mode, None) if mode else None,
            presence=_enum(Presence, household.get("presence"), Presence.NOT_PRESENT),
            last_activity=_parse_dt(household.get("last_activity")),
        )

    restored = 0
    saved_entities = data.get(KEY_ENTITIES) or {}
    for machine in engine.machines():
        saved = saved_entities.get(machine.identity)
        if not isinstance(saved, dict):
            continue
        machine.restore(
            network_liveness=_enum(
                NetworkLiveness, saved.get("network_liveness"), NetworkLiveness.DISCONNECTED
            ),
            geofence_state=_enum(GeofenceState, saved.get("geofence_state"), GeofenceState.EXITED),
            final_presence=_enum(Presence, saved.get("presence"), Presence.NOT_PRESENT),
            last_activity=_parse_dt(saved.get("last_activity")),
            manual_liveness=saved.get("manual_liveness") is True,
        )
        restored += 1
        _LOGGER.debug(
            "Restored %s: %s/%s -> %s",
            machine.identity,
            machine.network_liveness,
            machine.geofence_state,
            machine.final_presence,
        )
    return restored


def _enum(enum_cls, value: Any, default):
    try:
        return enum_cls(value)
    except ValueError:
        if value is not None:
            _LOGGER.warning("Ignoring unknown saved %s value %r", enum_cls.__name__, value)
        return default


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
