"""Diagnostics support for All-in-One Presence."""

from __future__ import annotations

from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.redact import async_redact_data

from .const import DIAGNOSTICS_REDACT_KEYS, DOMAIN
from .runtime.state_store import dump_state


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    data = hass.data.get(DOMAIN, {}).get(entry.entry_id, {})
    coordinator = data.get("coordinator")

    runtime: dict[str, Any] = {}
    if coordinator is not None:
        engine = coordinator.engine
        runtime = {
            "state": dump_state(engine),
            "pending_mode": str(engine.pending_mode) if engine.pending_mode else None,
            "pending_timers": {
                f"entity_{index}": engine.scheduler.pending_deadline(identity)
                for index, identity in enumerate(engine.identities())
            },
            "topic_prefixes": engine.router.prefixes,
        }
        # Entity states are keyed by MAC address; index them instead.
        entities = runtime["state"].get("entities", {})
        runtime["state"]["entities"] = [
            {"identity": identity, **values} for identity, values in entities.items()
        ]

    payload = {
        "entry": {
            "title": entry.title,
            "version": entry.version,
            "minor_version": getattr(entry, "minor_version", None),
            "options": dict(entry.options),
        },
        "runtime": runtime,
    }

    return async_redact_data(payload, DIAGNOSTICS_REDACT_KEYS)
