"""Household aggregation policy helpers."""

from __future__ import annotations

from typing import Iterable

from .snapshot import AggregationPolicy, MirroredMode, Presence


def resolve_composite_presence(
    *,
    policy: AggregationPolicy,
    presences: Iterable[Presence],
    guest_override: bool,
) -> tuple[Presence, str]:
    """Reduce per-entity presence to the household value, with the reason."""
    if guest_override:
        return Presence.PRESENT, "guest_override"

    values = list(presences)
    if not values:
        return Presence.NOT_PRESENT, "no_entities"

    present = [value is Presence.PRESENT for value in values]
    if policy is AggregationPolicy.EVERYONE:
        if all(present):
            return Presence.PRESENT, "everyone_present"
        return Presence.NOT_PRESENT, "someone_away"

    if any(present):
        return Presence.PRESENT, "someone_present"
    return Presence.NOT_PRESENT, "everyone_away"


def resolve_outgoing_mode(present_count: int) -> MirroredMode:
    return MirroredMode.HOME if present_count > 0 else MirroredMode.AWAY


def should_push_mode(
    *,
    target: MirroredMode,
    mirrored_mode: MirroredMode | None,
    pending_mode: MirroredMode | None,
    guest_override: bool,
) -> bool:
    """Whether the automatic home/away push may go out.

    The guest override latches when the controller is set to the override mode
    and always wins until it is cleared.
    """
    if guest_override:
        return False
    if target is mirrored_mode or target is pending_mode:
        return False
    return True
