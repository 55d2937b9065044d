"""Household aggregation engine.

Owns the registry of per-person fusion machines (non-owning in spirit: the host
decides when people are added or removed), reduces their presence to one
household value, and keeps the guest override and the mirrored security-mode
controller state.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from ..models import PresenceOptions
from .contracts import SCOPE_ENTITY, SCOPE_HOUSEHOLD, PresenceEvent
from .errors import UnknownEntityError
from .fusion import HeartbeatResult, PresenceFusionMachine, clamp_timeout
from .identity import normalize_identity
from .policy import resolve_composite_presence, resolve_outgoing_mode, should_push_mode
from .router import HeartbeatRouter
from .scheduler import CallLater, HeartbeatTimeoutScheduler
from .snapshot import AggregationPolicy, EntitySnapshot, HouseholdSnapshot, MirroredMode, Presence

_LOGGER = logging.getLogger(__name__)


class AggregationEngine:
    """Composite presence over many fusion machines."""

    def __init__(
        self,
        options: PresenceOptions,
        *,
        call_later: CallLater,
        clock: Callable[[], float] = time.time,
        request_recompute: Callable[[], None] | None = None,
        on_snapshot: Callable[[HouseholdSnapshot], None] | None = None,
        on_state_changed: Callable[[], None] | None = None,
        on_event: Callable[[PresenceEvent], None] | None = None,
        on_detach: Callable[[str], None] | None = None,
        mode_push: Callable[[MirroredMode], None] | None = None,
    ) -> None:
        self._options = options
        self._clock = clock
        self._router = HeartbeatRouter(options.topic_prefixes)
        self._scheduler = HeartbeatTimeoutScheduler(
            call_later,
            clock=clock,
            restart_grace=options.restart_grace,
            reconcile_interval=options.reconcile_interval,
        )
        self._machines: dict[str, PresenceFusionMachine] = {}

        self._request_recompute = request_recompute
        self._on_snapshot = on_snapshot
        self._on_state_changed = on_state_changed
        self._on_event = on_event
        self._on_detach = on_detach
        self._mode_push = mode_push

        self._policy = options.policy
        self._guest_override = False
        self._mirrored_mode: MirroredMode | None = None
        self._pending_mode: MirroredMode | None = None
        self._failed_mode: MirroredMode | None = None
        self._override_mode = options.override_mode
        self._presence = Presence.NOT_PRESENT
        self._last_activity: datetime | None = None
        self._snapshot = HouseholdSnapshot.empty()

    # ---- Read side ----
    @property
    def router(self) -> HeartbeatRouter:
        return self._router

    @property
    def scheduler(self) -> HeartbeatTimeoutScheduler:
        return self._scheduler

    @property
    def policy(self) -> AggregationPolicy:
        return self._policy

    @property
    def guest_override(self) -> bool:
        return self._guest_override

    @property
    def mirrored_mode(self) -> MirroredMode | None:
        return self._mirrored_mode

    @property
    def pending_mode(self) -> MirroredMode | None:
        return self._pending_mode

    @property
    def override_mode(self) -> MirroredMode:
        return self._override_mode

    @property
    def presence(self) -> Presence:
        return self._presence

    @property
    def last_activity(self) -> datetime | None:
        return self._last_activity

    @property
    def snapshot(self) -> HouseholdSnapshot:
        return self._snapshot

    def machines(self) -> list[PresenceFusionMachine]:
        return list(self._machines.values())

    def identities(self) -> list[str]:
        return list(self._machines)

    def get(self, identity: str) -> PresenceFusionMachine:
        key = normalize_identity(identity)
        machine = self._machines.get(key)
        if machine is None:
            raise UnknownEntityError(f"No tracked entity '{key}'")
        return machine

    def __contains__(self, identity: str) -> bool:
        try:
            return normalize_identity(identity) in self._machines
        except ValueError:
            return False

    # ---- Registry ----
    def add_entity(
        self,
        identity: str,
        label: str | None = None,
        heartbeat_timeout: int | None = None,
    ) -> PresenceFusionMachine:
        """Attach an entity; adding a known identity returns the existing one."""
        key = normalize_identity(identity)
        existing = self._machines.get(key)
        if existing is not None:
            _LOGGER.debug("Entity %s already attached", key)
            return existing

        machine = PresenceFusionMachine(
            key,
            label=label,
            heartbeat_timeout=clamp_timeout(
                heartbeat_timeout if heartbeat_timeout is not None else self._options.heartbeat_timeout
            ),
            sink=self,
            clock=self._clock,
        )
        self._machines[key] = machine
        _LOGGER.info("Tracking %s (%s)", machine.label, key)
        self._state_changed()
        self._schedule_recompute()
        return machine

    def remove_entity(self, identity_or_machine: str | PresenceFusionMachine) -> bool:
        """Detach an entity; removing an unknown one is a logged no-op."""
        if isinstance(identity_or_machine, PresenceFusionMachine):
            key = identity_or_machine.identity
        else:
            key = normalize_identity(identity_or_machine)

        machine = self._machines.pop(key, None)
        if machine is None:
            _LOGGER.warning("Entity %s is not attached, nothing to remove", key)
            return False

        self._scheduler.revoke(key)
        machine.attach(None)
        if self._on_detach is not None:
            self._on_detach(key)
        _LOGGER.info("Stopped tracking %s (%s)", machine.label, key)
        self._state_changed()
        self._schedule_recompute()
        return True

    def remove_all_entities(self) -> int:
        identities = list(self._machines)
        for identity in identities:
            self.remove_entity(identity)
        return len(identities)

    # ---- Raw events ----
    def handle_message(self, topic: str, payload: str | bytes) -> HeartbeatResult | None:
        routed = self._router.route(topic, payload)
        if routed is None:
            return None
        machine = self._machines.get(routed.identity)
        if machine is None:
            _LOGGER.debug("Heartbeat for untracked %s on %s", routed.identity, topic)
            return None
        return self.heartbeat(machine.identity, routed.epoch)

    def heartbeat(self, identity: str, epoch: int) -> HeartbeatResult:
        machine = self.get(identity)
        result = machine.heartbeat(epoch)
        if result is HeartbeatResult.ACCEPTED:
            self._scheduler.arm(machine)
        return result

    def heartbeat_expired(self, identity: str) -> None:
        self.get(identity).heartbeat_expired()

    def geofence_enter(self, identity: str) -> None:
        self.get(identity).geofence_enter()

    def geofence_exit(self, identity: str) -> None:
        self.get(identity).geofence_exit()

    def manual_present(self, identity: str) -> None:
        machine = self.get(identity)
        self._scheduler.revoke(machine.identity)
        machine.manual_present()

    def manual_not_present(self, identity: str) -> None:
        self.get(identity).manual_not_present()

    arrive = manual_present
    depart = manual_not_present

    def reconcile(self) -> list[str]:
        expired = self._scheduler.reconcile(self.machines())
        if self._failed_mode is not None:
            self._failed_mode = None
            self._schedule_recompute()
        return expired

    def shutdown(self) -> None:
        self._scheduler.revoke_all()

    # ---- Household state ----
    def set_policy(self, policy: AggregationPolicy | str) -> None:
        self._policy = AggregationPolicy(policy)
        _LOGGER.debug("Aggregation policy set to %s", self._policy)
        self._state_changed()
        self.recompute_aggregate(reason="policy")

    def set_guest_override(self, enabled: bool) -> None:
        self._guest_override = bool(enabled)
        _LOGGER.info("Guest override %s", "enabled" if self._guest_override else "cleared")
        self._state_changed()
        self.recompute_aggregate(reason="guest_override")

    def set_mirrored_mode(self, mode: MirroredMode | str) -> None:
        """Authoritative mode update coming from the external controller."""
        self._mirrored_mode = MirroredMode(mode)
        self._pending_mode = None
        self._failed_mode = None
        self._guest_override = self._mirrored_mode is self._override_mode
        _LOGGER.debug(
            "Mirrored mode set to %s (guest override %s)", self._mirrored_mode, self._guest_override
        )
        self._state_changed()
        self._reevaluate_machines()
        self.recompute_aggregate(reason="mirrored_mode")

    def mode_push_completed(self, mode: MirroredMode, ok: bool) -> None:
        if self._pending_mode is not mode:
            # Superseded by a newer push or an incoming mode set.
            return
        self._pending_mode = None
        if not ok:
            # Retried by the next reconciliation sweep, not by the next recompute.
            self._failed_mode = mode
            self._reevaluate_machines()
            return
        self._failed_mode = None
        self._mirrored_mode = mode
        self._state_changed()
        self._reevaluate_machines()
        self._schedule_recompute()

    def household_present(self) -> HouseholdSnapshot:
        return self.force_presence(Presence.PRESENT)

    def household_not_present(self) -> HouseholdSnapshot:
        return self.force_presence(Presence.NOT_PRESENT)

    household_arrive = household_present
    household_depart = household_not_present

    def force_presence(self, presence: Presence | str) -> HouseholdSnapshot:
        """Set the household presence by hand.

        The value stands until the next aggregate recompute, which any
        per-person presence change or household setting change triggers.
        Machines and the mirrored controller are left alone.
        """
        presence = Presence(presence)
        self._last_activity = datetime.fromtimestamp(self._clock(), timezone.utc)
        self._set_presence(presence, "manual")
        self._state_changed()

        entities = self._entity_snapshots()
        self._snapshot = self._build_snapshot(entities)
        if self._on_snapshot is not None:
            self._on_snapshot(self._snapshot)
        return self._snapshot

    def recompute_aggregate(self, reason: str = "") -> HouseholdSnapshot:
        entities = self._entity_snapshots()
        presence, why = resolve_composite_presence(
            policy=self._policy,
            presences=[entity.presence for entity in entities.values()],
            guest_override=self._guest_override,
        )

        if presence is not self._presence:
            self._last_activity = datetime.fromtimestamp(self._clock(), timezone.utc)
            self._set_presence(presence, why)
            self._state_changed()

        self._snapshot = self._build_snapshot(entities)
        _LOGGER.debug(
            "Composite presence (%s): %s/%s present -> %s [%s]",
            self._policy,
            self._snapshot.present_count,
            len(entities),
            presence,
            reason or why,
        )
        self._sync_mirror(self._snapshot.present_count)
        if self._on_snapshot is not None:
            self._on_snapshot(self._snapshot)
        return self._snapshot

    def restore_household(
        self,
        *,
        guest_override: bool,
        mirrored_mode: MirroredMode | None,
        presence: Presence,
        last_activity: datetime | None,
    ) -> None:
        self._guest_override = guest_override
        self._mirrored_mode = mirrored_mode
        self._presence = presence
        self._last_activity = last_activity

    # ---- PresenceChangeSink ----
    def presence_changed(self, machine: PresenceFusionMachine, previous: Presence) -> None:
        self._emit(
            PresenceEvent(
                scope=SCOPE_ENTITY,
                presence=str(machine.final_presence),
                previous=str(previous),
                identity=machine.identity,
                label=machine.label,
            )
        )
        self._schedule_recompute()

    def state_changed(self, machine: PresenceFusionMachine) -> None:
        self._state_changed()

    def away_hint_active(self) -> bool:
        return MirroredMode.AWAY in (self._mirrored_mode, self._pending_mode)

    # ---- Internals ----
    def _entity_snapshots(self) -> dict[str, EntitySnapshot]:
        return {identity: machine.snapshot() for identity, machine in self._machines.items()}

    def _build_snapshot(self, entities: dict[str, EntitySnapshot]) -> HouseholdSnapshot:
        return HouseholdSnapshot(
            ts=datetime.fromtimestamp(self._clock(), timezone.utc).isoformat(),
            presence=self._presence,
            policy=self._policy,
            entity_count=len(entities),
            present_count=sum(1 for entity in entities.values() if entity.is_present),
            guest_override=self._guest_override,
            mirrored_mode=self._mirrored_mode,
            last_activity=self._last_activity,
            entities=entities,
        )

    def _set_presence(self, presence: Presence, reason: str) -> None:
        previous = self._presence
        if presence is previous:
            return
        self._presence = presence
        _LOGGER.info("Composite presence changed from '%s' to '%s' (%s)", previous, presence, reason)
        self._emit(
            PresenceEvent(
                scope=SCOPE_HOUSEHOLD,
                presence=str(presence),
                previous=str(previous),
                reason=reason,
            )
        )

    def _sync_mirror(self, present_count: int) -> None:
        if self._mode_push is None:
            return
        target = resolve_outgoing_mode(present_count)
        if target is self._failed_mode:
            return
        if not should_push_mode(
            target=target,
            mirrored_mode=self._mirrored_mode,
            pending_mode=self._pending_mode,
            guest_override=self._guest_override,
        ):
            return
        _LOGGER.debug("Pushing mode %s to controller", target)
        self._pending_mode = target
        self._mode_push(target)

    def _reevaluate_machines(self) -> None:
        for machine in self.machines():
            machine.reevaluate()

    def _schedule_recompute(self) -> None:
        if self._request_recompute is None:
            self.recompute_aggregate()
        else:
            self._request_recompute()

    def _state_changed(self) -> None:
        if self._on_state_changed is not None:
            self._on_state_changed()

    def _emit(self, event: PresenceEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)
