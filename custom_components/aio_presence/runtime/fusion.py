"""Per-entity presence fusion state machine.

Two independent, unreliable signals feed one entity:

* a network heartbeat (access point "last seen" epoch), which maps to
  ``network_liveness``;
* geofence enter/exit events, which map to ``geofence_state``.

``final_presence`` is re-derived from both after every raw event. The policy is
asymmetric on purpose: only a network connection can make an entity present,
and leaving needs both a lost connection and a geofence exit (or an explicit
household "away" hint). A false "not present" is far worse than a false
"present".
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from enum import StrEnum
from typing import Callable, Protocol

from ..const import (
    DEFAULT_HEARTBEAT_TIMEOUT,
    HEARTBEAT_FRESHNESS_WINDOW,
    MAX_HEARTBEAT_TIMEOUT,
    MIN_HEARTBEAT_TIMEOUT,
)
from .snapshot import EntitySnapshot, GeofenceState, NetworkLiveness, Presence

_LOGGER = logging.getLogger(__name__)

NO_HEARTBEAT = 0


class HeartbeatResult(StrEnum):
    ACCEPTED = "accepted"
    STALE = "stale"
    OUT_OF_ORDER = "out_of_order"


class PresenceChangeSink(Protocol):
    """What a machine reports to; implemented by the aggregation engine."""

    def presence_changed(self, machine: "PresenceFusionMachine", previous: Presence) -> None: ...

    def state_changed(self, machine: "PresenceFusionMachine") -> None: ...

    def away_hint_active(self) -> bool: ...


def clamp_timeout(value: int | float | str | None) -> int:
    try:
        seconds = int(float(value)) if value is not None else DEFAULT_HEARTBEAT_TIMEOUT
    except (TypeError, ValueError):
        seconds = DEFAULT_HEARTBEAT_TIMEOUT
    return max(MIN_HEARTBEAT_TIMEOUT, min(MAX_HEARTBEAT_TIMEOUT, seconds))


class PresenceFusionMachine:
    """Owns network liveness, geofence state and final presence for one identity."""

    def __init__(
        self,
        identity: str,
        *,
        label: str | None = None,
        heartbeat_timeout: int | None = None,
        sink: PresenceChangeSink | None = None,
        clock: Callable[[], float] = time.time,
        freshness_window: int = HEARTBEAT_FRESHNESS_WINDOW,
    ) -> None:
        self._identity = identity
        self.label = label or identity
        self.heartbeat_timeout = clamp_timeout(heartbeat_timeout)
        self._sink = sink
        self._clock = clock
        self._freshness_window = freshness_window
        self._lock = threading.Lock()

        self._network = NetworkLiveness.DISCONNECTED
        self._geofence = GeofenceState.EXITED
        self._presence = Presence.NOT_PRESENT
        self._last_heartbeat_epoch = NO_HEARTBEAT
        self._sentinel_since = clock()
        self._manual_liveness = False
        self._last_activity: datetime | None = None

    def __repr__(self) -> str:
        return (
            f"<PresenceFusionMachine {self._identity} {self._network}/{self._geofence} "
            f"-> {self._presence}>"
        )

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def network_liveness(self) -> NetworkLiveness:
        return self._network

    @property
    def geofence_state(self) -> GeofenceState:
        return self._geofence

    @property
    def final_presence(self) -> Presence:
        return self._presence

    @property
    def is_present(self) -> bool:
        return self._presence is Presence.PRESENT

    @property
    def last_heartbeat_epoch(self) -> int:
        return self._last_heartbeat_epoch

    @property
    def awaiting_first_heartbeat(self) -> bool:
        return self._last_heartbeat_epoch == NO_HEARTBEAT

    @property
    def sentinel_since(self) -> float:
        return self._sentinel_since

    @property
    def manual_liveness(self) -> bool:
        """Connected because of a manual "present", not a heartbeat."""
        return self._manual_liveness

    @property
    def last_activity(self) -> datetime | None:
        return self._last_activity

    def attach(self, sink: PresenceChangeSink | None) -> None:
        self._sink = sink

    # ---- Raw events ----
    def heartbeat(self, epoch: int, received_at: float | None = None) -> HeartbeatResult:
        """Apply a heartbeat; stale and out-of-order heartbeats change nothing."""
        now = self._clock() if received_at is None else received_at
        with self._lock:
            age = now - epoch
            if age > self._freshness_window:
                _LOGGER.debug("%s: heartbeat %s is %.0fs old, ignoring", self._identity, epoch, age)
                return HeartbeatResult.STALE
            if epoch < self._last_heartbeat_epoch:
                _LOGGER.debug(
                    "%s: heartbeat %s older than last accepted %s, ignoring",
                    self._identity,
                    epoch,
                    self._last_heartbeat_epoch,
                )
                return HeartbeatResult.OUT_OF_ORDER

            self._last_heartbeat_epoch = epoch
            self._manual_liveness = False
            self._network = NetworkLiveness.CONNECTED
            # A live connection implies we are inside the geofence. Assigned
            # directly so the geofence path does not recompute a second time.
            self._geofence = GeofenceState.ENTERED
            previous = self._recompute()

        self._notify(previous)
        return HeartbeatResult.ACCEPTED

    def heartbeat_expired(self) -> None:
        with self._lock:
            if self._network is NetworkLiveness.CONNECTED:
                _LOGGER.debug("%s: heartbeat timeout, network disconnected", self._identity)
            self._network = NetworkLiveness.DISCONNECTED
            self._manual_liveness = False
            previous = self._recompute()
        self._notify(previous)

    def geofence_enter(self) -> None:
        self._set_geofence(GeofenceState.ENTERED)

    def geofence_exit(self) -> None:
        self._set_geofence(GeofenceState.EXITED)

    def manual_present(self) -> None:
        """Authoritative override: connected and inside the geofence.

        The connection holds until a heartbeat takes over or a manual
        "not present" clears it; no timeout applies to it.
        """
        with self._lock:
            self._network = NetworkLiveness.CONNECTED
            self._geofence = GeofenceState.ENTERED
            self._manual_liveness = True
            previous = self._recompute()
        self._notify(previous)

    def manual_not_present(self) -> None:
        """Authoritative override: disconnected and outside the geofence."""
        with self._lock:
            self._network = NetworkLiveness.DISCONNECTED
            self._geofence = GeofenceState.EXITED
            self._manual_liveness = False
            previous = self._recompute()
        self._notify(previous)

    arrive = manual_present
    depart = manual_not_present

    def reevaluate(self) -> None:
        """Recompute with no raw event, e.g. after the household away hint changed."""
        with self._lock:
            previous = self._recompute()
        self._notify(previous)

    # ---- Persistence ----
    def restore(
        self,
        *,
        network_liveness: NetworkLiveness,
        geofence_state: GeofenceState,
        final_presence: Presence,
        last_activity: datetime | None,
        manual_liveness: bool = False,
    ) -> None:
        """Load saved attributes after a restart.

        The heartbeat epoch is deliberately not restored: the machine starts
        from the sentinel so a pre-restart timestamp cannot cause an immediate
        timeout.
        """
        with self._lock:
            self._network = network_liveness
            self._geofence = geofence_state
            self._presence = final_presence
            # Re-assert the connected => present invariant on corrupt saves.
            if self._network is NetworkLiveness.CONNECTED:
                self._presence = Presence.PRESENT
            self._last_activity = last_activity
            self._last_heartbeat_epoch = NO_HEARTBEAT
            self._sentinel_since = self._clock()
            self._manual_liveness = manual_liveness and self._network is NetworkLiveness.CONNECTED

    def snapshot(self) -> EntitySnapshot:
        with self._lock:
            return EntitySnapshot(
                identity=self._identity,
                label=self.label,
                presence=self._presence,
                network_liveness=self._network,
                geofence_state=self._geofence,
                last_activity=self._last_activity,
                last_heartbeat_epoch=self._last_heartbeat_epoch,
                heartbeat_timeout=self.heartbeat_timeout,
                manual_liveness=self._manual_liveness,
            )

    # ---- Internals ----
    def _set_geofence(self, value: GeofenceState) -> None:
        with self._lock:
            if self._geofence is not value:
                _LOGGER.debug("%s: geofence %s -> %s", self._identity, self._geofence, value)
            self._geofence = value
            previous = self._recompute()
        self._notify(previous)

    def _derive(self) -> Presence:
        if self._network is NetworkLiveness.CONNECTED:
            return Presence.PRESENT
        if self._geofence is GeofenceState.EXITED:
            return Presence.NOT_PRESENT
        if self._sink is not None and self._sink.away_hint_active():
            return Presence.NOT_PRESENT
        # Disconnected but still geofenced in: hold.
        return self._presence

    def _recompute(self) -> Presence | None:
        """Re-derive presence; return the previous value when it changed. Caller holds the lock."""
        derived = self._derive()
        if derived is self._presence:
            return None
        previous = self._presence
        self._presence = derived
        self._last_activity = datetime.fromtimestamp(self._clock(), timezone.utc)
        _LOGGER.info("%s presence changed from '%s' to '%s'", self.label, previous, derived)
        return previous

    def _notify(self, previous: Presence | None) -> None:
        if self._sink is None:
            return
        if previous is not None:
            self._sink.presence_changed(self, previous)
        self._sink.state_changed(self)
