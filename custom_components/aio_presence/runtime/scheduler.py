"""Heartbeat timeout scheduling.

Two tiers:

* a one-shot timer per entity, re-armed on every accepted heartbeat, which is
  the low-latency path;
* a periodic reconciliation sweep which recovers timers the host silently
  dropped (restart, resource exhaustion) and resolves entities still waiting
  for their first heartbeat after a restart.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from ..const import DEFAULT_RECONCILE_INTERVAL, DEFAULT_RESTART_GRACE
from .fusion import PresenceFusionMachine
from .snapshot import NetworkLiveness

_LOGGER = logging.getLogger(__name__)

CancelTimer = Callable[[], None]
CallLater = Callable[[float, Callable[[], None]], CancelTimer]


@dataclass
class _PendingTimer:
    token: int
    deadline: float
    cancel: CancelTimer | None


class HeartbeatTimeoutScheduler:
    """Arms, expires and reconciles heartbeat timeouts for many entities."""

    def __init__(
        self,
        call_later: CallLater,
        *,
        clock: Callable[[], float] = time.time,
        restart_grace: int = DEFAULT_RESTART_GRACE,
        reconcile_interval: int = DEFAULT_RECONCILE_INTERVAL,
    ) -> None:
        self._call_later = call_later
        self._clock = clock
        self._restart_grace = restart_grace
        self._reconcile_interval = reconcile_interval
        self._pending: dict[str, _PendingTimer] = {}
        self._tokens: dict[str, int] = {}

    @property
    def reconcile_interval(self) -> int:
        return self._reconcile_interval

    def pending_deadline(self, identity: str) -> float | None:
        pending = self._pending.get(identity)
        return pending.deadline if pending else None

    def arm(self, machine: PresenceFusionMachine, delay: float | None = None) -> None:
        """Schedule one expiry check, replacing any pending one. Never raises."""
        identity = machine.identity
        self._cancel_pending(identity)
        token = self._next_token(identity)
        seconds = max(0.0, float(machine.heartbeat_timeout if delay is None else delay))
        deadline = self._clock() + seconds
        pending = _PendingTimer(token=token, deadline=deadline, cancel=None)
        self._pending[identity] = pending

        def _fire() -> None:
            self.on_expiry(machine, token)

        try:
            pending.cancel = self._call_later(seconds, _fire)
        except Exception:  # noqa: BLE001
            _LOGGER.warning("%s: failed to arm heartbeat timeout", identity, exc_info=True)
            self._pending.pop(identity, None)
            return
        _LOGGER.debug("%s: heartbeat timeout armed in %.0fs", identity, seconds)

    def revoke(self, identity: str) -> None:
        """Cancel the pending timer and invalidate any in-flight completion."""
        self._cancel_pending(identity)
        self._next_token(identity)

    def revoke_all(self) -> None:
        for identity in list(self._tokens):
            self.revoke(identity)

    def on_expiry(self, machine: PresenceFusionMachine, token: int) -> None:
        identity = machine.identity
        if self._tokens.get(identity) != token:
            _LOGGER.debug("%s: ignoring superseded timeout", identity)
            return
        self._pending.pop(identity, None)
        self._check(machine)

    def reconcile(self, machines: Iterable[PresenceFusionMachine]) -> list[str]:
        """Sweep every machine; return the identities that were expired."""
        now = self._clock()
        expired: list[str] = []
        for machine in machines:
            identity = machine.identity
            if identity not in self._tokens:
                # Never armed since attach; start tracking it now.
                self._tokens[identity] = 0

            if machine.manual_liveness:
                continue

            if machine.awaiting_first_heartbeat:
                grace = max(self._restart_grace, machine.heartbeat_timeout)
                if (
                    machine.network_liveness is NetworkLiveness.CONNECTED
                    and now - machine.sentinel_since >= grace
                ):
                    _LOGGER.debug("%s: no heartbeat within %ss of restart", identity, grace)
                    machine.heartbeat_expired()
                    expired.append(identity)
                continue

            if machine.network_liveness is not NetworkLiveness.CONNECTED:
                continue

            pending = self._pending.get(identity)
            if pending is not None and now <= pending.deadline + self._reconcile_interval:
                continue
            if pending is not None:
                _LOGGER.debug("%s: heartbeat timer never fired, recovering", identity)
                self._cancel_pending(identity)

            remaining = machine.last_heartbeat_epoch + machine.heartbeat_timeout - now
            if remaining <= 0:
                self._next_token(identity)
                machine.heartbeat_expired()
                expired.append(identity)
            else:
                self.arm(machine, remaining)
        return expired

    def _check(self, machine: PresenceFusionMachine) -> None:
        if machine.manual_liveness:
            return
        if machine.awaiting_first_heartbeat:
            # Restart grace is the sweep's job.
            return
        elapsed = self._clock() - machine.last_heartbeat_epoch
        if elapsed >= machine.heartbeat_timeout:
            machine.heartbeat_expired()
            return
        self.arm(machine, machine.heartbeat_timeout - elapsed)

    def _cancel_pending(self, identity: str) -> None:
        pending = self._pending.pop(identity, None)
        if pending is None or pending.cancel is None:
            return
        try:
            pending.cancel()
        except Exception:  # noqa: BLE001
            _LOGGER.debug("%s: cancelling timer failed", identity, exc_info=True)

    def _next_token(self, identity: str) -> int:
        # Tokens only ever grow, so a re-added identity cannot match an old timer.
        token = self._tokens.get(identity, 0) + 1
        self._tokens[identity] = token
        return token
