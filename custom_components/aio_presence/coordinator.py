"""Coordinator for the All-in-One Presence runtime."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable

from homeassistant.components import mqtt
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.debounce import Debouncer
from homeassistant.helpers.event import async_call_later, async_track_time_interval
from homeassistant.helpers.storage import Store
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .const import (
    CONF_POLICY,
    DOMAIN,
    EVENT_PRESENCE_CHANGED,
    RECOMPUTE_COOLDOWN,
    STORAGE_SAVE_DELAY,
    STORAGE_VERSION,
)
from .models import PresenceOptions
from .runtime.contracts import PresenceEvent
from .runtime.engine import AggregationEngine
from .runtime.fusion import PresenceFusionMachine
from .runtime.mirror import ModeControllerClient
from .runtime.snapshot import AggregationPolicy, HouseholdSnapshot, MirroredMode
from .runtime.state_store import dump_state, restore_state

_LOGGER = logging.getLogger(__name__)


class PresenceCoordinator(DataUpdateCoordinator[HouseholdSnapshot]):
    """Owns the aggregation engine and its host-side collaborators."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        super().__init__(
            hass=hass,
            logger=_LOGGER,
            name=DOMAIN,
            update_interval=None,  # push-based
        )
        self.entry = entry
        self.options = PresenceOptions.from_entry(entry)
        self._store: Store[dict[str, Any]] = Store(hass, STORAGE_VERSION, f"{DOMAIN}.{entry.entry_id}")
        self._subscriptions: dict[str, list[CALLBACK_TYPE]] = {}
        self._unsub_sweep: CALLBACK_TYPE | None = None
        self._controller: ModeControllerClient | None = None
        if self.options.controller_url:
            self._controller = ModeControllerClient(
                async_get_clientsession(hass),
                self.options.controller_url,
                self.options.controller_timeout,
            )

        self._recompute_debouncer = Debouncer(
            hass,
            _LOGGER,
            cooldown=RECOMPUTE_COOLDOWN,
            immediate=False,
            function=self._async_debounced_recompute,
        )
        self.engine = AggregationEngine(
            self.options,
            call_later=self._call_later,
            request_recompute=self._request_recompute,
            on_snapshot=self._publish_snapshot,
            on_state_changed=self._schedule_save,
            on_event=self._fire_event,
            on_detach=self._release_subscriptions,
            mode_push=self._schedule_mode_push if self._controller else None,
        )
        self.data = HouseholdSnapshot.empty()

    async def _async_update_data(self) -> HouseholdSnapshot:
        """Return current runtime state for coordinator refreshes.

        Presence is push-driven: state updates are produced by the engine.
        """
        return self.engine.snapshot

    async def async_initialize(self) -> None:
        """Attach configured people, restore saved state and start monitoring."""
        # No awaits between attaching and restoring: the debounced recompute
        # must not observe the pre-restore defaults.
        saved = await self._store.async_load()
        for person in self.options.people:
            self.engine.add_entity(person.identity, person.label, person.heartbeat_timeout)
        restored = restore_state(self.engine, saved)
        _LOGGER.debug("Restored %s of %s tracked people", restored, len(self.options.people))
        self.engine.recompute_aggregate(reason="initialize")

        if not await mqtt.async_wait_for_mqtt_client(self.hass):
            _LOGGER.error("MQTT integration is not available, heartbeats will not be received")
        else:
            for identity in self.engine.identities():
                await self._async_subscribe(identity)

        self._unsub_sweep = async_track_time_interval(
            self.hass,
            self._handle_sweep,
            timedelta(seconds=self.options.reconcile_interval),
        )
        # First sweep arms timers for everyone still connected.
        self.engine.reconcile()

    async def async_shutdown(self, *, save: bool = True) -> None:
        """Stop timers, release subscriptions and flush state unless told not to."""
        if self._unsub_sweep:
            self._unsub_sweep()
            self._unsub_sweep = None
        self._recompute_debouncer.async_cancel()
        self.engine.shutdown()
        for identity in list(self._subscriptions):
            self._release_subscriptions(identity)
        if save:
            await self._store.async_save(dump_state(self.engine))
        await super().async_shutdown()
        _LOGGER.debug("Presence runtime shutdown")

    # ---- Commands ----
    async def async_add_entity(
        self, identity: str, label: str | None = None, heartbeat_timeout: int | None = None
    ) -> PresenceFusionMachine:
        machine = self.engine.add_entity(identity, label, heartbeat_timeout)
        await self._async_subscribe(machine.identity)
        return machine

    def remove_entity(self, identity: str) -> bool:
        return self.engine.remove_entity(identity)

    def remove_all_entities(self) -> int:
        return self.engine.remove_all_entities()

    def set_policy(self, policy: AggregationPolicy | str) -> None:
        """Apply a policy and write it back to the entry options.

        The options are the only persisted copy; the update listener sees the
        running options already match and skips the reload.
        """
        self.engine.set_policy(policy)
        self.options = replace(self.options, policy=self.engine.policy)
        value = str(self.engine.policy)
        if self.entry.options.get(CONF_POLICY) != value:
            self.hass.config_entries.async_update_entry(
                self.entry, options={**self.entry.options, CONF_POLICY: value}
            )

    def set_guest_override(self, enabled: bool) -> None:
        self.engine.set_guest_override(enabled)

    def set_mirrored_mode(self, mode: MirroredMode | str) -> None:
        self.engine.set_mirrored_mode(mode)

    @callback
    def refresh(self) -> None:
        """Re-publish derived attributes without changing state."""
        self.async_set_updated_data(self.engine.snapshot)

    @callback
    def reconcile(self) -> list[str]:
        return self.engine.reconcile()

    # ---- Transport ----
    async def _async_subscribe(self, identity: str) -> None:
        if identity in self._subscriptions:
            return
        unsubs: list[CALLBACK_TYPE] = []
        self._subscriptions[identity] = unsubs
        for topic in self.engine.router.topics_for(identity):
            try:
                unsubs.append(await mqtt.async_subscribe(self.hass, topic, self._handle_message))
            except Exception:  # noqa: BLE001
                _LOGGER.error("Failed to subscribe to %s", topic, exc_info=True)
                continue
            _LOGGER.debug("Subscribed to %s", topic)

    @callback
    def _release_subscriptions(self, identity: str) -> None:
        for unsub in self._subscriptions.pop(identity, []):
            unsub()

    @callback
    def _handle_message(self, msg: mqtt.ReceiveMessage) -> None:
        _LOGGER.debug("MQTT message on %s: %s", msg.topic, msg.payload)
        self.engine.handle_message(msg.topic, msg.payload)

    # ---- Timers ----
    def _call_later(self, delay: float, action: Callable[[], None]) -> CALLBACK_TYPE:
        @callback
        def _fire(_now: datetime) -> None:
            action()

        return async_call_later(self.hass, delay, _fire)

    @callback
    def _handle_sweep(self, _now: datetime) -> None:
        expired = self.engine.reconcile()
        if expired:
            _LOGGER.debug("Reconciliation sweep expired %s", ", ".join(expired))

    # ---- Engine hooks ----
    @callback
    def _request_recompute(self) -> None:
        self._recompute_debouncer.async_schedule_call()

    async def _async_debounced_recompute(self) -> None:
        self.engine.recompute_aggregate()

    @callback
    def _publish_snapshot(self, snapshot: HouseholdSnapshot) -> None:
        self.async_set_updated_data(snapshot)

    @callback
    def _schedule_save(self) -> None:
        self._store.async_delay_save(lambda: dump_state(self.engine), STORAGE_SAVE_DELAY)

    @callback
    def _fire_event(self, event: PresenceEvent) -> None:
        self.hass.bus.async_fire(EVENT_PRESENCE_CHANGED, {"entry_id": self.entry.entry_id, **event.as_dict()})

    @callback
    def _schedule_mode_push(self, mode: MirroredMode) -> None:
        self.hass.async_create_task(self._async_push_mode(mode))

    async def _async_push_mode(self, mode: MirroredMode) -> None:
        if self._controller is None:
            return
        ok = await self._controller.async_push(mode)
        self.engine.mode_push_completed(mode, ok)
