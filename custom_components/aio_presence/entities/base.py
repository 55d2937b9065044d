"""Base entities for All-in-One Presence."""

from __future__ import annotations

from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from ..const import DOMAIN
from ..coordinator import PresenceCoordinator
from .registry import PresenceEntityDescription, read_value


class PresenceEntity(CoordinatorEntity[PresenceCoordinator]):
    """Base class for All-in-One Presence entities."""

    def __init__(
        self, coordinator: PresenceCoordinator, entry: ConfigEntry, desc: PresenceEntityDescription
    ) -> None:
        super().__init__(coordinator)
        self._entry = entry
        self._desc = desc
        self._attr_name = desc.name
        self._attr_unique_id = f"{entry.entry_id}_{desc.key}"
        self._attr_suggested_object_id = desc.key

    @property
    def device_info(self):
        if self._desc.identity is not None:
            return {
                "identifiers": {(DOMAIN, f"{self._entry.entry_id}_{self._desc.identity}")},
                "connections": {("mac", self._desc.identity.replace("-", ":"))},
                "name": self._desc.device_name or self._desc.identity,
                "manufacturer": "All-in-One Presence",
                "model": "Presence Fusion",
                "via_device": (DOMAIN, self._entry.entry_id),
            }
        return {
            "identifiers": {(DOMAIN, self._entry.entry_id)},
            "name": self._entry.title or "Household Presence",
            "manufacturer": "All-in-One Presence",
            "model": "Composite Presence",
        }

    @property
    def available(self) -> bool:
        if self._desc.identity is None:
            return super().available
        return super().available and self._desc.identity in self.coordinator.data.entities

    def _value(self) -> Any:
        return read_value(self.coordinator.data, self._desc)
