"""All-in-One Presence binary sensors."""

from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorDeviceClass, BinarySensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from ..const import DOMAIN
from ..coordinator import PresenceCoordinator
from .base import PresenceEntity
from .registry import PresenceEntityDescription, build_registry


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: PresenceCoordinator = data["coordinator"]
    registry = build_registry(coordinator.options)
    async_add_entities(PresenceBinarySensor(coordinator, entry, desc) for desc in registry.binary_sensors)


class PresenceBinarySensor(PresenceEntity, BinarySensorEntity):
    """Household or per-person presence flag."""

    def __init__(
        self, coordinator: PresenceCoordinator, entry: ConfigEntry, desc: PresenceEntityDescription
    ) -> None:
        super().__init__(coordinator, entry, desc)
        if desc.attribute == "presence":
            self._attr_device_class = BinarySensorDeviceClass.PRESENCE

    @property
    def is_on(self) -> bool | None:
        value = self._value()
        return None if value is None else bool(value)
