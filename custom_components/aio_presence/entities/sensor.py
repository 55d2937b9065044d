"""All-in-One Presence sensors."""

from __future__ import annotations

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from ..const import DOMAIN, MIRRORED_MODES
from ..coordinator import PresenceCoordinator
from ..runtime.snapshot import GeofenceState, NetworkLiveness
from .base import PresenceEntity
from .registry import PresenceEntityDescription, build_registry

_ENUM_OPTIONS = {
    "network_liveness": [value.value for value in NetworkLiveness],
    "geofence_state": [value.value for value in GeofenceState],
    "mirrored_mode": list(MIRRORED_MODES),
}


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: PresenceCoordinator = data["coordinator"]
    registry = build_registry(coordinator.options)
    async_add_entities(PresenceSensor(coordinator, entry, desc) for desc in registry.sensors)


class PresenceSensor(PresenceEntity, SensorEntity):
    """Generic presence attribute sensor."""

    def __init__(
        self, coordinator: PresenceCoordinator, entry: ConfigEntry, desc: PresenceEntityDescription
    ) -> None:
        super().__init__(coordinator, entry, desc)
        if desc.attribute == "last_activity":
            self._attr_device_class = SensorDeviceClass.TIMESTAMP
        elif desc.attribute in _ENUM_OPTIONS:
            self._attr_device_class = SensorDeviceClass.ENUM
            self._attr_options = _ENUM_OPTIONS[desc.attribute]

    @property
    def native_value(self):
        return self._value()
