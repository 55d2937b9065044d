"""All-in-One Presence selects (policy and mirrored mode)."""

from __future__ import annotations

from homeassistant.components.select import SelectEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from ..const import DOMAIN
from ..coordinator import PresenceCoordinator
from .base import PresenceEntity
from .registry import PresenceSelectDescription, build_registry


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: PresenceCoordinator = data["coordinator"]
    registry = build_registry(coordinator.options)
    async_add_entities(PresenceSelect(coordinator, entry, desc) for desc in registry.selects)


class PresenceSelect(PresenceEntity, SelectEntity):
    """Household-level select."""

    def __init__(
        self, coordinator: PresenceCoordinator, entry: ConfigEntry, desc: PresenceSelectDescription
    ) -> None:
        super().__init__(coordinator, entry, desc)
        self._attr_options = list(desc.options)

    @property
    def current_option(self) -> str | None:
        return self._value()

    async def async_select_option(self, option: str) -> None:
        if option not in self._attr_options:
            return
        if self._desc.attribute == "policy":
            self.coordinator.set_policy(option)
        elif self._desc.attribute == "mirrored_mode":
            self.coordinator.set_mirrored_mode(option)
