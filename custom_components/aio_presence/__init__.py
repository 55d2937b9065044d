"""The All-in-One Presence integration."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady, HomeAssistantError
from homeassistant.helpers.typing import ConfigType

from .const import DOMAIN, PLATFORMS
from .coordinator import PresenceCoordinator
from .models import PresenceOptions
from .services import async_register_services

_LOGGER = logging.getLogger(__name__)


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Set up All-in-One Presence (YAML not supported)."""
    hass.data.setdefault(DOMAIN, {})

    if not hass.data[DOMAIN].get("services_registered"):
        await async_register_services(hass)
        hass.data[DOMAIN]["services_registered"] = True

    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up a household from a config entry."""
    hass.data.setdefault(DOMAIN, {})

    coordinator = PresenceCoordinator(hass=hass, entry=entry)
    try:
        await coordinator.async_initialize()
    except HomeAssistantError as err:
        _LOGGER.error("Could not start presence runtime for %s: %s", entry.title, err)
        await coordinator.async_shutdown(save=False)
        raise ConfigEntryNotReady(str(err)) from err

    hass.data[DOMAIN][entry.entry_id] = {"coordinator": coordinator}

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(_async_entry_updated))

    _LOGGER.info(
        "Set up %s (entry_id=%s, people=%s)", DOMAIN, entry.entry_id, len(coordinator.options.people)
    )
    return True


async def _async_entry_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle options update.

    Reloading the config entry is required to rebuild entity platforms because
    the entity set is derived from the tracked people in the options. A policy
    written back by the running coordinator already matches and is skipped.
    """
    data = hass.data.get(DOMAIN, {}).get(entry.entry_id)
    if data and data["coordinator"].options == PresenceOptions.from_entry(entry):
        _LOGGER.debug("Options for %s already applied, not reloading", entry.entry_id)
        return
    _LOGGER.debug("Options updated for %s, reloading entry %s", DOMAIN, entry.entry_id)
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        data = hass.data[DOMAIN].pop(entry.entry_id, None)
        if data and "coordinator" in data:
            coordinator: PresenceCoordinator = data["coordinator"]
            await coordinator.async_shutdown()
    return unload_ok
