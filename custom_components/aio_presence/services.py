"""Service registration for All-in-One Presence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers import entity_registry as er

from .const import (
    ATTR_HEARTBEAT_TIMEOUT,
    ATTR_IDENTITY,
    ATTR_LABEL,
    DOMAIN,
    MAX_HEARTBEAT_TIMEOUT,
    MIN_HEARTBEAT_TIMEOUT,
    MIRRORED_MODES,
    OPT_PEOPLE,
    POLICIES,
    SERVICE_ADD_ENTITY,
    SERVICE_ARRIVE,
    SERVICE_DEPART,
    SERVICE_GEOFENCE_ENTER,
    SERVICE_GEOFENCE_EXIT,
    SERVICE_HOUSEHOLD_ARRIVE,
    SERVICE_HOUSEHOLD_DEPART,
    SERVICE_HOUSEHOLD_NOT_PRESENT,
    SERVICE_HOUSEHOLD_PRESENT,
    SERVICE_NOT_PRESENT,
    SERVICE_PRESENT,
    SERVICE_RECONCILE,
    SERVICE_REFRESH,
    SERVICE_REMOVE_ALL_ENTITIES,
    SERVICE_REMOVE_ENTITY,
    SERVICE_SET_GUEST_OVERRIDE,
    SERVICE_SET_MIRRORED_MODE,
    SERVICE_SET_POLICY,
)
from .models import PersonConfig
from .runtime.errors import InvalidIdentityError, UnknownEntityError
from .runtime.identity import identity_slug, normalize_identity

if TYPE_CHECKING:
    from .coordinator import PresenceCoordinator

_LOGGER = logging.getLogger(__name__)

ATTR_ENTRY_ID = "entry_id"
ATTR_POLICY = "policy"
ATTR_ENABLED = "enabled"
ATTR_MODE = "mode"

_BASE = {vol.Optional(ATTR_ENTRY_ID): cv.string}

ENTITY_COMMAND_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_IDENTITY): cv.string})

ADD_ENTITY_SCHEMA = vol.Schema(
    {
        **_BASE,
        vol.Required(ATTR_IDENTITY): cv.string,
        vol.Optional(ATTR_LABEL): cv.string,
        vol.Optional(ATTR_HEARTBEAT_TIMEOUT): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_HEARTBEAT_TIMEOUT, max=MAX_HEARTBEAT_TIMEOUT)
        ),
    }
)

HOUSEHOLD_SCHEMA = vol.Schema(_BASE)

SET_POLICY_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_POLICY): vol.In(POLICIES)})

SET_GUEST_OVERRIDE_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_ENABLED): cv.boolean})

SET_MIRRORED_MODE_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_MODE): vol.In(MIRRORED_MODES)})

REFRESH_SCHEMA = vol.Schema({**_BASE, vol.Optional(ATTR_IDENTITY): cv.string})

_ENTITY_COMMANDS = {
    SERVICE_PRESENT: "manual_present",
    SERVICE_NOT_PRESENT: "manual_not_present",
    SERVICE_ARRIVE: "arrive",
    SERVICE_DEPART: "depart",
    SERVICE_GEOFENCE_ENTER: "geofence_enter",
    SERVICE_GEOFENCE_EXIT: "geofence_exit",
}

_HOUSEHOLD_COMMANDS = {
    SERVICE_HOUSEHOLD_PRESENT: "household_present",
    SERVICE_HOUSEHOLD_NOT_PRESENT: "household_not_present",
    SERVICE_HOUSEHOLD_ARRIVE: "household_arrive",
    SERVICE_HOUSEHOLD_DEPART: "household_depart",
}


def _coordinator(hass: HomeAssistant, data: dict[str, Any]) -> PresenceCoordinator:
    entries = {
        entry_id: value["coordinator"]
        for entry_id, value in hass.data.get(DOMAIN, {}).items()
        if isinstance(value, dict) and "coordinator" in value
    }
    entry_id = data.get(ATTR_ENTRY_ID)
    if entry_id:
        if entry_id not in entries:
            raise ServiceValidationError(f"Unknown {DOMAIN} entry '{entry_id}'")
        return entries[entry_id]
    if len(entries) != 1:
        raise ServiceValidationError(
            f"{len(entries)} {DOMAIN} entries are loaded; pass entry_id to choose one"
        )
    return next(iter(entries.values()))


def _identity(data: dict[str, Any]) -> str:
    try:
        return normalize_identity(data.get(ATTR_IDENTITY))
    except InvalidIdentityError as err:
        raise ServiceValidationError(str(err)) from err


async def async_register_services(hass: HomeAssistant) -> None:
    async def _handle_entity_command(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        identity = _identity(call.data)
        method = _ENTITY_COMMANDS[call.service]
        _LOGGER.debug("%s command for %s", call.service, identity)
        try:
            getattr(coordinator.engine, method)(identity)
        except UnknownEntityError as err:
            raise ServiceValidationError(str(err)) from err

    async def _handle_household_command(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        snapshot = getattr(coordinator.engine, _HOUSEHOLD_COMMANDS[call.service])()
        _LOGGER.debug("%s command, household now %s", call.service, snapshot.presence)

    async def _handle_add_entity(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        identity = _identity(call.data)
        label = call.data.get(ATTR_LABEL)
        timeout = call.data.get(ATTR_HEARTBEAT_TIMEOUT)

        people = [person.as_option() for person in coordinator.options.people]
        if any(person[ATTR_IDENTITY] == identity for person in people):
            _LOGGER.info("%s is already tracked", identity)
            await coordinator.async_add_entity(identity, label, timeout)
            return

        machine = await coordinator.async_add_entity(identity, label, timeout)
        people.append(PersonConfig(identity, machine.label, timeout).as_option())
        # Persisting the person reloads the entry, which rebuilds the entities.
        _update_people(hass, coordinator, people)

    async def _handle_remove_entity(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        identity = _identity(call.data)
        coordinator.remove_entity(identity)
        people = [p.as_option() for p in coordinator.options.people if p.identity != identity]
        if len(people) != len(coordinator.options.people):
            _remove_registry_entries(hass, coordinator, [identity])
            _update_people(hass, coordinator, people)

    async def _handle_remove_all(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        removed = coordinator.remove_all_entities()
        _LOGGER.info("Removed %s tracked people", removed)
        identities = [person.identity for person in coordinator.options.people]
        if identities:
            _remove_registry_entries(hass, coordinator, identities)
            _update_people(hass, coordinator, [])

    async def _handle_set_policy(call: ServiceCall) -> None:
        _coordinator(hass, call.data).set_policy(call.data[ATTR_POLICY])

    async def _handle_set_guest_override(call: ServiceCall) -> None:
        _coordinator(hass, call.data).set_guest_override(call.data[ATTR_ENABLED])

    async def _handle_set_mirrored_mode(call: ServiceCall) -> None:
        _coordinator(hass, call.data).set_mirrored_mode(call.data[ATTR_MODE])

    async def _handle_refresh(call: ServiceCall) -> None:
        coordinator = _coordinator(hass, call.data)
        if call.data.get(ATTR_IDENTITY):
            identity = _identity(call.data)
            if identity not in coordinator.engine:
                raise ServiceValidationError(f"No tracked entity '{identity}'")
        coordinator.refresh()

    async def _handle_reconcile(call: ServiceCall) -> None:
        expired = _coordinator(hass, call.data).reconcile()
        _LOGGER.debug("Manual reconcile expired %s", expired)

    for service in _ENTITY_COMMANDS:
        hass.services.async_register(DOMAIN, service, _handle_entity_command, schema=ENTITY_COMMAND_SCHEMA)
    for service in _HOUSEHOLD_COMMANDS:
        hass.services.async_register(DOMAIN, service, _handle_household_command, schema=HOUSEHOLD_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_ADD_ENTITY, _handle_add_entity, schema=ADD_ENTITY_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_REMOVE_ENTITY, _handle_remove_entity, schema=ENTITY_COMMAND_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_REMOVE_ALL_ENTITIES, _handle_remove_all, schema=HOUSEHOLD_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_SET_POLICY, _handle_set_policy, schema=SET_POLICY_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_SET_GUEST_OVERRIDE, _handle_set_guest_override, schema=SET_GUEST_OVERRIDE_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_MIRRORED_MODE, _handle_set_mirrored_mode, schema=SET_MIRRORED_MODE_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_REFRESH, _handle_refresh, schema=REFRESH_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_RECONCILE, _handle_reconcile, schema=HOUSEHOLD_SCHEMA)


def _update_people(
    hass: HomeAssistant, coordinator: PresenceCoordinator, people: list[dict[str, Any]]
) -> None:
    options = dict(coordinator.entry.options)
    options[OPT_PEOPLE] = people
    hass.config_entries.async_update_entry(coordinator.entry, options=options)


def _remove_registry_entries(
    hass: HomeAssistant, coordinator: PresenceCoordinator, identities: list[str]
) -> None:
    registry = er.async_get(hass)
    prefixes = tuple(f"{coordinator.entry.entry_id}_{DOMAIN}_{identity_slug(i)}_" for i in identities)
    for entity in er.async_entries_for_config_entry(registry, coordinator.entry.entry_id):
        if entity.unique_id.startswith(prefixes):
            registry.async_remove(entity.entity_id)
