"""Config flow for All-in-One Presence."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import config_validation as cv

from .const import (
    ATTR_HEARTBEAT_TIMEOUT,
    ATTR_IDENTITY,
    ATTR_LABEL,
    CONF_CONTROLLER_TIMEOUT,
    CONF_CONTROLLER_URL,
    CONF_HEARTBEAT_TIMEOUT,
    CONF_OVERRIDE_MODE,
    CONF_POLICY,
    CONF_RECONCILE_INTERVAL,
    CONF_RESTART_GRACE,
    CONF_TOPIC_PREFIXES,
    DEFAULT_CONTROLLER_TIMEOUT,
    DEFAULT_CONTROLLER_URL,
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_OVERRIDE_MODE,
    DEFAULT_POLICY,
    DEFAULT_RECONCILE_INTERVAL,
    DEFAULT_RESTART_GRACE,
    DEFAULT_TOPIC_PREFIXES,
    DOMAIN,
    MAX_HEARTBEAT_TIMEOUT,
    MIN_HEARTBEAT_TIMEOUT,
    MIRRORED_MODES,
    OPT_PEOPLE,
    POLICIES,
)
from .models import parse_prefixes
from .runtime.errors import InvalidIdentityError
from .runtime.identity import normalize_identity

_LOGGER = logging.getLogger(__name__)

_TIMEOUT_RANGE = vol.All(
    vol.Coerce(int), vol.Range(min=MIN_HEARTBEAT_TIMEOUT, max=MAX_HEARTBEAT_TIMEOUT)
)


def _general_schema(defaults: dict[str, Any]) -> vol.Schema:
    prefixes = defaults.get(CONF_TOPIC_PREFIXES, DEFAULT_TOPIC_PREFIXES)
    if isinstance(prefixes, (list, tuple)):
        prefixes = ", ".join(prefixes)
    return vol.Schema(
        {
            vol.Required(CONF_POLICY, default=defaults.get(CONF_POLICY, DEFAULT_POLICY)): vol.In(
                POLICIES
            ),
            vol.Required(
                CONF_HEARTBEAT_TIMEOUT,
                default=defaults.get(CONF_HEARTBEAT_TIMEOUT, DEFAULT_HEARTBEAT_TIMEOUT),
            ): _TIMEOUT_RANGE,
            vol.Required(
                CONF_RESTART_GRACE, default=defaults.get(CONF_RESTART_GRACE, DEFAULT_RESTART_GRACE)
            ): cv.positive_int,
            vol.Required(
                CONF_RECONCILE_INTERVAL,
                default=defaults.get(CONF_RECONCILE_INTERVAL, DEFAULT_RECONCILE_INTERVAL),
            ): cv.positive_int,
            vol.Required(CONF_TOPIC_PREFIXES, default=prefixes): cv.string,
            vol.Optional(
                CONF_CONTROLLER_URL, default=defaults.get(CONF_CONTROLLER_URL, DEFAULT_CONTROLLER_URL)
            ): cv.string,
            vol.Required(
                CONF_CONTROLLER_TIMEOUT,
                default=defaults.get(CONF_CONTROLLER_TIMEOUT, DEFAULT_CONTROLLER_TIMEOUT),
            ): cv.positive_int,
            vol.Required(
                CONF_OVERRIDE_MODE, default=defaults.get(CONF_OVERRIDE_MODE, DEFAULT_OVERRIDE_MODE)
            ): vol.In(MIRRORED_MODES),
        }
    )


def _normalize_general(user_input: dict[str, Any]) -> dict[str, Any]:
    options = dict(user_input)
    options[CONF_TOPIC_PREFIXES] = parse_prefixes(user_input.get(CONF_TOPIC_PREFIXES))
    options[CONF_CONTROLLER_URL] = str(user_input.get(CONF_CONTROLLER_URL) or "").strip()
    return options


def _validate_controller_url(value: str) -> str | None:
    if not value:
        return None
    try:
        cv.url(value)
    except vol.Invalid:
        return "invalid_url"
    return None


class PresenceConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for All-in-One Presence."""

    VERSION = 1
    MINOR_VERSION = 1

    async def async_step_user(self, user_input=None) -> FlowResult:
        errors: dict[str, str] = {}
        schema = _general_schema(user_input or {}).extend(
            {vol.Required("name", default=(user_input or {}).get("name", "Household")): cv.string}
        )
        if user_input is None:
            return self.async_show_form(step_id="user", data_schema=schema)

        url_error = _validate_controller_url(user_input.get(CONF_CONTROLLER_URL, ""))
        if url_error:
            errors[CONF_CONTROLLER_URL] = url_error
            return self.async_show_form(step_id="user", data_schema=schema, errors=errors)

        title = user_input.pop("name", "Household")
        options = _normalize_general(user_input)
        options[OPT_PEOPLE] = []
        return self.async_create_entry(title=title, data={}, options=options)

    @staticmethod
    def async_get_options_flow(config_entry: config_entries.ConfigEntry):
        return PresenceOptionsFlowHandler(config_entry)


class PresenceOptionsFlowHandler(config_entries.OptionsFlow):
    """Handle All-in-One Presence options."""

    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        self.options = dict(config_entry.options)

    def _people(self) -> list[dict[str, Any]]:
        return list(self.options.get(OPT_PEOPLE, []))

    async def async_step_init(self, user_input=None) -> FlowResult:
        return self.async_show_menu(
            step_id="init",
            menu_options=["general", "people_add", "people_remove", "save"],
        )

    async def async_step_general(self, user_input=None) -> FlowResult:
        if user_input is None:
            return self.async_show_form(step_id="general", data_schema=_general_schema(self.options))

        errors: dict[str, str] = {}
        url_error = _validate_controller_url(user_input.get(CONF_CONTROLLER_URL, ""))
        if url_error:
            errors[CONF_CONTROLLER_URL] = url_error
            return self.async_show_form(
                step_id="general", data_schema=_general_schema(user_input), errors=errors
            )

        self.options.update(_normalize_general(user_input))
        return await self.async_step_init()

    async def async_step_people_add(self, user_input=None) -> FlowResult:
        _LOGGER.debug("Options flow: people_add user_input=%s", bool(user_input))
        if user_input is None:
            return self.async_show_form(step_id="people_add", data_schema=self._person_schema())

        errors: dict[str, str] = {}
        try:
            identity = normalize_identity(user_input.get(ATTR_IDENTITY))
        except InvalidIdentityError:
            errors[ATTR_IDENTITY] = "invalid_mac"
        else:
            if any(person.get(ATTR_IDENTITY) == identity for person in self._people()):
                errors[ATTR_IDENTITY] = "duplicate"

        if errors:
            return self.async_show_form(
                step_id="people_add", data_schema=self._person_schema(user_input), errors=errors
            )

        person: dict[str, Any] = {
            ATTR_IDENTITY: identity,
            ATTR_LABEL: user_input.get(ATTR_LABEL) or identity,
        }
        if user_input.get(ATTR_HEARTBEAT_TIMEOUT):
            person[ATTR_HEARTBEAT_TIMEOUT] = int(user_input[ATTR_HEARTBEAT_TIMEOUT])
        self.options[OPT_PEOPLE] = self._people() + [person]
        return await self.async_step_init()

    async def async_step_people_remove(self, user_input=None) -> FlowResult:
        people = self._people()
        if not people:
            return await self.async_step_people_add()

        if user_input is None:
            choices = {p[ATTR_IDENTITY]: f"{p.get(ATTR_LABEL) or p[ATTR_IDENTITY]}" for p in people}
            schema = vol.Schema({vol.Required("person"): vol.In(choices)})
            return self.async_show_form(step_id="people_remove", data_schema=schema)

        identity = user_input.get("person")
        self.options[OPT_PEOPLE] = [p for p in people if p.get(ATTR_IDENTITY) != identity]
        return await self.async_step_init()

    async def async_step_save(self, user_input=None) -> FlowResult:
        """Persist options and close the flow."""
        return self.async_create_entry(title="", data=self.options)

    def _person_schema(self, defaults: dict[str, Any] | None = None) -> vol.Schema:
        defaults = defaults or {}
        return vol.Schema(
            {
                vol.Required(ATTR_IDENTITY, default=defaults.get(ATTR_IDENTITY, "")): cv.string,
                vol.Optional(ATTR_LABEL, default=defaults.get(ATTR_LABEL, "")): cv.string,
                vol.Optional(ATTR_HEARTBEAT_TIMEOUT): _TIMEOUT_RANGE,
            }
        )
