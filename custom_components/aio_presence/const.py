"""Constants for the All-in-One Presence integration."""

from __future__ import annotations

from homeassistant.const import Platform

DOMAIN = "aio_presence"
PLATFORMS: list[Platform] = [
    Platform.SENSOR,
    Platform.BINARY_SENSOR,
    Platform.SELECT,
]

# Options keys (v1)
CONF_POLICY = "policy"
CONF_HEARTBEAT_TIMEOUT = "heartbeat_timeout"
CONF_RESTART_GRACE = "restart_grace"
CONF_RECONCILE_INTERVAL = "reconcile_interval"
CONF_TOPIC_PREFIXES = "topic_prefixes"
CONF_CONTROLLER_URL = "controller_url"
CONF_CONTROLLER_TIMEOUT = "controller_timeout"
CONF_OVERRIDE_MODE = "override_mode"

OPT_PEOPLE = "people"

# Person keys inside OPT_PEOPLE
ATTR_IDENTITY = "identity"
ATTR_LABEL = "label"
ATTR_HEARTBEAT_TIMEOUT = "heartbeat_timeout"

POLICY_ANYONE = "anyone"
POLICY_EVERYONE = "everyone"
POLICIES = [POLICY_ANYONE, POLICY_EVERYONE]

MODE_OFF = "off"
MODE_HOME = "home"
MODE_AWAY = "away"
MODE_NIGHT = "night"
MIRRORED_MODES = [MODE_OFF, MODE_HOME, MODE_AWAY, MODE_NIGHT]

DEFAULT_POLICY = POLICY_ANYONE
DEFAULT_HEARTBEAT_TIMEOUT = 60
MIN_HEARTBEAT_TIMEOUT = 5
MAX_HEARTBEAT_TIMEOUT = 3600
HEARTBEAT_FRESHNESS_WINDOW = 30
DEFAULT_RESTART_GRACE = 300
DEFAULT_RECONCILE_INTERVAL = 120
DEFAULT_TOPIC_PREFIXES = ["UnifiU6Pro", "AsusAC68U"]
DEFAULT_CONTROLLER_URL = ""
DEFAULT_CONTROLLER_TIMEOUT = 10
DEFAULT_OVERRIDE_MODE = MODE_OFF

TOPIC_TEMPLATE = "{prefix}/status/mac-{identity}/lastseen/epoch"

# Storage
STORAGE_VERSION = 1
STORAGE_SAVE_DELAY = 1

# Debounce for aggregate recompute hand-off (seconds)
RECOMPUTE_COOLDOWN = 0.2

# Services
SERVICE_PRESENT = "present"
SERVICE_NOT_PRESENT = "not_present"
SERVICE_ARRIVE = "arrive"
SERVICE_DEPART = "depart"
SERVICE_GEOFENCE_ENTER = "geofence_enter"
SERVICE_GEOFENCE_EXIT = "geofence_exit"
SERVICE_HOUSEHOLD_PRESENT = "household_present"
SERVICE_HOUSEHOLD_NOT_PRESENT = "household_not_present"
SERVICE_HOUSEHOLD_ARRIVE = "household_arrive"
SERVICE_HOUSEHOLD_DEPART = "household_depart"
SERVICE_ADD_ENTITY = "add_entity"
SERVICE_REMOVE_ENTITY = "remove_entity"
SERVICE_REMOVE_ALL_ENTITIES = "remove_all_entities"
SERVICE_SET_POLICY = "set_policy"
SERVICE_SET_GUEST_OVERRIDE = "set_guest_override"
SERVICE_SET_MIRRORED_MODE = "set_mirrored_mode"
SERVICE_REFRESH = "refresh"
SERVICE_RECONCILE = "reconcile"

# Events
EVENT_PRESENCE_CHANGED = "aio_presence_changed"

DIAGNOSTICS_REDACT_KEYS = {
    "identity",
    "controller_url",
    "label",
}
