"""Typed models for All-in-One Presence configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from homeassistant.config_entries import ConfigEntry

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
    OPT_PEOPLE,
)
from .runtime.errors import InvalidIdentityError
from .runtime.fusion import clamp_timeout
from .runtime.identity import normalize_identity
from .runtime.snapshot import AggregationPolicy, MirroredMode

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersonConfig:
    """One tracked person as stored in the options."""

    identity: str
    label: str
    heartbeat_timeout: int | None = None

    def as_option(self) -> dict[str, Any]:
        data: dict[str, Any] = {ATTR_IDENTITY: self.identity, ATTR_LABEL: self.label}
        if self.heartbeat_timeout is not None:
            data[ATTR_HEARTBEAT_TIMEOUT] = self.heartbeat_timeout
        return data


@dataclass(frozen=True)
class PresenceOptions:
    """Normalized options stored in the config entry."""

    policy: AggregationPolicy = AggregationPolicy(DEFAULT_POLICY)
    heartbeat_timeout: int = DEFAULT_HEARTBEAT_TIMEOUT
    restart_grace: int = DEFAULT_RESTART_GRACE
    reconcile_interval: int = DEFAULT_RECONCILE_INTERVAL
    topic_prefixes: tuple[str, ...] = tuple(DEFAULT_TOPIC_PREFIXES)
    controller_url: str = DEFAULT_CONTROLLER_URL
    controller_timeout: int = DEFAULT_CONTROLLER_TIMEOUT
    override_mode: MirroredMode = MirroredMode(DEFAULT_OVERRIDE_MODE)
    people: tuple[PersonConfig, ...] = field(default_factory=tuple)

    @classmethod
    def from_entry(cls, entry: ConfigEntry) -> "PresenceOptions":
        return cls.from_mapping(dict(entry.options))

    @classmethod
    def from_mapping(cls, options: dict[str, Any]) -> "PresenceOptions":
        return cls(
            policy=_enum(AggregationPolicy, options.get(CONF_POLICY), AggregationPolicy(DEFAULT_POLICY)),
            heartbeat_timeout=clamp_timeout(options.get(CONF_HEARTBEAT_TIMEOUT, DEFAULT_HEARTBEAT_TIMEOUT)),
            restart_grace=_positive_int(options.get(CONF_RESTART_GRACE), DEFAULT_RESTART_GRACE),
            reconcile_interval=_positive_int(
                options.get(CONF_RECONCILE_INTERVAL), DEFAULT_RECONCILE_INTERVAL
            ),
            topic_prefixes=tuple(parse_prefixes(options.get(CONF_TOPIC_PREFIXES))),
            controller_url=str(options.get(CONF_CONTROLLER_URL) or DEFAULT_CONTROLLER_URL).strip(),
            controller_timeout=_positive_int(
                options.get(CONF_CONTROLLER_TIMEOUT), DEFAULT_CONTROLLER_TIMEOUT
            ),
            override_mode=_enum(
                MirroredMode, options.get(CONF_OVERRIDE_MODE), MirroredMode(DEFAULT_OVERRIDE_MODE)
            ),
            people=tuple(_people(options.get(OPT_PEOPLE, []))),
        )


def parse_prefixes(value: Any) -> list[str]:
    """Topic prefixes from a list or a comma separated string."""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = []
    prefixes = [item.strip().strip("/") for item in items if item and item.strip().strip("/")]
    return prefixes or list(DEFAULT_TOPIC_PREFIXES)


def _people(raw: Any) -> list[PersonConfig]:
    people: list[PersonConfig] = []
    seen: set[str] = set()
    for item in raw or []:
        try:
            identity = normalize_identity(item.get(ATTR_IDENTITY))
        except (AttributeError, InvalidIdentityError) as err:
            _LOGGER.warning("Skipping invalid person in options: %s", err)
            continue
        if identity in seen:
            continue
        seen.add(identity)
        timeout = item.get(ATTR_HEARTBEAT_TIMEOUT)
        people.append(
            PersonConfig(
                identity=identity,
                label=str(item.get(ATTR_LABEL) or identity),
                heartbeat_timeout=clamp_timeout(timeout) if timeout not in (None, "") else None,
            )
        )
    return people


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _enum(enum_cls, value: Any, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default
