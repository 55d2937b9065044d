"""Heartbeat topic routing (MQTT topic + payload -> identity + epoch)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from ..const import DEFAULT_TOPIC_PREFIXES, TOPIC_TEMPLATE
from .errors import InvalidIdentityError, MalformedPayloadError
from .identity import normalize_identity

_LOGGER = logging.getLogger(__name__)

_TOPIC_RE = re.compile(r"^(?P<prefix>[^/]+)/status/mac-(?P<mac>[^/]+)/lastseen/epoch$")


@dataclass(frozen=True)
class RoutedHeartbeat:
    """A heartbeat extracted from a transport message."""

    identity: str
    epoch: int
    topic: str


class HeartbeatRouter:
    """Maps identities to transport topics and transport messages back to identities."""

    def __init__(self, prefixes: Iterable[str] | None = None) -> None:
        cleaned = [str(p).strip().strip("/") for p in (prefixes or DEFAULT_TOPIC_PREFIXES)]
        self._prefixes = [p for p in dict.fromkeys(cleaned) if p]
        if not self._prefixes:
            self._prefixes = list(DEFAULT_TOPIC_PREFIXES)

    @property
    def prefixes(self) -> list[str]:
        return list(self._prefixes)

    def topics_for(self, identity: str) -> list[str]:
        return [TOPIC_TEMPLATE.format(prefix=prefix, identity=identity) for prefix in self._prefixes]

    def parse_topic(self, topic: str) -> str | None:
        match = _TOPIC_RE.match(topic or "")
        if not match or match.group("prefix") not in self._prefixes:
            return None
        try:
            return normalize_identity(match.group("mac"))
        except InvalidIdentityError:
            return None

    def route(self, topic: str, payload: str | bytes) -> RoutedHeartbeat | None:
        """Extract (identity, epoch); malformed input is logged and dropped."""
        identity = self.parse_topic(topic)
        if identity is None:
            _LOGGER.debug("Ignoring message on unrecognised topic %s", topic)
            return None

        try:
            epoch = parse_payload(payload)
        except MalformedPayloadError as err:
            _LOGGER.warning("Dropping heartbeat on %s: %s", topic, err)
            return None

        return RoutedHeartbeat(identity=identity, epoch=epoch, topic=topic)


def parse_payload(payload: str | bytes | None) -> int:
    """Parse a decimal ASCII epoch-seconds payload."""
    if payload is None:
        raise MalformedPayloadError("payload is empty")
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("ascii")
        except UnicodeDecodeError as err:
            raise MalformedPayloadError("payload is not ASCII") from err

    text = str(payload).strip()
    if not text.isdigit() or not text.isascii():
        raise MalformedPayloadError(f"payload '{text[:32]}' is not a decimal epoch")
    return int(text)
