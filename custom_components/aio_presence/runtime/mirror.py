"""Outbound client for the external security-mode controller."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from ..const import DEFAULT_CONTROLLER_TIMEOUT
from .snapshot import MirroredMode

_LOGGER = logging.getLogger(__name__)


class ModeControllerClient:
    """Best-effort ``GET {base_url}/{mode}``; local state stays authoritative."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        timeout: float = DEFAULT_CONTROLLER_TIMEOUT,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def url_for(self, mode: MirroredMode | str) -> str:
        return f"{self._base_url}/{mode}"

    async def async_push(self, mode: MirroredMode | str) -> bool:
        url = self.url_for(mode)
        try:
            async with asyncio.timeout(self._timeout):
                async with self._session.get(url) as response:
                    if 200 <= response.status < 300:
                        _LOGGER.debug("Controller accepted mode %s", mode)
                        return True
                    _LOGGER.warning("Controller rejected mode %s: HTTP %s", mode, response.status)
                    return False
        except TimeoutError:
            _LOGGER.warning("Controller did not answer within %ss for mode %s", self._timeout, mode)
        except aiohttp.ClientError as err:
            _LOGGER.warning("Failed to push mode %s to controller: %s", mode, err)
        return False
