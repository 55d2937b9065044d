import asyncio
from types import SimpleNamespace

import aiohttp

from custom_components.aio_presence.runtime.mirror import ModeControllerClient
from custom_components.aio_presence.runtime.snapshot import MirroredMode


class _Request:
    def __init__(self, status=200, error=None, delay=0.0):
        self._status = status
        self._error = error
        self._delay = delay

    async def __aenter__(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return SimpleNamespace(status=self._status)

    async def __aexit__(self, *exc):
        return False


class _Session:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.urls = []

    def get(self, url):
        self.urls.append(url)
        return _Request(**self.kwargs)


def test_url_for_strips_trailing_slash():
    client = ModeControllerClient(_Session(), "http://controller.local/mode/")
    assert client.url_for(MirroredMode.AWAY) == "http://controller.local/mode/away"


def test_push_success():
    session = _Session(status=204)
    client = ModeControllerClient(session, "http://controller.local")
    assert asyncio.run(client.async_push(MirroredMode.HOME)) is True
    assert session.urls == ["http://controller.local/home"]


def test_push_http_error_is_reported_not_raised(caplog):
    client = ModeControllerClient(_Session(status=503), "http://controller.local")
    assert asyncio.run(client.async_push(MirroredMode.AWAY)) is False
    assert "HTTP 503" in caplog.text


def test_push_connection_error(caplog):
    session = _Session(error=aiohttp.ClientConnectionError("refused"))
    client = ModeControllerClient(session, "http://controller.local")
    assert asyncio.run(client.async_push(MirroredMode.AWAY)) is False
    assert "refused" in caplog.text


def test_push_timeout(caplog):
    client = ModeControllerClient(_Session(delay=1.0), "http://controller.local", timeout=0.01)
    assert asyncio.run(client.async_push(MirroredMode.AWAY)) is False
    assert "did not answer" in caplog.text
