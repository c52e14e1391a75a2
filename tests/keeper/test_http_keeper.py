"""
Tests for the HTTP keeper client.
"""
import base64
import json

import pytest
import requests

from chainloader.exceptions import ConfigurationError, KeeperError
from chainloader.keeper import HttpKeeper, InMemoryKeeper, content_key, get_keeper

KEEPER_URL = "https://keeper.example.com"


def _b64(data):
    return base64.b64encode(data).decode("ascii")


class TestHttpKeeperInit:
    """Test HttpKeeper construction."""

    def test_strips_trailing_slash(self):
        assert HttpKeeper(KEEPER_URL + "/").url == KEEPER_URL

    @pytest.mark.parametrize("url", ["http://localhost:8080", "http://127.0.0.1"])
    def test_plain_http_allowed_locally(self, url):
        assert HttpKeeper(url).url == url

    def test_plain_http_rejected(self):
        with pytest.raises(ConfigurationError, match="must use https"):
            HttpKeeper("http://keeper.example.com")

    def test_invalid_timeout(self):
        with pytest.raises(ConfigurationError):
            HttpKeeper(KEEPER_URL, timeout=0)

    def test_retries_mounted_when_requested(self):
        keeper = HttpKeeper(KEEPER_URL, retry_count=2)
        adapter = keeper.session.get_adapter(KEEPER_URL)
        assert adapter.max_retries.total == 2

    def test_get_keeper(self):
        assert isinstance(get_keeper(KEEPER_URL, timeout=5), HttpKeeper)
        assert isinstance(get_keeper(), InMemoryKeeper)


class TestHttpKeeperGetMany:
    """Test HttpKeeper.get_many against a mocked service."""

    @pytest.mark.asyncio
    async def test_get_many(self, requests_mock):
        route = requests_mock.post(
            f"{KEEPER_URL}/getMany",
            json={"values": [_b64(b"one"), None, _b64(b"three")]},
        )
        keeper = HttpKeeper(KEEPER_URL)

        values = await keeper.get_many(["k1", "k2", "k3"])

        assert values == [b"one", None, b"three"]
        assert route.call_count == 1
        assert json.loads(route.last_request.body) == {"keys": ["k1", "k2", "k3"]}

    @pytest.mark.asyncio
    async def test_empty_keys_no_request(self, requests_mock):
        route = requests_mock.post(f"{KEEPER_URL}/getMany", json={"values": []})
        assert await HttpKeeper(KEEPER_URL).get_many([]) == []
        assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_server_error(self, requests_mock):
        requests_mock.post(f"{KEEPER_URL}/getMany", status_code=503)
        with pytest.raises(KeeperError, match="Keeper request failed"):
            await HttpKeeper(KEEPER_URL).get_many(["k1"])

    @pytest.mark.asyncio
    async def test_connection_error(self, requests_mock):
        requests_mock.post(f"{KEEPER_URL}/getMany", exc=requests.ConnectionError("down"))
        with pytest.raises(KeeperError, match="down"):
            await HttpKeeper(KEEPER_URL).get_many(["k1"])

    @pytest.mark.asyncio
    async def test_invalid_json(self, requests_mock):
        requests_mock.post(f"{KEEPER_URL}/getMany", text="<html>oops</html>")
        with pytest.raises(KeeperError, match="Invalid JSON"):
            await HttpKeeper(KEEPER_URL).get_many(["k1"])

    @pytest.mark.asyncio
    async def test_missing_values(self, requests_mock):
        requests_mock.post(f"{KEEPER_URL}/getMany", json={"error": "nope"})
        with pytest.raises(KeeperError, match="Missing values"):
            await HttpKeeper(KEEPER_URL).get_many(["k1"])

    @pytest.mark.asyncio
    async def test_bad_value_encoding(self, requests_mock):
        requests_mock.post(f"{KEEPER_URL}/getMany", json={"values": ["***"]})
        with pytest.raises(KeeperError, match="Invalid value encoding"):
            await HttpKeeper(KEEPER_URL).get_many(["k1"])


class TestHttpKeeperPut:
    """Test HttpKeeper.put."""

    @pytest.mark.asyncio
    async def test_put_content_addressed(self, requests_mock):
        data = b"file contents"
        key = content_key(data)
        route = requests_mock.put(f"{KEEPER_URL}/{key}", status_code=201)

        assert await HttpKeeper(KEEPER_URL).put(data) == key
        assert route.last_request.body == data

    @pytest.mark.asyncio
    async def test_put_error(self, requests_mock):
        requests_mock.put(f"{KEEPER_URL}/{content_key(b'x')}", status_code=500)
        with pytest.raises(KeeperError, match="Keeper put failed"):
            await HttpKeeper(KEEPER_URL).put(b"x")


@pytest.mark.asyncio
async def test_close_closes_session():
    session = requests.Session()
    session.close = lambda: setattr(session, "closed_by_keeper", True)
    keeper = HttpKeeper(KEEPER_URL, session=session)

    await keeper.close()

    assert session.closed_by_keeper
