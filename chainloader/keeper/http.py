"""
HTTP client for a keeper service.

Wire format:
    POST {url}/getMany  {"keys": [...]}  ->  {"values": [base64 | null, ...]}
    PUT  {url}/{key}    raw bytes        ->  2xx

Blocking ``requests`` calls run in a worker thread so the loader's event
loop is not held up while waiting on the network.
"""
import asyncio
import base64
import binascii
import logging
import urllib.parse
from typing import List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions import ConfigurationError, KeeperError
from .base import Keeper, content_key

logger = logging.getLogger(__name__)


class HttpKeeper(Keeper):
    """Keeper client speaking to a keeper service over HTTP(S)."""

    def __init__(
        self,
        url: str,
        timeout: int = 30,
        retry_count: int = 0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            url: Keeper service URL (e.g., "https://keeper.example.com")
            timeout: Timeout for HTTP requests in seconds
            retry_count: Number of transport-level retries; the loader itself
                never retries, so this is the caller's choice
            session: Optional preconfigured requests session

        Raises:
            ConfigurationError: If the URL doesn't use https (unless it's localhost/127.0.0.1)
        """
        parsed = urllib.parse.urlparse(url)
        host = parsed.netloc.split(':')[0] if parsed.netloc else ''
        is_local = host in ('localhost', '127.0.0.1')
        if parsed.scheme != 'https' and not is_local:
            raise ConfigurationError(f"keeper url must use https:// for security (got: {parsed.scheme}://)")
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")

        self.url = url.rstrip('/')
        self.timeout = timeout

        self.session = session or requests.Session()
        if retry_count > 0:
            retries = Retry(
                total=retry_count,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["POST", "PUT"],
                raise_on_status=False,
            )
            self.session.mount("http://", HTTPAdapter(max_retries=retries))
            self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def _get_many(self, keys: List[str]) -> List[Optional[bytes]]:
        try:
            response = self.session.post(
                f"{self.url}/getMany",
                json={"keys": keys},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Keeper multi-get failed: {e}")
            raise KeeperError(f"Keeper request failed: {e}", len(keys)) from e

        try:
            result = response.json()
        except ValueError as e:
            raise KeeperError(f"Invalid JSON response from keeper: {e}", len(keys)) from e

        values = result.get("values") if isinstance(result, dict) else None
        if not isinstance(values, list):
            raise KeeperError(f"Missing values in keeper response: {result!r:.200}", len(keys))

        try:
            return [None if v is None else base64.b64decode(v, validate=True) for v in values]
        except (binascii.Error, TypeError) as e:
            raise KeeperError(f"Invalid value encoding in keeper response: {e}", len(keys)) from e

    def _put(self, data: bytes) -> str:
        key = content_key(data)
        try:
            response = self.session.put(
                f"{self.url}/{key}",
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Keeper put failed: {e}")
            raise KeeperError(f"Keeper put failed: {e}", 1) from e
        return key

    async def get_many(self, keys: Sequence[str]) -> List[Optional[bytes]]:
        keys = list(keys)
        if not keys:
            return []
        logger.debug(f"Fetching {len(keys)} keys from {self.url}")
        return await asyncio.to_thread(self._get_many, keys)

    async def put(self, data: bytes) -> str:
        return await asyncio.to_thread(self._put, bytes(data))

    async def close(self) -> None:
        self.session.close()
