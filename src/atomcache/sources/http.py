"""
HTTP data source backed by aiohttp.

Each fetch runs on a private event loop so that the source can be called
from any thread, including the coordinator's refresh workers.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Mapping

import aiohttp

from atomcache import __version__
from atomcache.core.exceptions import TransportError, ValidationError
from atomcache.core.models import FetchDescriptor
from atomcache.core.validation import MAX_ATOM_SIZE, validate_atom_size
from atomcache.logging import get_logger
from atomcache.sources.base import DataSource

logger = get_logger(__name__)


class HttpDataSource(DataSource):
    """Fetches descriptors over HTTP.

    Status codes 200 to 207 are successes; anything else raises a
    TransportError carrying the status code.
    """

    # Maximum response size (10 MB) - can be overridden by subclasses
    MAX_RESPONSE_SIZE = MAX_ATOM_SIZE

    def __init__(
        self,
        timeout: int = 30,
        headers: Mapping[str, str] | None = None,
        connected: bool = True,
    ):
        """Initialize the data source.

        Args:
            timeout: Request timeout in seconds.
            headers: Headers sent with every request, before descriptor headers.
            connected: When False, requests fail without touching the network.
        """
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.headers = dict(headers or {})
        self.connected = connected

    def fetch(self, descriptor: FetchDescriptor) -> bytes:
        """Fetch the descriptor, blocking the calling thread.

        On a thread that already runs an event loop, the request runs on a
        private worker thread with its own loop.

        Raises:
            TransportError: If the request fails or the source is offline.
        """
        if not self.connected:
            raise TransportError(descriptor.url, details="No network connectivity")
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.fetch_async(descriptor))

        logger.debug("Fetching '%s' off the running event loop", descriptor.url)
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="atomcache-http") as executor:
            return executor.submit(asyncio.run, self.fetch_async(descriptor)).result()

    async def fetch_async(self, descriptor: FetchDescriptor) -> bytes:
        """Fetch the descriptor on the running event loop."""
        url = descriptor.url
        start = time.monotonic()

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    descriptor.method.value,
                    url,
                    data=descriptor.body,
                    headers=self._build_headers(descriptor),
                ) as resp:
                    self._check_response_size(resp)
                    logger.debug(
                        "The %s request to '%s' took %.1f ms and returned status %d",
                        descriptor.method, url, (time.monotonic() - start) * 1000, resp.status,
                    )
                    if not 200 <= resp.status <= 207:
                        raise TransportError(url, resp.status, details=resp.reason)
                    return await resp.read()

        # Checked first: aiohttp timeout errors are also ClientErrors
        except asyncio.TimeoutError:
            raise TransportError(url, details=f"Timed out after {self.timeout.total} seconds")
        except aiohttp.ClientError as e:
            raise TransportError(url, details=str(e))

    def _build_headers(self, descriptor: FetchDescriptor) -> dict[str, Any]:
        """Build request headers.

        Override in subclasses to add authentication or other headers.
        """
        headers = {
            "User-Agent": f"atomcache/{__version__}",
        }
        headers.update(self.headers)
        headers.update(dict(descriptor.headers))
        return headers

    def _check_response_size(self, response: aiohttp.ClientResponse) -> None:
        """Reject responses announcing more bytes than an atom may hold.

        Raises:
            TransportError: If the announced Content-Length is too large.
        """
        content_length = response.headers.get("Content-Length")
        if content_length is None:
            return
        try:
            validate_atom_size(int(content_length), self.MAX_RESPONSE_SIZE)
        except ValueError:
            pass  # Invalid Content-Length header, proceed with caution
        except ValidationError as e:
            raise TransportError(str(response.url), response.status, details=str(e))
