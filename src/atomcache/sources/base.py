"""
Abstract base class for data sources.

Defines the boundary between the cache and the network: a data source
turns a fetch descriptor into raw bytes.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Union

from atomcache.core.models import FetchDescriptor

FetchResult = Union[bytes, BinaryIO]


class DataSource(ABC):
    """Abstract base class for data sources.

    Implementations are called from arbitrary threads and must not assume
    a running event loop.
    """

    @abstractmethod
    def fetch(self, descriptor: FetchDescriptor) -> FetchResult:
        """Fetch the content described by ``descriptor``.

        Args:
            descriptor: Locator, method, body and headers of the request.

        Returns:
            The content as bytes or as a binary stream. Streams are read
            fully and closed by the caller.

        Raises:
            TransportError: If the request fails.
        """
        pass


def read_content(result: FetchResult) -> bytes:
    """Turn a fetch result into bytes, closing it if it is a stream."""
    if isinstance(result, (bytes, bytearray, memoryview)):
        return bytes(result)
    try:
        return result.read()
    finally:
        result.close()
