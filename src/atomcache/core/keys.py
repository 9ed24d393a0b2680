"""
Key aggregation: turning typed request parameters into cache keys.

A key aggregator is a pure function of its parameters. It produces the
descriptor used to fetch remote content and the key under which that
content is persisted, which may be a local key different from the URL.
"""

from abc import ABC, abstractmethod
from typing import Callable, Generic, Mapping, TypeVar
from urllib.parse import quote_plus

from atomcache.core.models import CacheKey, FetchDescriptor
from atomcache.core.validation import validate_key
from atomcache.logging import get_logger

logger = get_logger(__name__)

P = TypeVar("P")


def build_url(
    prefix: str,
    suffix: str | None = None,
    parameters: Mapping[str, str | None] | None = None,
) -> str:
    """Build a request URL from a prefix, a method suffix and query parameters.

    Parameters are sorted by name so that equal mappings always produce the
    same URL. An empty value is rendered as the bare parameter name and a
    ``None`` value is skipped.

    Args:
        prefix: Base URL, e.g. "https://api.example.com".
        suffix: Optional path appended after a "/".
        parameters: Optional query parameters.

    Returns:
        The encoded URL.

    Example:
        >>> build_url("http://host", "method", {"b": "2", "a": "x y"})
        'http://host/method?a=x+y&b=2'
    """
    url = prefix
    if suffix:
        url = f"{prefix.rstrip('/')}/{suffix.lstrip('/')}"

    if not parameters:
        return url

    pairs = []
    for name in sorted(parameters):
        value = parameters[name]
        if value is None:
            logger.warning("Skipping URL parameter '%s' because its value is None", name)
            continue
        if value == "":
            pairs.append(quote_plus(name))
        else:
            pairs.append(f"{quote_plus(name)}={quote_plus(str(value))}")

    if not pairs:
        return url

    separator = "&" if "?" in url else "?"
    return url + separator + "&".join(pairs)


class KeyAggregator(ABC, Generic[P]):
    """Maps request parameters to a cache key and a fetch descriptor.

    Subclasses implement :meth:`descriptor`. They may override
    :meth:`storage_key` to persist content under a local key instead of the
    one derived from the descriptor.
    """

    @abstractmethod
    def descriptor(self, params: P) -> FetchDescriptor:
        """Compute the fetch descriptor for the given parameters."""

    def storage_key(self, params: P, descriptor: FetchDescriptor) -> str | None:
        """Return a local persistence key, or None to derive it from the descriptor."""
        return None

    def aggregate(self, params: P) -> tuple[CacheKey, FetchDescriptor]:
        """Compute ``(key, descriptor)`` for the given parameters."""
        descriptor = self.descriptor(params)
        local_key = self.storage_key(params, descriptor)
        if local_key is not None:
            key = CacheKey(validate_key(local_key))
        else:
            key = CacheKey.from_descriptor(descriptor)
        return key, descriptor


class SimpleKeyAggregator(KeyAggregator[P]):
    """Key aggregator built from plain callables."""

    def __init__(
        self,
        descriptor_factory: Callable[[P], FetchDescriptor],
        storage_key_factory: Callable[[P], str] | None = None,
    ):
        """Initialize the aggregator.

        Args:
            descriptor_factory: Builds the fetch descriptor from parameters.
            storage_key_factory: Optional builder of a local persistence key.
        """
        self._descriptor_factory = descriptor_factory
        self._storage_key_factory = storage_key_factory

    def descriptor(self, params: P) -> FetchDescriptor:
        return self._descriptor_factory(params)

    def storage_key(self, params: P, descriptor: FetchDescriptor) -> str | None:
        if self._storage_key_factory is None:
            return None
        return self._storage_key_factory(params)
