"""
Error taxonomy for the discovery engine.

- InvalidInput: malformed arguments; raised to the caller.
- ItemNotFound: a referenced item does not exist (subtype of InvalidInput).
- NoValidSignal: preference learning found no usable embeddings.
- UpstreamUnavailable: content store, vector index or embedding provider failure.
- CacheUnavailable: cache backend failure; never correctness-affecting.
"""


class DiscoveryError(Exception):
    """Base class for all discovery engine errors."""


class InvalidInput(DiscoveryError, ValueError):
    """Malformed arguments (empty vector sets, negative weights, bad limits)."""


class ItemNotFound(InvalidInput):
    """A referenced content item could not be found."""

    def __init__(self, item_id: str):
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class NoValidSignal(DiscoveryError):
    """No usable embeddings for the given interactions; profile left unchanged."""


class UpstreamUnavailable(DiscoveryError):
    """An external collaborator (store, index, embedding provider) failed."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} unavailable: {message}")
        self.service = service


class CacheUnavailable(DiscoveryError):
    """The cache backend failed. Callers treat this as a miss."""
