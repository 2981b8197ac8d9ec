"""Storage protocol definitions using typing.Protocol."""

from dataclasses import dataclass
from typing import Any, Protocol


class KVStore(Protocol):
    """Key-value namespace with optional per-key expiry."""

    async def get(self, key: str) -> str | None:
        """Get raw value."""
        ...

    async def get_json(self, key: str) -> Any | None:
        """Get value decoded from JSON."""
        ...

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store value, optionally expiring after ttl seconds."""
        ...

    async def put_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value encoded as JSON."""
        ...

    async def put_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Atomically store value only if key is unset. True when stored."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...

    async def startup(self) -> None:
        """Initialize store on startup."""
        ...

    async def shutdown(self) -> None:
        """Cleanup store on shutdown."""
        ...


@dataclass
class BlobObject:
    """Stored binary object with its HTTP metadata."""

    key: str
    body: bytes
    content_type: str
    cache_control: str | None
    etag: str


class BlobStore(Protocol):
    """Binary object storage."""

    async def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
    ) -> None:
        """Store (or overwrite) an object."""
        ...

    async def get(self, key: str) -> BlobObject | None:
        """Fetch an object."""
        ...

    async def exists(self, key: str) -> bool:
        """Check whether an object is stored."""
        ...

    async def delete(self, key: str) -> None:
        """Remove an object if present."""
        ...

    async def health_check(self) -> bool:
        """Check if storage is reachable."""
        ...

    async def startup(self) -> None:
        """Initialize storage on startup."""
        ...

    async def shutdown(self) -> None:
        """Cleanup storage on shutdown."""
        ...
