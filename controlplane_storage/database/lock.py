"""
Named locks backed by the Locks container.

A lock is a document whose ID is the lock name. Creating it acquires the
lock; the container's default TTL makes an abandoned lock expire on its own.
Renewing replaces the document (resetting its TTL clock) and releasing
deletes it, both conditional on the etag the holder last saw, so a holder
whose lock expired and was taken by someone else cannot disturb the new
holder.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from typing import Any

from azure.core import MatchConditions
from azure.core.exceptions import AzureError
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from ..exceptions import StorageIOError
from ..logging_utils import StorageLoggerAdapter

logger = logging.getLogger(__name__)

LOCKS_CONTAINER = "Locks"

# Seconds between attempts while waiting for a held lock
DEFAULT_POLL_INTERVAL = 1.0


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class LockClient:
    """Acquire, renew and release named locks.

    Lock documents are plain dicts as returned by Cosmos DB; hold on to the
    most recent one, since renew and release need its etag.
    """

    def __init__(self, container: Any, default_ttl: int, owner: str | None = None):
        """
        Args:
            container: ContainerProxy for the Locks container
            default_ttl: The container's default time-to-live in seconds
            owner: Recorded on lock documents for diagnostics
        """
        self._container = container
        self._default_ttl = default_ttl
        self._owner = owner or _default_owner()
        self._log = StorageLoggerAdapter(logger, container=LOCKS_CONTAINER, owner=self._owner)

    @classmethod
    async def create(cls, container: Any, owner: str | None = None) -> LockClient:
        """Build a LockClient, reading the default TTL from the container.

        Raises:
            ValueError: If the container has no positive default TTL
            StorageIOError: If the container properties cannot be read
        """
        try:
            properties = await container.read()
        except AzureError as e:
            raise StorageIOError("read", LOCKS_CONTAINER, cause=e) from e

        default_ttl = properties.get("defaultTtl")
        if not isinstance(default_ttl, int) or default_ttl <= 0:
            raise ValueError(
                f"Container '{properties.get('id', LOCKS_CONTAINER)}' must have a positive "
                f"default time-to-live, got {default_ttl!r}"
            )
        return cls(container, default_ttl, owner)

    @property
    def default_time_to_live(self) -> int:
        return self._default_ttl

    async def try_acquire_lock(self, lock_id: str) -> dict[str, Any] | None:
        """Make one attempt to acquire a lock.

        Returns:
            The lock document, or None if someone else holds the lock
        """
        body = {"id": lock_id, "owner": self._owner}
        try:
            lock = await self._container.create_item(body=body)
        except CosmosResourceExistsError:
            return None
        except AzureError as e:
            raise StorageIOError("acquire", LOCKS_CONTAINER, lock_id, e) from e

        self._log.debug("Lock acquired", extra={"key": lock_id})
        return lock

    async def acquire_lock(
        self,
        lock_id: str,
        timeout: float | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> dict[str, Any] | None:
        """Wait for a lock to become available.

        Args:
            lock_id: Name of the lock
            timeout: Seconds to keep trying; None waits indefinitely
            poll_interval: Seconds between attempts

        Returns:
            The lock document, or None if the timeout elapsed first
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            lock = await self.try_acquire_lock(lock_id)
            if lock is not None:
                return lock

            delay = poll_interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                delay = min(delay, remaining)
            await asyncio.sleep(delay)

    async def renew_lock(self, lock: dict[str, Any]) -> dict[str, Any] | None:
        """Reset a held lock's time-to-live.

        Returns:
            The refreshed lock document, or None if the lock was lost
        """
        try:
            return await self._container.replace_item(
                item=lock["id"],
                body=lock,
                etag=lock.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )
        except (CosmosAccessConditionFailedError, CosmosResourceNotFoundError):
            self._log.info("Lock lost before renewal", extra={"key": lock["id"]})
            return None
        except AzureError as e:
            raise StorageIOError("renew", LOCKS_CONTAINER, lock["id"], e) from e

    async def release_lock(self, lock: dict[str, Any]) -> bool:
        """Release a held lock.

        Returns:
            True if released, False if the lock had already been lost
        """
        try:
            await self._container.delete_item(
                item=lock["id"],
                partition_key=lock["id"],
                etag=lock.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )
        except (CosmosAccessConditionFailedError, CosmosResourceNotFoundError):
            return False
        except AzureError as e:
            raise StorageIOError("release", LOCKS_CONTAINER, lock["id"], e) from e
        return True
