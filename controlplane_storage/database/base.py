"""
Abstract base classes for the control-plane database client.

The Cosmos DB implementation lives in ``cosmos.py``; tests and callers
that need a stand-in can mock these interfaces directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Generic

from ..documents import (
    DocumentT,
    OperationDocument,
    ResourceDocument,
    SubscriptionDocument,
)
from ..resource_id import ResourceID

if TYPE_CHECKING:
    from .lock import LockClient

UpdateCallback = Callable[[DocumentT], bool]


class DBClientIterator(ABC, Generic[DocumentT]):
    """Lazy, finite, single-use sequence of documents from a query.

    Iterate with ``async for doc in iterator.items()``. Enumeration stops
    at the first fetch or decode failure; the failure is kept in
    ``error`` instead of being raised into the loop, so callers must check
    it once the loop ends.
    """

    @abstractmethod
    def items(self) -> AsyncIterator[DocumentT]:
        """Yield documents. A second call yields nothing."""

    @property
    @abstractmethod
    def continuation_token(self) -> str | None:
        """Token for resuming the query later, or None when exhausted."""

    @property
    @abstractmethod
    def error(self) -> Exception | None:
        """The error that ended enumeration early, if any."""


class DBClient(ABC):
    """Document store for the frontend to perform its CRUD operations against.

    Every lookup that finds nothing raises ``NotFoundError``; every other
    failure raises a ``DocumentStoreError`` subclass naming the container and
    key involved.

    Update methods fetch the current document, pass it to ``callback`` for
    in-place modification and replace it with an etag precondition, retrying
    on concurrent modification. The callback returns True if it changed the
    document; the update returns True only if the replacement was written.
    """

    @abstractmethod
    async def db_connection_test(self) -> None:
        """Health check the database.

        Raises:
            StorageConnectionError: If the database is unreachable or not ready
        """

    @abstractmethod
    def get_lock_client(self) -> LockClient | None:
        """Return a LockClient, or None if this client does not support one."""

    # =========================================================================
    # Resource Documents
    # =========================================================================

    @abstractmethod
    async def get_resource_doc(self, resource_id: ResourceID) -> ResourceDocument:
        """Retrieve a ResourceDocument by resource ID (case-insensitive).

        The returned document's ``key`` is ``resource_id`` itself, so the
        caller's casing is echoed back.
        """

    @abstractmethod
    async def create_resource_doc(self, doc: ResourceDocument) -> None:
        pass

    @abstractmethod
    async def update_resource_doc(
        self, resource_id: ResourceID, callback: UpdateCallback[ResourceDocument]
    ) -> bool:
        pass

    @abstractmethod
    async def delete_resource_doc(self, resource_id: ResourceID) -> None:
        """Delete a ResourceDocument. Deleting an absent document succeeds."""

    @abstractmethod
    def list_resource_docs(
        self,
        prefix: ResourceID,
        max_items: int = -1,
        continuation_token: str | None = None,
    ) -> DBClientIterator[ResourceDocument]:
        """Search for resource documents under the given resource ID prefix.

        A positive ``max_items`` returns a single page of at most that many
        items along with a continuation token if more are available. Any
        other value returns an iterator over every matching item.
        """

    # =========================================================================
    # Operation Documents
    # =========================================================================

    @abstractmethod
    async def get_operation_doc(self, operation_id: str) -> OperationDocument:
        pass

    @abstractmethod
    async def create_operation_doc(self, doc: OperationDocument) -> str:
        """Write an operation document and return its operation ID."""

    @abstractmethod
    async def update_operation_doc(
        self, operation_id: str, callback: UpdateCallback[OperationDocument]
    ) -> bool:
        pass

    @abstractmethod
    def list_operation_docs(self, subscription_id: str) -> DBClientIterator[OperationDocument]:
        pass

    # =========================================================================
    # Subscription Documents
    # =========================================================================

    @abstractmethod
    async def get_subscription_doc(self, subscription_id: str) -> SubscriptionDocument:
        pass

    @abstractmethod
    async def create_subscription_doc(
        self, subscription_id: str, doc: SubscriptionDocument
    ) -> None:
        pass

    @abstractmethod
    async def update_subscription_doc(
        self, subscription_id: str, callback: UpdateCallback[SubscriptionDocument]
    ) -> bool:
        pass

    @abstractmethod
    def list_all_subscription_docs(self) -> DBClientIterator[SubscriptionDocument]:
        pass
