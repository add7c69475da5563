"""
Partition key policy and the partition key index.

Cosmos DB queries are scoped to a single partition, so there is no way to
list every document in a container without knowing every partition key.
Two workarounds live here:

- Operation documents all share one well-known partition,
  ``OPERATIONS_PARTITION_KEY``, so the whole Operations container can be
  queried at once. Items there are transient thanks to the container's
  default TTL.
- Every subscription ID ever registered is recorded in the PartitionKeys
  container (itself kept in one well-known partition). Listing all
  subscriptions walks that index and point-reads each subscription, one
  request per subscription.

Both can go once cross-partition queries are available to this client.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import AzureError

from ..documents import PartitionKeyDocument, SubscriptionDocument
from ..exceptions import DocumentStoreError, NotFoundError, StorageIOError
from .base import DBClientIterator
from .iterators import QueryItemsIterator

if TYPE_CHECKING:
    from .base import DBClient

logger = logging.getLogger(__name__)

PARTITION_KEYS_CONTAINER = "PartitionKeys"

OPERATIONS_PARTITION_KEY = "workaround"
PARTITION_KEYS_PARTITION_KEY = "partitionkeys"


def new_partition_key(subscription_id: str) -> str:
    """Create a partition key from an Azure subscription ID."""
    return subscription_id.lower()


async def upsert_partition_key(container: Any, subscription_id: str) -> None:
    """Record a subscription's partition key in the index. Idempotent."""
    key = new_partition_key(subscription_id)
    doc = PartitionKeyDocument(id=key, partition_key=PARTITION_KEYS_PARTITION_KEY)
    try:
        await container.upsert_item(body=doc.to_dict())
    except AzureError as e:
        raise StorageIOError("upsert", PARTITION_KEYS_CONTAINER, key, e) from e


def list_partition_keys(container: Any, db_client: DBClient) -> PartitionKeyIterator:
    """Iterate over the subscription document for every indexed partition key."""
    pager = container.query_items(
        query="SELECT * FROM c",
        partition_key=PARTITION_KEYS_PARTITION_KEY,
    )
    keys = QueryItemsIterator(pager, PartitionKeyDocument, PARTITION_KEYS_CONTAINER)
    return PartitionKeyIterator(keys, db_client)


class PartitionKeyIterator(DBClientIterator[SubscriptionDocument]):
    """Fans out from index entries to subscription documents.

    Index entries whose subscription document no longer exists are skipped.
    Any other failure ends iteration and is kept in ``error``.
    """

    def __init__(self, keys: DBClientIterator[PartitionKeyDocument], db_client: DBClient):
        self._keys = keys
        self._db_client = db_client
        self._error: Exception | None = None

    @property
    def continuation_token(self) -> str | None:
        return None

    @property
    def error(self) -> Exception | None:
        return self._error

    async def items(self) -> AsyncIterator[SubscriptionDocument]:
        async with aclosing(self._keys.items()) as entries:
            async for entry in entries:
                try:
                    doc = await self._db_client.get_subscription_doc(entry.id)
                except NotFoundError:
                    logger.warning(
                        "Skipping partition key with no subscription document",
                        extra={"container": PARTITION_KEYS_CONTAINER, "key": entry.id},
                    )
                    continue
                except DocumentStoreError as e:
                    self._error = e
                    logger.warning(
                        "Subscription listing stopped",
                        extra={"container": PARTITION_KEYS_CONTAINER, "key": entry.id, "error": e},
                    )
                    return
                yield doc

        if self._keys.error is not None:
            self._error = self._keys.error
