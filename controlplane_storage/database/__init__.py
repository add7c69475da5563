"""
Control-plane database client.

Use CosmosDBClient for Azure Cosmos DB; DBClient and DBClientIterator are
the interfaces callers should depend on.
"""

from .base import DBClient, DBClientIterator, UpdateCallback
from .cosmos import (
    AUTH_DEFAULT_CREDENTIAL,
    AUTH_KEY,
    OPERATIONS_CONTAINER,
    RESOURCES_CONTAINER,
    SUBSCRIPTIONS_CONTAINER,
    CosmosConfig,
    CosmosDBClient,
    ensure_containers,
    new_cosmos_database_client,
)
from .iterators import QueryItemsIterator, QueryItemsSinglePageIterator
from .lock import LOCKS_CONTAINER, LockClient
from .partition_keys import (
    OPERATIONS_PARTITION_KEY,
    PARTITION_KEYS_CONTAINER,
    PARTITION_KEYS_PARTITION_KEY,
    PartitionKeyIterator,
    list_partition_keys,
    new_partition_key,
    upsert_partition_key,
)
from .update import MAX_UPDATE_ATTEMPTS, update_document

__all__ = [
    # Interfaces
    "DBClient",
    "DBClientIterator",
    "UpdateCallback",
    # Cosmos DB
    "CosmosConfig",
    "CosmosDBClient",
    "ensure_containers",
    "new_cosmos_database_client",
    "AUTH_KEY",
    "AUTH_DEFAULT_CREDENTIAL",
    # Containers
    "RESOURCES_CONTAINER",
    "OPERATIONS_CONTAINER",
    "SUBSCRIPTIONS_CONTAINER",
    "PARTITION_KEYS_CONTAINER",
    "LOCKS_CONTAINER",
    # Iteration
    "QueryItemsIterator",
    "QueryItemsSinglePageIterator",
    "PartitionKeyIterator",
    # Partition keys
    "OPERATIONS_PARTITION_KEY",
    "PARTITION_KEYS_PARTITION_KEY",
    "new_partition_key",
    "upsert_partition_key",
    "list_partition_keys",
    # Updates
    "MAX_UPDATE_ATTEMPTS",
    "update_document",
    # Locks
    "LockClient",
]
