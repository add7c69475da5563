"""
Control-Plane Storage

Document-store access layer for a control-plane service, backed by
Azure Cosmos DB.

Provides:
- Typed documents for managed resources, long-running operations and subscriptions
- Optimistic-concurrency updates (etag preconditions with bounded retry)
- Paged iteration that exposes continuation tokens
- A partition key index for listing subscriptions across partitions
- Named locks with TTL-based expiry

Usage:

    >>> from controlplane_storage import CosmosDBClient, ProvisioningState, ResourceID
    >>> async with await CosmosDBClient.create() as db:
    ...     resource_id = ResourceID.parse(
    ...         "/subscriptions/SUB/resourceGroups/RG/providers/Microsoft.Foo/widgets/w1"
    ...     )
    ...     doc = await db.get_resource_doc(resource_id)
    ...
    ...     def mark_deleting(doc):
    ...         if doc.provisioning_state == ProvisioningState.DELETING:
    ...             return False
    ...         doc.provisioning_state = ProvisioningState.DELETING
    ...         return True
    ...
    ...     await db.update_resource_doc(resource_id, mark_deleting)
"""

from .database import (
    CosmosConfig,
    CosmosDBClient,
    DBClient,
    DBClientIterator,
    LockClient,
    new_partition_key,
)
from .documents import (
    BaseDocument,
    OperationDocument,
    OperationRequest,
    PartitionKeyDocument,
    ProvisioningState,
    ResourceDocument,
    SubscriptionDocument,
    SubscriptionState,
)
from .exceptions import (
    AuthenticationError,
    DocumentStoreError,
    MarshalError,
    NotFoundError,
    StorageConnectionError,
    StorageIOError,
    UnmarshalError,
    ValidationError,
)
from .logging_utils import (
    StorageLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
)
from .resource_id import ResourceID

__version__ = "0.1.0"

__all__ = [
    # Database client
    "DBClient",
    "DBClientIterator",
    "CosmosDBClient",
    "CosmosConfig",
    "LockClient",
    "new_partition_key",
    # Documents
    "BaseDocument",
    "ResourceDocument",
    "OperationDocument",
    "SubscriptionDocument",
    "PartitionKeyDocument",
    "ProvisioningState",
    "OperationRequest",
    "SubscriptionState",
    "ResourceID",
    # Exceptions
    "DocumentStoreError",
    "NotFoundError",
    "MarshalError",
    "UnmarshalError",
    "StorageIOError",
    "StorageConnectionError",
    "AuthenticationError",
    "ValidationError",
    # Logging
    "StructuredJsonFormatter",
    "configure_structured_logging",
    "StorageLoggerAdapter",
]
