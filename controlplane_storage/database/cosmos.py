"""
Cosmos DB implementation of the control-plane database client.

Containers and their partition keys:
- Resources: /partitionKey (= lower-cased subscription ID)
- Operations: /partitionKey (always OPERATIONS_PARTITION_KEY, default TTL)
- Subscriptions: /id (= lower-cased subscription ID)
- PartitionKeys: /partitionKey (always PARTITION_KEYS_PARTITION_KEY)
- Locks: /id (default TTL)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from azure.core import MatchConditions
from azure.core.exceptions import AzureError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential

from ..documents import (
    OperationDocument,
    ResourceDocument,
    SubscriptionDocument,
    decode_document,
    encode_document,
)
from ..exceptions import (
    AuthenticationError,
    NotFoundError,
    StorageConnectionError,
    StorageIOError,
)
from ..logging_utils import StorageLoggerAdapter
from ..resource_id import ResourceID
from .base import DBClient, DBClientIterator, UpdateCallback
from .iterators import QueryItemsIterator, QueryItemsSinglePageIterator
from .lock import LOCKS_CONTAINER, LockClient
from .partition_keys import (
    OPERATIONS_PARTITION_KEY,
    PARTITION_KEYS_CONTAINER,
    list_partition_keys,
    new_partition_key,
    upsert_partition_key,
)
from .update import update_document

logger = logging.getLogger(__name__)

RESOURCES_CONTAINER = "Resources"
OPERATIONS_CONTAINER = "Operations"
SUBSCRIPTIONS_CONTAINER = "Subscriptions"

# Auth methods
AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

DEFAULT_DATABASE_NAME = "controlplane"
DEFAULT_OPERATIONS_TTL = 7 * 24 * 60 * 60  # seconds
DEFAULT_LOCKS_TTL = 10  # seconds


@dataclass
class CosmosConfig:
    """Configuration for the Cosmos DB database client.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        database_name: Name of the database
        auth_method: Authentication method ('key' or 'default_credential')
        key: Cosmos DB account key (only needed if auth_method='key')
        ensure_containers: Create the database and containers if missing
        operations_ttl: Default TTL for the Operations container (seconds)
        locks_ttl: Default TTL for the Locks container (seconds)
    """

    endpoint: str
    database_name: str = DEFAULT_DATABASE_NAME
    auth_method: str = AUTH_DEFAULT_CREDENTIAL
    key: str | None = None
    ensure_containers: bool = False
    operations_ttl: int = DEFAULT_OPERATIONS_TTL
    locks_ttl: int = DEFAULT_LOCKS_TTL

    @classmethod
    def from_env(cls) -> CosmosConfig:
        """Create config from environment variables.

        Expected environment variables:
        - CONTROLPLANE_COSMOS_ENDPOINT: Cosmos DB account endpoint
        - CONTROLPLANE_COSMOS_DATABASE: Database name
        - CONTROLPLANE_COSMOS_AUTH_METHOD: 'key' or 'default_credential' (default)
        - CONTROLPLANE_COSMOS_KEY: Account key (only if auth_method='key')
        - CONTROLPLANE_COSMOS_ENSURE_CONTAINERS: 'true' to create missing containers
        - CONTROLPLANE_COSMOS_OPERATIONS_TTL: Operations default TTL in seconds
        - CONTROLPLANE_COSMOS_LOCKS_TTL: Locks default TTL in seconds
        """
        endpoint = os.environ.get("CONTROLPLANE_COSMOS_ENDPOINT")
        database = os.environ.get("CONTROLPLANE_COSMOS_DATABASE", DEFAULT_DATABASE_NAME)
        auth_method = os.environ.get("CONTROLPLANE_COSMOS_AUTH_METHOD", AUTH_DEFAULT_CREDENTIAL)
        key = os.environ.get("CONTROLPLANE_COSMOS_KEY")
        ensure = os.environ.get("CONTROLPLANE_COSMOS_ENSURE_CONTAINERS", "false").lower() == "true"

        if not endpoint:
            raise AuthenticationError(
                "cosmos", "CONTROLPLANE_COSMOS_ENDPOINT environment variable not set"
            )

        if auth_method == AUTH_KEY and not key:
            raise AuthenticationError(
                "cosmos", "CONTROLPLANE_COSMOS_KEY required when auth_method='key'"
            )

        return cls(
            endpoint=endpoint,
            database_name=database,
            auth_method=auth_method,
            key=key,
            ensure_containers=ensure,
            operations_ttl=int(
                os.environ.get("CONTROLPLANE_COSMOS_OPERATIONS_TTL", DEFAULT_OPERATIONS_TTL)
            ),
            locks_ttl=int(os.environ.get("CONTROLPLANE_COSMOS_LOCKS_TTL", DEFAULT_LOCKS_TTL)),
        )


def new_cosmos_database_client(
    config: CosmosConfig,
) -> tuple[CosmosClient, DefaultAzureCredential | None, DatabaseProxy]:
    """Instantiate a Cosmos client and database proxy from configuration.

    The caller owns the returned client and credential and must close them.
    """
    credential: DefaultAzureCredential | None = None
    if config.auth_method == AUTH_KEY:
        if not config.key:
            raise AuthenticationError("cosmos", "Key required for key auth")
        client = CosmosClient(config.endpoint, credential=config.key)
    else:
        credential = DefaultAzureCredential()
        client = CosmosClient(config.endpoint, credential=credential)

    return client, credential, client.get_database_client(config.database_name)


async def ensure_containers(client: CosmosClient, config: CosmosConfig) -> DatabaseProxy:
    """Create the database and every container it needs, if missing."""
    database = await client.create_database_if_not_exists(id=config.database_name)

    containers: list[tuple[str, str, int | None]] = [
        (RESOURCES_CONTAINER, "/partitionKey", None),
        (OPERATIONS_CONTAINER, "/partitionKey", config.operations_ttl),
        (SUBSCRIPTIONS_CONTAINER, "/id", None),
        (PARTITION_KEYS_CONTAINER, "/partitionKey", None),
        (LOCKS_CONTAINER, "/id", config.locks_ttl),
    ]
    log = StorageLoggerAdapter(logger, database=config.database_name)
    for name, path, ttl in containers:
        options: dict[str, Any] = {}
        if ttl is not None:
            options["default_ttl"] = ttl
        await database.create_container_if_not_exists(
            id=name, partition_key=PartitionKey(path=path), **options
        )
        log.bind(container=name).info(
            "Container created/verified", extra={"partition_key": path, "default_ttl": ttl}
        )

    return database


class CosmosDBClient(DBClient):
    """DBClient backed by an Azure Cosmos DB database.

    Build one from an existing DatabaseProxy with ``from_database()``, or let
    ``create()`` open the connection from configuration, in which case the
    client owns the connection and must be closed (or used with
    ``async with``).
    """

    def __init__(self, database: DatabaseProxy, lock_client: LockClient | None = None):
        """
        Args:
            database: Database holding the control-plane containers
            lock_client: Lock manager, if locking is supported
        """
        self._database = database
        self._resources = database.get_container_client(RESOURCES_CONTAINER)
        self._operations = database.get_container_client(OPERATIONS_CONTAINER)
        self._subscriptions = database.get_container_client(SUBSCRIPTIONS_CONTAINER)
        self._partition_keys = database.get_container_client(PARTITION_KEYS_CONTAINER)
        self._lock_client = lock_client
        self._log = StorageLoggerAdapter(logger, database=database.id)
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None

    @classmethod
    async def from_database(cls, database: DatabaseProxy) -> CosmosDBClient:
        """Wire up a client, including its LockClient, from a DatabaseProxy."""
        locks = database.get_container_client(LOCKS_CONTAINER)
        lock_client = await LockClient.create(locks)
        return cls(database, lock_client)

    @classmethod
    async def create(cls, config: CosmosConfig | None = None) -> CosmosDBClient:
        """Open a connection and return an initialized client.

        Args:
            config: Cosmos configuration (defaults to env vars)

        Raises:
            AuthenticationError: If the account rejects the credential
            StorageConnectionError: If the account cannot be reached
        """
        if config is None:
            config = CosmosConfig.from_env()

        client, credential, database = new_cosmos_database_client(config)
        try:
            if config.ensure_containers:
                database = await ensure_containers(client, config)
            db_client = await cls.from_database(database)
        except Exception as e:
            await client.close()
            if credential is not None:
                await credential.close()
            if isinstance(e, CosmosHttpResponseError) and e.status_code in (401, 403):
                raise AuthenticationError(config.endpoint, str(e)) from e
            if isinstance(e, AzureError):
                raise StorageConnectionError(config.endpoint, e) from e
            raise

        db_client._client = client
        db_client._credential = credential
        db_client._log.info(
            "Cosmos database client initialized", extra={"endpoint": config.endpoint}
        )
        return db_client

    async def close(self) -> None:
        """Close the connection if this client opened it."""
        if self._client:
            await self._client.close()
            self._client = None

        if self._credential:
            await self._credential.close()
            self._credential = None

    async def __aenter__(self) -> CosmosDBClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def db_connection_test(self) -> None:
        try:
            await self._database.read()
        except AzureError as e:
            raise StorageConnectionError(self._database.id, e) from e

    def get_lock_client(self) -> LockClient | None:
        return self._lock_client

    # =========================================================================
    # Resource Documents
    # =========================================================================

    async def get_resource_doc(self, resource_id: ResourceID) -> ResourceDocument:
        pk = new_partition_key(resource_id.subscription_id)
        key = str(resource_id)

        query = "SELECT * FROM c WHERE STRINGEQUALS(c.key, @resourceId, true)"
        parameters = [{"name": "@resourceId", "value": key}]

        doc: ResourceDocument | None = None
        try:
            async for item in self._resources.query_items(
                query=query,
                parameters=parameters,
                partition_key=pk,
                max_item_count=1,
            ):
                doc = decode_document(ResourceDocument, item, RESOURCES_CONTAINER, key)
        except AzureError as e:
            raise StorageIOError("query", RESOURCES_CONTAINER, key, e) from e

        if doc is None:
            raise NotFoundError(RESOURCES_CONTAINER, key)

        # Resource group and resource names match case-insensitively, but the
        # casing most recently supplied by the client (typically from the
        # request URL) is what must be returned, never a normalized form.
        doc.key = resource_id
        return doc

    async def create_resource_doc(self, doc: ResourceDocument) -> None:
        doc.partition_key = doc.partition_key.lower()
        key = str(doc.key)

        body = encode_document(doc, RESOURCES_CONTAINER, key)
        try:
            await self._resources.create_item(body=body)
        except AzureError as e:
            raise StorageIOError("create", RESOURCES_CONTAINER, key, e) from e

        self._log.debug(
            "Resource document created", extra={"container": RESOURCES_CONTAINER, "key": key}
        )

    async def update_resource_doc(
        self, resource_id: ResourceID, callback: UpdateCallback[ResourceDocument]
    ) -> bool:
        return await update_document(
            RESOURCES_CONTAINER,
            str(resource_id),
            fetch=lambda: self.get_resource_doc(resource_id),
            callback=callback,
            replace=self._replacer(self._resources),
        )

    async def delete_resource_doc(self, resource_id: ResourceID) -> None:
        try:
            doc = await self.get_resource_doc(resource_id)
        except NotFoundError:
            return

        self._log.debug(
            "Deleting resource document",
            extra={"container": RESOURCES_CONTAINER, "key": str(resource_id), "id": doc.id},
        )
        try:
            await self._resources.delete_item(item=doc.id, partition_key=doc.partition_key)
        except CosmosResourceNotFoundError:
            return
        except AzureError as e:
            raise StorageIOError("delete", RESOURCES_CONTAINER, str(resource_id), e) from e

    def list_resource_docs(
        self,
        prefix: ResourceID,
        max_items: int = -1,
        continuation_token: str | None = None,
    ) -> DBClientIterator[ResourceDocument]:
        pk = new_partition_key(prefix.subscription_id)

        query = "SELECT * FROM c WHERE STARTSWITH(c.key, @prefix, true)"
        parameters = [{"name": "@prefix", "value": str(prefix) + "/"}]

        if max_items > 0:
            pager = self._resources.query_items(
                query=query,
                parameters=parameters,
                partition_key=pk,
                max_item_count=max_items,
            )
            return QueryItemsSinglePageIterator(
                pager, ResourceDocument, RESOURCES_CONTAINER, continuation_token
            )

        pager = self._resources.query_items(query=query, parameters=parameters, partition_key=pk)
        return QueryItemsIterator(pager, ResourceDocument, RESOURCES_CONTAINER, continuation_token)

    # =========================================================================
    # Operation Documents
    # =========================================================================

    async def get_operation_doc(self, operation_id: str) -> OperationDocument:
        # Make sure lookup keys are lowercase.
        operation_id = operation_id.lower()

        try:
            item = await self._operations.read_item(
                item=operation_id, partition_key=OPERATIONS_PARTITION_KEY
            )
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(OPERATIONS_CONTAINER, operation_id) from e
        except AzureError as e:
            raise StorageIOError("read", OPERATIONS_CONTAINER, operation_id, e) from e

        return decode_document(OperationDocument, item, OPERATIONS_CONTAINER, operation_id)

    async def create_operation_doc(self, doc: OperationDocument) -> str:
        doc.id = doc.id.lower()
        doc.partition_key = OPERATIONS_PARTITION_KEY

        body = encode_document(doc, OPERATIONS_CONTAINER, doc.id)
        try:
            await self._operations.create_item(body=body)
        except AzureError as e:
            raise StorageIOError("create", OPERATIONS_CONTAINER, doc.id, e) from e

        return doc.id

    async def update_operation_doc(
        self, operation_id: str, callback: UpdateCallback[OperationDocument]
    ) -> bool:
        return await update_document(
            OPERATIONS_CONTAINER,
            operation_id.lower(),
            fetch=lambda: self.get_operation_doc(operation_id),
            callback=callback,
            replace=self._replacer(self._operations),
        )

    def list_operation_docs(self, subscription_id: str) -> DBClientIterator[OperationDocument]:
        query = "SELECT * FROM c WHERE STARTSWITH(c.externalId, @prefix, true)"
        parameters = [{"name": "@prefix", "value": "/subscriptions/" + subscription_id.lower()}]

        pager = self._operations.query_items(
            query=query,
            parameters=parameters,
            partition_key=OPERATIONS_PARTITION_KEY,
        )
        return QueryItemsIterator(pager, OperationDocument, OPERATIONS_CONTAINER)

    # =========================================================================
    # Subscription Documents
    # =========================================================================

    async def get_subscription_doc(self, subscription_id: str) -> SubscriptionDocument:
        # Make sure lookup keys are lowercase.
        subscription_id = subscription_id.lower()

        try:
            item = await self._subscriptions.read_item(
                item=subscription_id, partition_key=new_partition_key(subscription_id)
            )
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(SUBSCRIPTIONS_CONTAINER, subscription_id) from e
        except AzureError as e:
            raise StorageIOError("read", SUBSCRIPTIONS_CONTAINER, subscription_id, e) from e

        return decode_document(SubscriptionDocument, item, SUBSCRIPTIONS_CONTAINER, subscription_id)

    async def create_subscription_doc(
        self, subscription_id: str, doc: SubscriptionDocument
    ) -> None:
        # Make sure lookup keys are lowercase.
        doc.id = new_partition_key(subscription_id)

        body = encode_document(doc, SUBSCRIPTIONS_CONTAINER, doc.id)
        try:
            await self._subscriptions.create_item(body=body)
        except AzureError as e:
            raise StorageIOError("create", SUBSCRIPTIONS_CONTAINER, doc.id, e) from e

        # The PartitionKeys container serves as a partition key
        # index for the Resources and Subscriptions containers.
        await upsert_partition_key(self._partition_keys, doc.id)
        self._log.debug(
            "Subscription document created",
            extra={"container": SUBSCRIPTIONS_CONTAINER, "key": doc.id},
        )

    async def update_subscription_doc(
        self, subscription_id: str, callback: UpdateCallback[SubscriptionDocument]
    ) -> bool:
        return await update_document(
            SUBSCRIPTIONS_CONTAINER,
            subscription_id.lower(),
            fetch=lambda: self.get_subscription_doc(subscription_id),
            callback=callback,
            replace=self._replacer(self._subscriptions),
        )

    def list_all_subscription_docs(self) -> DBClientIterator[SubscriptionDocument]:
        return list_partition_keys(self._partition_keys, self)

    @staticmethod
    def _replacer(container: Any):
        async def replace(doc_id: str, body: dict[str, Any], etag: str | None) -> Any:
            return await container.replace_item(
                item=doc_id,
                body=body,
                etag=etag,
                match_condition=MatchConditions.IfNotModified,
            )

        return replace
