"""
Integration tests against a real Cosmos DB account.

Run with: pytest -m integration

Environment variables required:
    CONTROLPLANE_COSMOS_ENDPOINT - Cosmos DB endpoint URL
    CONTROLPLANE_COSMOS_AUTH_METHOD - "default_credential" (recommended) or "key"
    CONTROLPLANE_COSMOS_DATABASE - Database name (default: controlplane)
    CONTROLPLANE_COSMOS_ENSURE_CONTAINERS - "true" to create missing containers
"""

import os
import uuid

import pytest

from controlplane_storage import (
    CosmosConfig,
    CosmosDBClient,
    NotFoundError,
    ProvisioningState,
    ResourceDocument,
    ResourceID,
)

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.environ.get("CONTROLPLANE_COSMOS_ENDPOINT"),
        reason="CONTROLPLANE_COSMOS_ENDPOINT not set",
    ),
]


@pytest.fixture
async def live_client():
    client = await CosmosDBClient.create(CosmosConfig.from_env())
    yield client
    await client.close()


@pytest.fixture
def resource_id() -> ResourceID:
    # Unique subscription per run keeps runs from seeing each other's documents
    subscription = f"test-{uuid.uuid4()}"
    return ResourceID.parse(
        f"/subscriptions/{subscription}/resourceGroups/LiveGroup"
        "/providers/Microsoft.Foo/widgets/LiveWidget"
    )


class TestLiveCosmos:
    @pytest.mark.asyncio
    async def test_connection(self, live_client):
        await live_client.db_connection_test()

    @pytest.mark.asyncio
    async def test_resource_lifecycle(self, live_client, resource_id):
        await live_client.create_resource_doc(ResourceDocument(key=resource_id))

        lookup = ResourceID.parse(str(resource_id).lower())
        fetched = await live_client.get_resource_doc(lookup)
        assert str(fetched.key) == str(lookup)

        def succeed(doc):
            doc.provisioning_state = ProvisioningState.SUCCEEDED
            return True

        assert await live_client.update_resource_doc(resource_id, succeed) is True

        listed = [
            doc async for doc in live_client.list_resource_docs(resource_id.parent).items()
        ]
        assert [doc.id for doc in listed] == [fetched.id]

        await live_client.delete_resource_doc(resource_id)
        with pytest.raises(NotFoundError):
            await live_client.get_resource_doc(resource_id)

    @pytest.mark.asyncio
    async def test_lock_round_trip(self, live_client):
        locks = live_client.get_lock_client()
        lock_id = f"test-lock-{uuid.uuid4()}"

        lock = await locks.try_acquire_lock(lock_id)
        assert lock is not None
        assert await locks.try_acquire_lock(lock_id) is None
        assert await locks.release_lock(lock) is True
