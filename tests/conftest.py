"""
Shared test configuration and fixtures.

Provides an in-memory stand-in for the Cosmos DB async container and
database proxies. It raises the SDK's own exception types, honours etag
preconditions and paginates query results with continuation tokens, which
is all the database client relies on.
"""

from __future__ import annotations

import copy
import re
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from azure.core import MatchConditions
from azure.core.exceptions import ServiceRequestError
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from controlplane_storage.database import (
    LOCKS_CONTAINER,
    OPERATIONS_CONTAINER,
    PARTITION_KEYS_CONTAINER,
    RESOURCES_CONTAINER,
    SUBSCRIPTIONS_CONTAINER,
    CosmosDBClient,
    LockClient,
)

# Small default page size so full-drain queries span several pages
DEFAULT_PAGE_SIZE = 2

_STARTSWITH = re.compile(r"STARTSWITH\(c\.(\w+), (@\w+), true\)")
_STRINGEQUALS = re.compile(r"STRINGEQUALS\(c\.(\w+), (@\w+), true\)")


class FakePageIterator:
    """Mimics azure.core's AsyncPageIterator over a fixed result list."""

    def __init__(
        self,
        items: list[dict[str, Any]],
        page_size: int,
        continuation_token: str | None,
        fail_on_page: int | None = None,
    ):
        self._items = items
        self._page_size = page_size
        self._offset = int(continuation_token) if continuation_token else 0
        self._fail_on_page = fail_on_page
        self._pages_served = 0
        self._exhausted = False
        self.continuation_token = continuation_token

    def __aiter__(self) -> FakePageIterator:
        return self

    async def __anext__(self):
        if self._exhausted:
            raise StopAsyncIteration
        if self._fail_on_page is not None and self._pages_served == self._fail_on_page:
            raise ServiceRequestError("connection reset")

        page = self._items[self._offset : self._offset + self._page_size]
        self._offset += self._page_size
        self._pages_served += 1

        if self._offset < len(self._items):
            self.continuation_token = str(self._offset)
        else:
            self.continuation_token = None
            self._exhausted = True

        return _aiter_list(copy.deepcopy(page))


async def _aiter_list(items: list[Any]):
    for item in items:
        yield item


class FakeItemPaged:
    """Mimics the AsyncItemPaged returned by ContainerProxy.query_items."""

    def __init__(self, items: list[dict[str, Any]], page_size: int, fail_on_page: int | None):
        self._items = items
        self._page_size = page_size
        self._fail_on_page = fail_on_page

    def by_page(self, continuation_token: str | None = None) -> FakePageIterator:
        return FakePageIterator(
            self._items, self._page_size, continuation_token, self._fail_on_page
        )

    async def _all(self):
        async for page in self.by_page():
            async for item in page:
                yield item

    def __aiter__(self):
        return self._all()


class FakeContainer:
    """In-memory container keyed by (partition key, id)."""

    def __init__(
        self,
        name: str,
        partition_key_path: str = "/partitionKey",
        default_ttl: int | None = None,
    ):
        self.id = name
        self.partition_key_field = partition_key_path.lstrip("/")
        self.default_ttl = default_ttl
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.default_page_size = DEFAULT_PAGE_SIZE
        self.fail_on_page: int | None = None
        self.replace_calls = 0
        self.before_replace: Callable[[], Awaitable[None]] | None = None
        self.queries: list[dict[str, Any]] = []

    def _pk(self, body: dict[str, Any]) -> str:
        return body[self.partition_key_field]

    def _stamp(self, body: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(body)
        stored["_etag"] = f'"{uuid.uuid4()}"'
        stored["_ts"] = stored.get("_ts", 0) + 1
        return stored

    async def read(self) -> dict[str, Any]:
        properties: dict[str, Any] = {"id": self.id}
        if self.default_ttl is not None:
            properties["defaultTtl"] = self.default_ttl
        return properties

    async def create_item(self, body: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        key = (self._pk(body), body["id"])
        if key in self.items:
            raise CosmosResourceExistsError(status_code=409, message="Entity already exists")
        self.items[key] = self._stamp(body)
        return copy.deepcopy(self.items[key])

    async def upsert_item(self, body: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        key = (self._pk(body), body["id"])
        self.items[key] = self._stamp(body)
        return copy.deepcopy(self.items[key])

    async def read_item(self, item: str, partition_key: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return copy.deepcopy(self.items[(partition_key, item)])
        except KeyError:
            raise CosmosResourceNotFoundError(status_code=404, message="Not found") from None

    async def replace_item(
        self,
        item: str,
        body: dict[str, Any],
        etag: str | None = None,
        match_condition: MatchConditions | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.replace_calls += 1
        if self.before_replace is not None:
            await self.before_replace()

        key = (self._pk(body), item)
        current = self.items.get(key)
        if current is None:
            raise CosmosResourceNotFoundError(status_code=404, message="Not found")
        if match_condition == MatchConditions.IfNotModified and etag != current["_etag"]:
            raise CosmosAccessConditionFailedError(status_code=412, message="Precondition failed")
        self.items[key] = self._stamp(body)
        return copy.deepcopy(self.items[key])

    async def delete_item(
        self,
        item: str,
        partition_key: str,
        etag: str | None = None,
        match_condition: MatchConditions | None = None,
        **kwargs: Any,
    ) -> None:
        key = (partition_key, item)
        current = self.items.get(key)
        if current is None:
            raise CosmosResourceNotFoundError(status_code=404, message="Not found")
        if match_condition == MatchConditions.IfNotModified and etag != current["_etag"]:
            raise CosmosAccessConditionFailedError(status_code=412, message="Precondition failed")
        del self.items[key]

    def query_items(
        self,
        query: str,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: str | None = None,
        max_item_count: int | None = None,
        **kwargs: Any,
    ) -> FakeItemPaged:
        self.queries.append(
            {
                "query": query,
                "parameters": parameters or [],
                "partition_key": partition_key,
                "max_item_count": max_item_count,
            }
        )
        values = {p["name"]: p["value"] for p in parameters or []}
        matches = [
            copy.deepcopy(doc)
            for (pk, _), doc in self.items.items()
            if pk == partition_key and _matches(query, values, doc)
        ]
        page_size = max_item_count if max_item_count and max_item_count > 0 else self.default_page_size
        return FakeItemPaged(matches, page_size, self.fail_on_page)

    # Test helpers

    def put_raw(self, body: dict[str, Any]) -> dict[str, Any]:
        """Store an item bypassing all checks (e.g. a corrupt document)."""
        stored = self._stamp(body)
        self.items[(self._pk(body), body["id"])] = stored
        return stored

    def get_raw(self, partition_key: str, item_id: str) -> dict[str, Any] | None:
        return self.items.get((partition_key, item_id))


def _matches(query: str, values: dict[str, Any], doc: dict[str, Any]) -> bool:
    m = _STRINGEQUALS.search(query)
    if m:
        return str(doc.get(m.group(1), "")).lower() == str(values[m.group(2)]).lower()
    m = _STARTSWITH.search(query)
    if m:
        return str(doc.get(m.group(1), "")).lower().startswith(str(values[m.group(2)]).lower())
    return True


class FakeDatabase:
    """In-memory stand-in for an async DatabaseProxy."""

    def __init__(self, database_id: str = "controlplane-test"):
        self.id = database_id
        self.reachable = True
        self.containers = {
            RESOURCES_CONTAINER: FakeContainer(RESOURCES_CONTAINER, "/partitionKey"),
            OPERATIONS_CONTAINER: FakeContainer(
                OPERATIONS_CONTAINER, "/partitionKey", default_ttl=3600
            ),
            SUBSCRIPTIONS_CONTAINER: FakeContainer(SUBSCRIPTIONS_CONTAINER, "/id"),
            PARTITION_KEYS_CONTAINER: FakeContainer(PARTITION_KEYS_CONTAINER, "/partitionKey"),
            LOCKS_CONTAINER: FakeContainer(LOCKS_CONTAINER, "/id", default_ttl=10),
        }

    def get_container_client(self, name: str) -> FakeContainer:
        return self.containers[name]

    async def read(self) -> dict[str, Any]:
        if not self.reachable:
            raise ServiceRequestError("Name or service not known")
        return {"id": self.id}


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
async def db_client(database: FakeDatabase) -> CosmosDBClient:
    return await CosmosDBClient.from_database(database)


@pytest.fixture
async def lock_client(database: FakeDatabase) -> LockClient:
    return await LockClient.create(database.containers[LOCKS_CONTAINER], owner="test-owner")
