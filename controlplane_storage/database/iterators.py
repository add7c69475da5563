"""
Iterators over Cosmos DB query results.

Both iterators wrap the ``AsyncItemPaged`` returned by
``ContainerProxy.query_items`` and walk it page by page so the continuation
token the store hands back can be exposed to callers.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from azure.core.exceptions import AzureError

from ..documents import DocumentT, decode_document
from ..exceptions import DocumentStoreError, StorageIOError
from ..logging_utils import StorageLoggerAdapter
from .base import DBClientIterator

logger = logging.getLogger(__name__)


class _QueryIteratorBase(DBClientIterator[DocumentT]):
    def __init__(
        self,
        pager: Any,
        doc_type: type[DocumentT],
        container_name: str,
        continuation_token: str | None = None,
    ):
        """
        Args:
            pager: Result of ``query_items`` (anything with ``by_page``)
            doc_type: Document class used to decode each item
            container_name: Container being queried, for error context
            continuation_token: Token from an earlier page to resume from
        """
        self._pager = pager
        self._doc_type = doc_type
        self._container_name = container_name
        self._continuation_token = continuation_token
        self._error: Exception | None = None
        self._started = False
        self._log = StorageLoggerAdapter(logger, container=container_name)

    @property
    def continuation_token(self) -> str | None:
        return self._continuation_token

    @property
    def error(self) -> Exception | None:
        return self._error

    def _decode(self, item: Any) -> DocumentT:
        key = item.get("id", "") if isinstance(item, dict) else ""
        return decode_document(self._doc_type, item, self._container_name, key)

    def _fail(self, e: Exception) -> None:
        if isinstance(e, DocumentStoreError):
            self._error = e
        else:
            error = StorageIOError("query", self._container_name, cause=e)
            error.__cause__ = e
            self._error = error
        self._log.warning("Query iteration stopped", extra={"error": self._error})


class QueryItemsIterator(_QueryIteratorBase[DocumentT]):
    """Yields every matching item, advancing through all pages."""

    async def items(self) -> AsyncIterator[DocumentT]:
        if self._started:
            return
        self._started = True

        pages = self._pager.by_page(self._continuation_token)
        try:
            async for page in pages:
                self._continuation_token = pages.continuation_token
                async for item in page:
                    yield self._decode(item)
        except (AzureError, DocumentStoreError) as e:
            self._fail(e)
            return

        self._continuation_token = None


class QueryItemsSinglePageIterator(_QueryIteratorBase[DocumentT]):
    """Yields the items of one page and keeps the token for the next.

    The page size is whatever ``max_item_count`` the query was built with.
    """

    async def items(self) -> AsyncIterator[DocumentT]:
        if self._started:
            return
        self._started = True

        pages = self._pager.by_page(self._continuation_token)
        try:
            page = await anext(pages, None)
            if page is None:
                self._continuation_token = None
                return
            self._continuation_token = pages.continuation_token
            async for item in page:
                yield self._decode(item)
        except (AzureError, DocumentStoreError) as e:
            self._fail(e)
