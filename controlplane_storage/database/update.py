"""
Optimistic-concurrency updates.

A document is read, handed to a callback for in-place modification and
written back with its etag as an ``IfNotModified`` precondition. If another
writer got there first the store answers 412 and the whole cycle starts over
on a fresh copy. There is no backoff between attempts; contention on a single
document is expected to be rare and brief.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from azure.core.exceptions import AzureError
from azure.cosmos.exceptions import CosmosAccessConditionFailedError

from ..documents import DocumentT, encode_document
from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5

ReplaceFunc = Callable[[str, dict[str, Any], str | None], Awaitable[Any]]


async def update_document(
    container_name: str,
    key: str,
    fetch: Callable[[], Awaitable[DocumentT]],
    callback: Callable[[DocumentT], bool],
    replace: ReplaceFunc,
) -> bool:
    """Read-modify-write a document, retrying on concurrent modification.

    The callback may be invoked up to ``MAX_UPDATE_ATTEMPTS`` times, each
    time on a freshly fetched document, so it must not depend on state from
    a previous invocation.

    Args:
        container_name: Container holding the document, for error context
        key: Lookup key of the document, for error context
        fetch: Returns the current document; NotFoundError propagates as-is
        callback: Modifies the document in place, returns True if anything changed
        replace: Writes ``(doc_id, body, etag)`` conditionally on the etag

    Returns:
        True if the document was replaced, False if the callback made no change

    Raises:
        NotFoundError: If the document does not exist
        MarshalError: If the modified document cannot be serialized
        StorageIOError: On any other store failure, or once every attempt
            lost the race to a concurrent writer
    """
    conflict: CosmosAccessConditionFailedError | None = None

    for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
        doc = await fetch()
        etag = doc.cosmos_etag

        if not callback(doc):
            return False

        body = encode_document(doc, container_name, key)

        try:
            await replace(doc.id, body, etag)
            return True
        except CosmosAccessConditionFailedError as e:
            conflict = e
            logger.debug(
                "Concurrent modification detected, retrying update",
                extra={"container": container_name, "key": key, "attempt": attempt},
            )
        except AzureError as e:
            raise StorageIOError("replace", container_name, key, e) from e

    logger.warning(
        "Giving up update after repeated concurrent modification",
        extra={"container": container_name, "key": key, "attempts": MAX_UPDATE_ATTEMPTS},
    )
    raise StorageIOError("replace", container_name, key, conflict) from conflict
