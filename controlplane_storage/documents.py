"""
Document types stored in the control-plane database.

Each document is a dataclass that converts to and from the camelCase JSON
shape stored in Cosmos DB. Cosmos system properties (``_etag`` and friends)
are carried on every document so that the version token read with a
document can be used as the precondition when replacing it.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from .exceptions import MarshalError, UnmarshalError, ValidationError
from .resource_id import ResourceID


class ProvisioningState(Enum):
    """Provisioning states shared by resources and operations."""

    ACCEPTED = "Accepted"
    PROVISIONING = "Provisioning"
    UPDATING = "Updating"
    DELETING = "Deleting"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ProvisioningState.SUCCEEDED,
            ProvisioningState.FAILED,
            ProvisioningState.CANCELED,
        )


class OperationRequest(Enum):
    """Kind of request a long-running operation is tracking."""

    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    REQUEST_CREDENTIAL = "RequestCredential"
    REVOKE_CREDENTIALS = "RevokeCredentials"


class SubscriptionState(Enum):
    """Subscription lifecycle states."""

    REGISTERED = "Registered"
    UNREGISTERED = "Unregistered"
    WARNED = "Warned"
    SUSPENDED = "Suspended"
    DELETED = "Deleted"


def _new_id() -> str:
    return str(uuid.uuid4()).lower()


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(kw_only=True)
class BaseDocument:
    """Fields common to every document.

    Attributes:
        id: Document ID, unique within its partition
        cosmos_etag: Version token; changes on every write
        time_to_live: Per-item TTL override in seconds (None uses the container default)
    """

    id: str = field(default_factory=_new_id)
    cosmos_rid: str | None = None
    cosmos_self: str | None = None
    cosmos_etag: str | None = None
    cosmos_attachments: str | None = None
    cosmos_timestamp: int | None = None
    time_to_live: int | None = None

    def _base_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        system = {
            "_rid": self.cosmos_rid,
            "_self": self.cosmos_self,
            "_etag": self.cosmos_etag,
            "_attachments": self.cosmos_attachments,
            "_ts": self.cosmos_timestamp,
            "ttl": self.time_to_live,
        }
        data.update({k: v for k, v in system.items() if v is not None})
        return data

    @staticmethod
    def _base_kwargs(data: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": data["id"],
            "cosmos_rid": data.get("_rid"),
            "cosmos_self": data.get("_self"),
            "cosmos_etag": data.get("_etag"),
            "cosmos_attachments": data.get("_attachments"),
            "cosmos_timestamp": data.get("_ts"),
            "time_to_live": data.get("ttl"),
        }

    def to_dict(self) -> dict[str, Any]:
        return self._base_dict()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaseDocument:
        return cls(**cls._base_kwargs(data))


@dataclass(kw_only=True)
class ResourceDocument(BaseDocument):
    """State of a managed resource.

    The partition key is the owning subscription ID in lower case. ``key``
    keeps whatever casing the caller used; lookups against it are
    case-insensitive.
    """

    key: ResourceID
    partition_key: str = ""
    internal_id: str | None = None
    active_operation_id: str | None = None
    provisioning_state: ProvisioningState | None = None
    identity: dict[str, Any] | None = None
    system_data: dict[str, Any] | None = None
    tags: dict[str, str] | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.partition_key:
            self.partition_key = self.key.subscription_id.lower()

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            {
                "partitionKey": self.partition_key,
                "key": str(self.key),
                "internalId": self.internal_id,
                "activeOperationId": self.active_operation_id,
                "provisioningState": (
                    self.provisioning_state.value if self.provisioning_state else None
                ),
                "identity": self.identity,
                "systemData": self.system_data,
                "tags": self.tags,
                "properties": self.properties,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceDocument:
        state = data.get("provisioningState")
        return cls(
            **cls._base_kwargs(data),
            key=ResourceID.parse(data["key"]),
            partition_key=data["partitionKey"],
            internal_id=data.get("internalId"),
            active_operation_id=data.get("activeOperationId"),
            provisioning_state=ProvisioningState(state) if state else None,
            identity=data.get("identity"),
            system_data=data.get("systemData"),
            tags=data.get("tags"),
            properties=data.get("properties") or {},
        )


@dataclass(kw_only=True)
class OperationDocument(BaseDocument):
    """Status of a long-running operation.

    All operation documents share one partition (see
    ``database.partition_keys.OPERATIONS_PARTITION_KEY``); expired documents
    are removed by the container's default TTL.
    """

    request: OperationRequest
    external_id: ResourceID
    partition_key: str = ""
    tenant_id: str | None = None
    client_id: str | None = None
    internal_id: str | None = None
    operation_id: ResourceID | None = None
    notification_uri: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_transition_time: datetime | None = None
    status: ProvisioningState = ProvisioningState.ACCEPTED
    error: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.last_transition_time is None:
            self.last_transition_time = self.start_time

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            {
                "partitionKey": self.partition_key,
                "tenantId": self.tenant_id,
                "clientId": self.client_id,
                "request": self.request.value,
                "externalId": str(self.external_id),
                "internalId": self.internal_id,
                "operationId": str(self.operation_id) if self.operation_id else None,
                "notificationUri": self.notification_uri,
                "startTime": _format_datetime(self.start_time),
                "lastTransitionTime": _format_datetime(self.last_transition_time),
                "status": self.status.value,
                "error": self.error,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OperationDocument:
        operation_id = data.get("operationId")
        return cls(
            **cls._base_kwargs(data),
            partition_key=data.get("partitionKey", ""),
            tenant_id=data.get("tenantId"),
            client_id=data.get("clientId"),
            request=OperationRequest(data["request"]),
            external_id=ResourceID.parse(data["externalId"]),
            internal_id=data.get("internalId"),
            operation_id=ResourceID.parse(operation_id) if operation_id else None,
            notification_uri=data.get("notificationUri"),
            start_time=_parse_datetime(data["startTime"]),
            last_transition_time=_parse_datetime(data.get("lastTransitionTime")),
            status=ProvisioningState(data["status"]),
            error=data.get("error"),
        )

    def update_status(
        self, status: ProvisioningState, error: dict[str, Any] | None = None
    ) -> bool:
        """Apply a status transition; returns False if nothing changed.

        Suitable as the body of an update callback.
        """
        if self.status == status and self.error == error:
            return False
        self.status = status
        self.error = error
        self.last_transition_time = datetime.now(UTC)
        return True


@dataclass(kw_only=True)
class SubscriptionDocument(BaseDocument):
    """Registration state of a subscription.

    The document ID is the subscription ID in lower case and doubles as
    its partition key.
    """

    state: SubscriptionState = SubscriptionState.REGISTERED
    registration_date: datetime | None = None
    last_updated: datetime | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            {
                "state": self.state.value,
                "registrationDate": _format_datetime(self.registration_date),
                "lastUpdated": _format_datetime(self.last_updated),
                "properties": self.properties,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubscriptionDocument:
        return cls(
            **cls._base_kwargs(data),
            state=SubscriptionState(data["state"]),
            registration_date=_parse_datetime(data.get("registrationDate")),
            last_updated=_parse_datetime(data.get("lastUpdated")),
            properties=data.get("properties") or {},
        )


@dataclass(kw_only=True)
class PartitionKeyDocument(BaseDocument):
    """Index entry recording a partition key in use by the Resources container."""

    partition_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data["partitionKey"] = self.partition_key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartitionKeyDocument:
        return cls(**cls._base_kwargs(data), partition_key=data.get("partitionKey", ""))


DocumentT = TypeVar("DocumentT", bound=BaseDocument)


def encode_document(doc: BaseDocument, kind: str, key: str) -> dict[str, Any]:
    """Serialize a document to a JSON-safe dict.

    Raises:
        MarshalError: If the document holds values JSON cannot represent, or
            a plain value where an enum or ResourceID is expected
    """
    try:
        data = doc.to_dict()
        json.dumps(data)
    except (AttributeError, TypeError, ValueError) as e:
        raise MarshalError(kind, key, e) from e
    return data


def decode_document(doc_type: type[DocumentT], item: Any, kind: str, key: str) -> DocumentT:
    """Build a typed document from a raw store item.

    Raises:
        UnmarshalError: If the item is missing fields or holds invalid values
    """
    if not isinstance(item, dict):
        raise UnmarshalError(kind, key, TypeError(f"expected object, got {type(item).__name__}"))
    try:
        return doc_type.from_dict(item)
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise UnmarshalError(kind, key, e) from e
