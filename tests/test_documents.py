"""Tests for document serialization."""

from datetime import UTC, datetime

import pytest

from controlplane_storage import (
    MarshalError,
    OperationDocument,
    OperationRequest,
    ProvisioningState,
    ResourceDocument,
    ResourceID,
    SubscriptionDocument,
    SubscriptionState,
    UnmarshalError,
)
from controlplane_storage.documents import decode_document, encode_document

CLUSTER_ID = ResourceID.parse(
    "/subscriptions/SUB-1/resourceGroups/RG/providers/Microsoft.Foo/widgets/W1"
)


class TestResourceDocument:
    def test_defaults(self):
        doc = ResourceDocument(key=CLUSTER_ID)
        assert doc.partition_key == "sub-1"
        assert doc.id == doc.id.lower()
        assert doc.properties == {}

    def test_round_trip_keeps_key_casing(self):
        doc = ResourceDocument(
            key=CLUSTER_ID,
            internal_id="/api/clusters_mgmt/v1/clusters/abc",
            provisioning_state=ProvisioningState.SUCCEEDED,
            tags={"env": "dev"},
            properties={"version": "4.15"},
        )
        data = doc.to_dict()
        assert data["key"] == str(CLUSTER_ID)
        assert data["partitionKey"] == "sub-1"
        assert data["provisioningState"] == "Succeeded"
        assert "_etag" not in data

        restored = ResourceDocument.from_dict({**data, "_etag": '"v1"', "_ts": 5})
        assert str(restored.key) == str(CLUSTER_ID)
        assert restored.cosmos_etag == '"v1"'
        assert restored.cosmos_timestamp == 5
        assert restored.provisioning_state is ProvisioningState.SUCCEEDED
        assert restored.properties == {"version": "4.15"}


class TestOperationDocument:
    def test_last_transition_defaults_to_start(self):
        doc = OperationDocument(request=OperationRequest.CREATE, external_id=CLUSTER_ID)
        assert doc.last_transition_time == doc.start_time
        assert doc.status is ProvisioningState.ACCEPTED

    def test_from_dict(self):
        start = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)
        doc = OperationDocument(
            id="op-1",
            request=OperationRequest.DELETE,
            external_id=CLUSTER_ID,
            start_time=start,
            tenant_id="tenant",
        )
        restored = OperationDocument.from_dict(doc.to_dict())
        assert restored.request is OperationRequest.DELETE
        assert restored.start_time == start
        assert restored.external_id == CLUSTER_ID
        assert restored.tenant_id == "tenant"
        assert restored.operation_id is None

    def test_update_status(self):
        doc = OperationDocument(request=OperationRequest.CREATE, external_id=CLUSTER_ID)
        assert doc.update_status(ProvisioningState.SUCCEEDED) is True
        assert doc.status.is_terminal
        assert doc.update_status(ProvisioningState.SUCCEEDED) is False


class TestSubscriptionDocument:
    def test_round_trip(self):
        doc = SubscriptionDocument(
            id="sub-1",
            state=SubscriptionState.WARNED,
            registration_date=datetime(2024, 5, 1, tzinfo=UTC),
            properties={"tenantId": "t"},
        )
        restored = SubscriptionDocument.from_dict(doc.to_dict())
        assert restored.state is SubscriptionState.WARNED
        assert restored.registration_date == doc.registration_date
        assert restored.last_updated is None


class TestEncodeDecode:
    def test_encode_rejects_unserializable(self):
        doc = ResourceDocument(key=CLUSTER_ID, properties={"bad": object()})
        with pytest.raises(MarshalError) as exc_info:
            encode_document(doc, "Resources", str(CLUSTER_ID))
        assert exc_info.value.kind == "Resources"

    def test_encode_rejects_plain_string_for_enum(self):
        doc = ResourceDocument(key=CLUSTER_ID)
        doc.provisioning_state = "Succeeded"
        with pytest.raises(MarshalError) as exc_info:
            encode_document(doc, "Resources", str(CLUSTER_ID))
        assert isinstance(exc_info.value.cause, AttributeError)

    @pytest.mark.parametrize(
        "item",
        [
            {"id": "x"},
            {"id": "x", "key": "not-a-resource-id", "partitionKey": "p"},
            {"id": "x", "key": str(CLUSTER_ID), "partitionKey": "p", "provisioningState": "Bogus"},
            ["not", "an", "object"],
        ],
    )
    def test_decode_malformed(self, item):
        with pytest.raises(UnmarshalError):
            decode_document(ResourceDocument, item, "Resources", "x")
