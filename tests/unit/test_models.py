"""
Unit tests for Pydantic models
"""
import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pydantic import ValidationError as PydanticValidationError

from message_persistence.core.models import (
    BatchItemError,
    BatchOutcome,
    CdmMessage,
    InboundItem,
    MessageMetadata,
    MessageSource,
    PersistenceResult,
    ReceivedMessage,
)
from message_persistence.utils.validation import ValidationError


@pytest.mark.unit
class TestMessageMetadata:
    """Test MessageMetadata model"""

    def test_accepts_camel_case_headers(self):
        metadata = MessageMetadata.model_validate({
            "messageId": "MSG-1",
            "correlationId": "CORR-1",
            "messageType": "pacs.008",
            "fileName": "batch.xml",
            "lineNumber": 3,
            "unrelatedHeader": "ignored",
        })

        assert metadata.message_id == "MSG-1"
        assert metadata.correlation_id == "CORR-1"
        assert metadata.message_type == "pacs.008"
        assert metadata.file_name == "batch.xml"
        assert metadata.line_number == 3

    def test_accepts_snake_case_names(self):
        metadata = MessageMetadata(message_id="MSG-2", original_received_message_id=9)
        assert metadata.message_id == "MSG-2"
        assert metadata.original_received_message_id == 9

    def test_enrichment_status_is_normalised(self):
        assert MessageMetadata(enrichment_status=" enriched ").enrichment_status == "ENRICHED"
        assert MessageMetadata(enrichment_status="").enrichment_status is None

    def test_invalid_enrichment_status(self):
        with pytest.raises(PydanticValidationError):
            MessageMetadata(enrichment_status="DONE")

    def test_numeric_headers_are_coerced_to_text(self):
        metadata = MessageMetadata.model_validate({"messageId": 1001, "correlationId": 7781})

        assert metadata.message_id == "1001"
        assert metadata.correlation_id == "7781"

    def test_line_number_is_one_based(self):
        with pytest.raises(PydanticValidationError):
            MessageMetadata(line_number=0)


@pytest.mark.unit
class TestInboundItemFromRaw:
    """Normalisation of adapter output into InboundItem"""

    def test_plain_string(self):
        item = InboundItem.from_raw('{"a": 1}')
        assert item.payload == '{"a": 1}'
        assert item.metadata == MessageMetadata()
        assert not item.wants_update

    def test_bytes_are_decoded(self):
        assert InboundItem.from_raw("café".encode("utf-8")).payload == "café"

    def test_undecodable_bytes(self):
        with pytest.raises(ValidationError, match="not valid UTF-8"):
            InboundItem.from_raw(b"\xff\xfe\xfa")

    def test_none_stays_none(self):
        assert InboundItem.from_raw(None).payload is None

    def test_existing_item_returned_as_is(self):
        item = InboundItem(payload="x", existing_id=4)
        assert InboundItem.from_raw(item) is item

    def test_envelope_with_headers(self):
        item = InboundItem.from_raw({
            "body": "<Document/>",
            "headers": {"messageId": "MSG-3", "existingId": 12, "statusOverride": "VALIDATED"},
        })

        assert item.payload == "<Document/>"
        assert item.metadata.message_id == "MSG-3"
        assert item.existing_id == 12
        assert item.status_override == "VALIDATED"
        assert item.wants_update

    def test_envelope_with_numeric_headers(self):
        item = InboundItem.from_raw({"body": "{}", "headers": {"correlationId": 7781, "messageType": 8}})

        assert item.metadata.correlation_id == "7781"
        assert item.metadata.message_type == "8"

    def test_nested_envelopes_outer_metadata_wins(self):
        item = InboundItem.from_raw({
            "payload": {
                "body": {"payload": "innermost", "messageType": "pain.001"},
                "headers": {"messageId": "INNER", "source": "MQ"},
            },
            "metadata": {"messageId": "OUTER"},
            "isUpdate": True,
        })

        assert item.payload == "innermost"
        assert item.metadata.message_id == "OUTER"
        assert item.metadata.source == "MQ"
        assert item.metadata.message_type == "pain.001"
        assert item.is_update

    def test_mapping_without_body_is_serialised(self):
        item = InboundItem.from_raw({"messageId": "M-9", "numberOfTransactions": 2})
        assert json.loads(item.payload) == {"messageId": "M-9", "numberOfTransactions": 2}

    def test_object_with_body_attribute(self):
        message = SimpleNamespace(body="text body", headers={"correlationId": "C-7"})
        item = InboundItem.from_raw(message)
        assert item.payload == "text body"
        assert item.metadata.correlation_id == "C-7"

    def test_other_objects_use_str(self):
        assert InboundItem.from_raw(12345).payload == "12345"

    def test_envelope_nesting_is_bounded(self):
        raw = "core"
        for _ in range(40):
            raw = {"body": raw}
        with pytest.raises(ValidationError, match="nested deeper"):
            InboundItem.from_raw(raw)


@pytest.mark.unit
class TestStoredMessages:
    """Row mapping of stored message models"""

    def test_received_message_from_row(self):
        now = datetime.now(timezone.utc)
        message = ReceivedMessage.from_row({
            "id": 1,
            "message_id": "MSG-1",
            "correlation_id": None,
            "message_type": "pacs.008",
            "source": "FILE",
            "payload": "{}",
            "file_name": "in.json",
            "line_number": 2,
            "processing_status": "RECEIVED",
            "received_at": now,
            "created_at": now,
            "updated_at": now,
            "processed_at": None,
            "error_message": "boom",
        })

        assert message.source == MessageSource.FILE
        assert message.processing_error == "boom"

    def test_cdm_message_defaults(self):
        record = CdmMessage(message_id="MSG-1", cdm_payload="{}")
        assert record.enrichment_status == "PENDING"
        assert record.processing_status == "PROCESSED"
        assert record.source == MessageSource.UNKNOWN

    def test_cdm_message_requires_message_id(self):
        with pytest.raises(PydanticValidationError):
            CdmMessage(message_id="", cdm_payload="{}")


@pytest.mark.unit
class TestPersistenceResult:
    """Result descriptors and router headers"""

    def test_created_headers(self):
        result = PersistenceResult.created("received", 42)
        assert result.succeeded
        assert result.as_headers() == {
            "persistenceStatus": "SUCCESS",
            "persistedMessageId": 42,
            "persistenceOperation": "CREATE",
        }

    def test_cdm_headers_use_cdm_key(self):
        headers = PersistenceResult.updated("cdm", 7).as_headers()
        assert headers["persistedCdmId"] == 7
        assert headers["persistenceOperation"] == "UPDATE"

    def test_rejected_headers(self):
        result = PersistenceResult.rejected("received", "Empty message body")
        assert not result.succeeded
        assert result.as_headers() == {
            "persistenceStatus": "ERROR",
            "persistenceError": "Empty message body",
        }


@pytest.mark.unit
class TestBatchOutcome:
    """Overall batch status derivation"""

    def test_partial_success(self):
        outcome = BatchOutcome.from_counts(
            "per_item", 5, 4, [BatchItemError(index=2, error="Empty message body")], [1, 2, 3, 4]
        )
        assert outcome.overall_status == "PARTIAL_SUCCESS"
        assert outcome.failure_count == 1
        assert not outcome.is_total_failure

    def test_all_succeeded(self):
        assert BatchOutcome.from_counts("bulk", 3, 3, []).overall_status == "SUCCESS"

    def test_none_succeeded(self):
        errors = [BatchItemError(index=i, error="x") for i in range(2)]
        outcome = BatchOutcome.from_counts("per_item", 2, 0, errors)
        assert outcome.overall_status == "FAILED"
        assert outcome.is_total_failure

    def test_empty_batch_is_success(self):
        outcome = BatchOutcome.from_counts("per_item", 0, 0, [])
        assert outcome.overall_status == "SUCCESS"
        assert outcome.total == 0

    def test_counts_must_add_up(self):
        with pytest.raises(PydanticValidationError):
            BatchOutcome(
                mode="per_item", total=3, success_count=1, failure_count=1,
                overall_status="PARTIAL_SUCCESS",
            )

    def test_headers(self):
        outcome = BatchOutcome.from_counts("per_item", 4, 3, [BatchItemError(index=0, error="x")])
        headers = outcome.as_headers()

        assert headers["persistenceStatus"] == "PARTIAL_SUCCESS"
        assert headers["batchProcessedCount"] == 3
        assert headers["batchErrorCount"] == 1
        assert headers["persistenceError"] == (
            "Batch processing completed with 1 failures out of 4 messages"
        )

    def test_item_index_is_non_negative(self):
        with pytest.raises(PydanticValidationError):
            BatchItemError(index=-1, error="x")
