"""
CdmMessage model representing the enriched (Common Data Model) form of a message.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .message_source import MessageSource

EnrichmentStatus = Literal["PENDING", "ENRICHED", "FAILED"]

PENDING_ENRICHMENT = "PENDING"
ENRICHED = "ENRICHED"
PROCESSED_STATUS = "PROCESSED"


class CdmMessage(BaseModel):
    """
    An enriched/transformed message as stored in the ``cdm_message`` table.

    enrichment_status starts at PENDING and only advances through explicit
    caller input or successful extraction. FAILED is never inferred.

    Attributes:
        id: Server-generated primary key
        message_id: Business message id (shared by all revisions of a message)
        original_message_id: Message id before transformation (defaults to message_id)
        message_type: Payment message type
        source: Ingestion channel
        enrichment_status: PENDING, ENRICHED or FAILED
        creation_date_time: creationDateTime extracted from the payload
        number_of_transactions: numberOfTransactions extracted from the payload
        processing_status: "PROCESSED" unless the payload carries its own
        processed_at: Last write to the row
        processing_error: Last recorded error (``error_message`` column)
        cdm_payload: Transformed payload
        original_payload: Payload before transformation
        original_received_message_id: Soft reference to received_message.id
        created_at: When the row was inserted
        updated_at: Last update of the row
    """

    id: int | None = None
    message_id: str = Field(..., min_length=1, max_length=255)
    original_message_id: str | None = Field(None, max_length=255)
    message_type: str | None = Field(None, max_length=50)
    source: MessageSource = MessageSource.UNKNOWN
    enrichment_status: EnrichmentStatus = PENDING_ENRICHMENT
    creation_date_time: datetime | None = None
    number_of_transactions: int | None = None
    processing_status: str = PROCESSED_STATUS
    processed_at: datetime | None = None
    processing_error: str | None = None
    cdm_payload: str
    original_payload: str | None = None
    original_received_message_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CdmMessage":
        """Build a model from a dict_row of the cdm_message table."""
        data = dict(row)
        data["processing_error"] = data.pop("error_message", None)
        return cls.model_validate(data)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 77,
                "message_id": "MSG-20251021-0001",
                "original_message_id": "MSG-20251021-0001",
                "message_type": "pacs.008",
                "source": "MQ",
                "enrichment_status": "ENRICHED",
                "creation_date_time": "2025-10-21T14:30:00Z",
                "number_of_transactions": 3,
                "processing_status": "PROCESSED",
                "cdm_payload": "{\"messageId\": \"MSG-20251021-0001\", \"numberOfTransactions\": 3}"
            }
        }
