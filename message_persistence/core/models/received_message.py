"""
ReceivedMessage model representing a durably stored inbound message.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .message_source import MessageSource

RECEIVED_STATUS = "RECEIVED"
ENRICHED_STATUS = "ENRICHED"


class ReceivedMessage(BaseModel):
    """
    A raw inbound message as stored in the ``received_message`` table.

    id and received_at are assigned once at creation and never change.
    updated_at and processed_at move on every update. processing_status
    is a pass-through string owned by the router.

    Attributes:
        id: Server-generated primary key
        message_id: Business message id
        correlation_id: Correlation id assigned upstream
        message_type: Payment message type
        source: Ingestion channel
        payload: Message text as received (or as last updated)
        file_name: Source file (file-sourced items only)
        line_number: Line within file_name (file-sourced items only)
        processing_status: "RECEIVED" on create, caller value or "ENRICHED" on update
        received_at: When the message was received
        created_at: When the row was inserted
        updated_at: Last write to the row
        processed_at: Last update of the row
        processing_error: Last recorded processing error (``error_message`` column)
    """

    id: int | None = None
    message_id: str | None = Field(None, max_length=255)
    correlation_id: str | None = Field(None, max_length=255)
    message_type: str | None = Field(None, max_length=50)
    source: MessageSource = MessageSource.UNKNOWN
    payload: str
    file_name: str | None = Field(None, max_length=500)
    line_number: int | None = None
    processing_status: str = RECEIVED_STATUS
    received_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    processed_at: datetime | None = None
    processing_error: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ReceivedMessage":
        """Build a model from a dict_row of the received_message table."""
        data = dict(row)
        data["processing_error"] = data.pop("error_message", None)
        return cls.model_validate(data)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 1024,
                "message_id": "MSG-20251021-0001",
                "correlation_id": "CORR-7781",
                "message_type": "pacs.008",
                "source": "MQ",
                "payload": "<Document>...</Document>",
                "processing_status": "RECEIVED",
                "received_at": "2025-10-21T14:30:00Z",
                "created_at": "2025-10-21T14:30:00Z"
            }
        }
