"""
MessageErrorRecord model for the message_errors table.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class MessageErrorRecord(BaseModel):
    """
    A processing failure recorded against a message.

    Attributes:
        id: Auto-increment primary key
        message_id: Business message id (may be unknown)
        error_route: Step or component where the failure happened
        error_message: "<ExceptionType>: <message>", optionally followed by the traceback
        message_body: Payload that failed
        error_timestamp: When the failure happened
        created_at: When the row was inserted
    """

    id: int | None = None
    message_id: str | None = Field(None, max_length=255)
    error_route: str | None = Field(None, max_length=100)
    error_message: str
    message_body: str | None = None
    error_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime | None = None
