"""
Core data models for the message persistence subsystem.

All models use Pydantic for runtime validation and type safety.
"""

from .cdm_message import CdmMessage
from .inbound_item import InboundItem, MessageMetadata
from .message_error import MessageErrorRecord
from .message_source import MessageSource, classify_source
from .persistence_result import BatchItemError, BatchOutcome, PersistenceResult
from .received_message import ReceivedMessage

__all__ = [
    "MessageSource",
    "classify_source",
    "MessageMetadata",
    "InboundItem",
    "ReceivedMessage",
    "CdmMessage",
    "PersistenceResult",
    "BatchItemError",
    "BatchOutcome",
    "MessageErrorRecord",
]
