"""
InboundItem and MessageMetadata: what the ingestion/router layer hands to the stores.
"""

import json
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from message_persistence.utils.validation import ValidationError

# Keys that describe the envelope itself rather than the message
BODY_KEYS = ("body", "payload")
HEADER_KEYS = ("headers", "metadata")
ITEM_KEYS = {
    "existingId": "existing_id",
    "existing_id": "existing_id",
    "isUpdate": "is_update",
    "is_update": "is_update",
    "statusOverride": "status_override",
    "status_override": "status_override",
}

MAX_ENVELOPE_DEPTH = 16


class MessageMetadata(BaseModel):
    """
    Optional identity and routing metadata travelling with a payload.

    Accepts both snake_case names and the camelCase header names used by
    the router (``messageId``, ``correlationId``, ...). Unknown keys are
    ignored.

    Attributes:
        message_id: Business message id
        correlation_id: Correlation id assigned upstream
        message_type: Payment message type (e.g. "pacs.008")
        source: Explicit ingestion channel hint
        endpoint: Endpoint identifier the item was consumed from
        file_name: Source file, for file-sourced items
        line_number: 1-based line within file_name
        receipt_timestamp: ISO-8601 receipt time reported by the adapter
        original_message_id: Message id before transformation (CDM only)
        original_payload: Payload before transformation (CDM only)
        original_received_message_id: Soft reference to the received message row (CDM only)
        enrichment_status: Explicit enrichment status (CDM only)
    """

    message_id: str | None = None
    correlation_id: str | None = None
    message_type: str | None = None
    source: str | None = None
    endpoint: str | None = None
    file_name: str | None = None
    line_number: int | None = Field(None, ge=1)
    receipt_timestamp: str | None = None
    original_message_id: str | None = None
    original_payload: str | None = None
    original_received_message_id: int | None = None
    enrichment_status: Literal["PENDING", "ENRICHED", "FAILED"] | None = None

    @field_validator("enrichment_status", mode="before")
    @classmethod
    def normalize_enrichment_status(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"
        coerce_numbers_to_str = True
        json_schema_extra = {
            "example": {
                "messageId": "MSG-20251021-0001",
                "correlationId": "CORR-7781",
                "messageType": "pacs.008",
                "source": "MQ",
                "endpoint": "jms:queue:PAYMENTS.IN"
            }
        }


class InboundItem(BaseModel):
    """
    One item handed over by an ingress adapter or the router.

    The existing-record identity is an explicit field: nothing about
    which record an item updates is carried implicitly.

    Attributes:
        payload: Message text (None or blank items are rejected by the stores)
        metadata: Identity and routing metadata
        existing_id: Id of the stored record this item updates
        is_update: Update requested without a known id (CDM resolves by message_id)
        status_override: Processing status to apply on update
    """

    payload: str | None = None
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    existing_id: int | None = None
    is_update: bool = False
    status_override: str | None = None

    @property
    def wants_update(self) -> bool:
        return self.is_update or self.existing_id is not None

    @classmethod
    def from_raw(cls, raw: Any) -> "InboundItem":
        """
        Normalise whatever an adapter produced into an InboundItem.

        Accepted shapes:
            - InboundItem (returned as is)
            - mapping envelope with a ``body``/``payload`` key, optionally
              ``headers``/``metadata``; the body may itself be an envelope
            - mapping without a body key (serialised to JSON as the payload)
            - object exposing ``body`` (and optionally ``headers``)
            - bytes (decoded as UTF-8), str, None
            - anything else (``str()`` of it)

        Outer envelope metadata wins over inner envelope metadata.

        Raises:
            ValidationError: undecodable bytes or envelopes nested too deep
            pydantic.ValidationError: metadata of the wrong type
        """
        if isinstance(raw, InboundItem):
            return raw

        fields: dict[str, Any] = {}
        headers: dict[str, Any] = {}
        body = raw

        for _ in range(MAX_ENVELOPE_DEPTH + 1):
            envelope = _as_envelope(body)
            if envelope is None:
                break
            inner_body, inner_headers, inner_fields = envelope
            for key, value in inner_headers.items():
                headers.setdefault(key, value)
            for key, value in inner_fields.items():
                fields.setdefault(key, value)
            body = inner_body
        else:
            raise ValidationError(f"Envelope nested deeper than {MAX_ENVELOPE_DEPTH} levels")

        return cls(
            payload=_body_to_text(body),
            metadata=MessageMetadata.model_validate(headers),
            **fields,
        )


def _as_envelope(obj: Any) -> tuple[Any, dict[str, Any], dict[str, Any]] | None:
    """Split an envelope into (body, headers, item fields), or None if obj is not one."""
    if isinstance(obj, Mapping):
        body_key = next((k for k in BODY_KEYS if k in obj), None)
        if body_key is None:
            return None

        headers: dict[str, Any] = {}
        fields: dict[str, Any] = {}
        for key, value in obj.items():
            if key == body_key:
                continue
            if key in HEADER_KEYS and isinstance(value, Mapping):
                for header_key, header_value in value.items():
                    _route_key(header_key, header_value, headers, fields)
            else:
                _route_key(key, value, headers, fields)
        return obj[body_key], headers, fields

    if not isinstance(obj, (str, bytes, bytearray)) and hasattr(obj, "body"):
        headers = {}
        fields = {}
        raw_headers = getattr(obj, "headers", None)
        if isinstance(raw_headers, Mapping):
            for key, value in raw_headers.items():
                _route_key(key, value, headers, fields)
        return obj.body, headers, fields

    return None


def _route_key(key: Any, value: Any, headers: dict[str, Any], fields: dict[str, Any]) -> None:
    if key in ITEM_KEYS:
        fields.setdefault(ITEM_KEYS[key], value)
    else:
        headers.setdefault(key, value)


def _body_to_text(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        try:
            return bytes(body).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"Message body is not valid UTF-8: {e}") from e
    if isinstance(body, Mapping):
        return json.dumps(body)
    return str(body)
