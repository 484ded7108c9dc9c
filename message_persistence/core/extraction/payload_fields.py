"""
Best-effort extraction of structured fields from a JSON payload.

One table maps each payload key to the attribute it fills and the
converter that produces it. The table is walked once per payload; a
field whose value cannot be converted is left unset. Nothing in this
module raises: a payload that is not a JSON object yields an empty
PartialFields.
"""

import json
from datetime import datetime
from typing import Any, Callable, NamedTuple

from pydantic import BaseModel

from message_persistence.observability import metrics
from message_persistence.observability.logger import get_logger
from message_persistence.utils.validation import MAX_IDENTIFIER_LENGTH

logger = get_logger(__name__)

ENRICHMENT_STATUSES = ("PENDING", "ENRICHED", "FAILED")

# Column limits of the tables the extracted values are written to
MAX_STATUS_LENGTH = 50
MIN_INTEGER = -(2 ** 31)
MAX_INTEGER = 2 ** 31 - 1


class PartialFields(BaseModel):
    """
    Fields found in a payload. Unset means absent or unparseable.
    """

    message_id: str | None = None
    creation_date_time: datetime | None = None
    number_of_transactions: int | None = None
    enrichment_status: str | None = None
    processing_status: str | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    class Config:
        frozen = True


def _to_text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"expected text, got {type(value).__name__}")
    text = str(value).strip()
    if not text:
        raise ValueError("blank value")
    return text


def _bounded_text(max_length: int) -> Callable[[Any], str]:
    def convert(value: Any) -> str:
        text = _to_text(value)
        if len(text) > max_length:
            raise ValueError(f"longer than {max_length} characters")
        return text
    return convert


def parse_offset_datetime(value: Any) -> datetime:
    """Parse ISO-8601 with a UTC offset; a trailing Z means UTC."""
    if not isinstance(value, str):
        raise ValueError(f"expected ISO-8601 text, got {type(value).__name__}")
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"{value!r} has no UTC offset")
    return parsed


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected integer, got bool")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        number = int(value.strip())
    else:
        raise ValueError(f"expected integer, got {type(value).__name__}")
    if not MIN_INTEGER <= number <= MAX_INTEGER:
        raise ValueError(f"{number} is outside the 32-bit integer range")
    return number


def _to_enrichment_status(value: Any) -> str:
    status = _to_text(value).upper()
    if status not in ENRICHMENT_STATUSES:
        raise ValueError(f"unknown enrichment status {value!r}")
    return status


class FieldMapping(NamedTuple):
    attribute: str
    convert: Callable[[Any], Any]


# payload key -> (PartialFields attribute, converter)
FIELD_MAPPINGS: dict[str, FieldMapping] = {
    "messageId": FieldMapping("message_id", _bounded_text(MAX_IDENTIFIER_LENGTH)),
    "creationDateTime": FieldMapping("creation_date_time", parse_offset_datetime),
    "numberOfTransactions": FieldMapping("number_of_transactions", _to_int),
    "enrichmentStatus": FieldMapping("enrichment_status", _to_enrichment_status),
    "processingStatus": FieldMapping("processing_status", _bounded_text(MAX_STATUS_LENGTH)),
}


def _parse_document(raw_payload: Any) -> dict[str, Any] | None:
    if raw_payload is None:
        return None
    if isinstance(raw_payload, (bytes, bytearray)):
        try:
            raw_payload = bytes(raw_payload).decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Payload is not UTF-8, nothing extracted")
            return None
    if not isinstance(raw_payload, str) or not raw_payload.strip():
        return None

    try:
        document = json.loads(raw_payload)
    except ValueError as e:
        logger.warning(f"Payload is not JSON, nothing extracted: {e}")
        return None

    if not isinstance(document, dict):
        logger.warning(
            f"Payload is JSON {type(document).__name__}, not an object; nothing extracted"
        )
        return None
    return document


def extract_fields(raw_payload: Any) -> PartialFields:
    """
    Extract the known fields from a payload.

    Args:
        raw_payload: Payload text (bytes are decoded as UTF-8)

    Returns:
        PartialFields with every field that was present and convertible

    Examples:
        >>> extract_fields('{"numberOfTransactions": 3}').number_of_transactions
        3
        >>> extract_fields('not json').is_empty()
        True
    """
    document = _parse_document(raw_payload)
    if document is None:
        return PartialFields()

    found: dict[str, Any] = {}
    for key, mapping in FIELD_MAPPINGS.items():
        if key not in document or document[key] is None:
            continue
        try:
            found[mapping.attribute] = mapping.convert(document[key])
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Could not extract {key} from payload: {e}",
                extra={"field_name": key},
            )
            metrics.increment_counter(metrics.extraction_failures_total, field_name=key)

    return PartialFields(**found)
