"""
Input validation utilities for the message persistence subsystem.

Validation failures raise ValidationError. The stores never let it
escape: they convert it into an ERROR PersistenceResult the router can
branch on.
"""

from typing import Any, Optional

MAX_IDENTIFIER_LENGTH = 255
MAX_ERROR_MESSAGE_LENGTH = 1000


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


def validate_payload(payload: Any, field_name: str = "payload") -> str:
    """
    Validate a message payload.

    Payloads must be text (or UTF-8 bytes) containing at least one
    non-whitespace character. The payload is returned unchanged, not
    stripped: it is stored verbatim.

    Args:
        payload: The raw payload
        field_name: Name of the field (for error messages)

    Returns:
        The payload as text

    Raises:
        ValidationError: If the payload is null, blank or undecodable

    Examples:
        >>> validate_payload('{"messageId": "M1"}')
        '{"messageId": "M1"}'
        >>> validate_payload("   ")  # doctest: +SKIP
        ValidationError: Empty message body
    """
    if payload is None:
        raise ValidationError(f"Null message body ({field_name} is None)")

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"{field_name} is not valid UTF-8: {e}") from e

    if not isinstance(payload, str):
        raise ValidationError(
            f"{field_name} must be text, got {type(payload).__name__}"
        )

    if not payload.strip():
        raise ValidationError("Empty message body")

    return payload


def validate_record_id(record_id: Any, field_name: str = "record_id") -> int:
    """
    Validate a store-assigned record id.

    Args:
        record_id: The id to validate
        field_name: Name of the field (for error messages)

    Returns:
        The id as a positive integer

    Raises:
        ValidationError: If the id is not a positive integer

    Examples:
        >>> validate_record_id(42)
        42
        >>> validate_record_id("17")
        17
    """
    if isinstance(record_id, bool):
        raise ValidationError(f"{field_name} must be an integer, got bool")

    if isinstance(record_id, str):
        if not record_id.strip().isdigit():
            raise ValidationError(f"{field_name} must be a positive integer, got {record_id!r}")
        record_id = int(record_id.strip())

    if not isinstance(record_id, int):
        raise ValidationError(
            f"{field_name} must be an integer, got {type(record_id).__name__}"
        )

    if record_id <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {record_id}")

    return record_id


def validate_message_id(message_id: Optional[str], field_name: str = "message_id") -> Optional[str]:
    """
    Validate an optional business message id.

    Blank ids are treated as absent.

    Returns:
        The stripped id, or None
    """
    if message_id is None:
        return None

    if not isinstance(message_id, str):
        raise ValidationError(f"{field_name} must be a string, got {type(message_id).__name__}")

    message_id = message_id.strip()
    if not message_id:
        return None

    if len(message_id) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{field_name} exceeds maximum length of {MAX_IDENTIFIER_LENGTH} characters"
        )

    return message_id


def truncate_error_message(message: Optional[str], max_length: int = MAX_ERROR_MESSAGE_LENGTH) -> Optional[str]:
    """Clip an error message to the width of the error_message column."""
    if message is None:
        return None
    if len(message) <= max_length:
        return message
    return message[: max_length - 3] + "..."


def validate_file_path(file_path: str, field_name: str = "file_path") -> str:
    """
    Validate a file path passed on the command line.

    Raises:
        ValidationError: If the path is empty, contains null bytes or
            path traversal characters
    """
    if not file_path or not isinstance(file_path, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    file_path = file_path.strip()

    if not file_path:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if ".." in file_path:
        raise ValidationError(f"{field_name} contains path traversal characters (..)")

    if "\x00" in file_path:
        raise ValidationError(f"{field_name} contains null bytes")

    return file_path
