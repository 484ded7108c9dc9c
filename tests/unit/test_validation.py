"""
Unit tests for input validation utilities and identifier generation.
"""

import re

import pytest
from hypothesis import given
from hypothesis import strategies as st

from message_persistence.utils.identifiers import generate_message_id
from message_persistence.utils.validation import (
    MAX_ERROR_MESSAGE_LENGTH,
    ValidationError,
    truncate_error_message,
    validate_file_path,
    validate_message_id,
    validate_payload,
    validate_record_id,
)


# =======================
# VALIDATION UTILITIES TESTS
# =======================

@pytest.mark.unit
class TestValidationUtilities:
    """Test the input validation utilities."""

    def test_validate_payload_valid(self):
        """Payloads are returned verbatim, not stripped."""
        assert validate_payload('{"a": 1}') == '{"a": 1}'
        assert validate_payload("  padded  ") == "  padded  "
        assert validate_payload(b"<xml/>") == "<xml/>"

    def test_validate_payload_invalid(self):
        """Test null, blank and non-text payloads."""
        with pytest.raises(ValidationError, match="Null message body"):
            validate_payload(None)

        with pytest.raises(ValidationError, match="Empty message body"):
            validate_payload("")

        with pytest.raises(ValidationError, match="Empty message body"):
            validate_payload(" \n\t ")

        with pytest.raises(ValidationError, match="must be text"):
            validate_payload(123)

        with pytest.raises(ValidationError, match="not valid UTF-8"):
            validate_payload(b"\xff\xfe")

    def test_validate_record_id_valid(self):
        """Test valid record IDs."""
        assert validate_record_id(1) == 1
        assert validate_record_id("17") == 17
        assert validate_record_id(" 8 ") == 8

    def test_validate_record_id_invalid(self):
        """Test invalid record IDs."""
        with pytest.raises(ValidationError, match="positive integer"):
            validate_record_id(0)

        with pytest.raises(ValidationError, match="positive integer"):
            validate_record_id("abc")

        with pytest.raises(ValidationError, match="got bool"):
            validate_record_id(True)

        with pytest.raises(ValidationError, match="must be an integer"):
            validate_record_id(1.5)

    def test_validate_message_id(self):
        """Blank ids are absent, long ids rejected."""
        assert validate_message_id(None) is None
        assert validate_message_id("   ") is None
        assert validate_message_id(" MSG-1 ") == "MSG-1"

        with pytest.raises(ValidationError, match="maximum length"):
            validate_message_id("x" * 256)

    def test_truncate_error_message(self):
        assert truncate_error_message(None) is None
        assert truncate_error_message("short") == "short"

        truncated = truncate_error_message("e" * 5000)
        assert len(truncated) == MAX_ERROR_MESSAGE_LENGTH
        assert truncated.endswith("...")

    def test_validate_file_path(self):
        """Test file path validation."""
        assert validate_file_path("data/batch.json") == "data/batch.json"

        with pytest.raises(ValidationError, match="path traversal"):
            validate_file_path("../etc/passwd")

        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_file_path("   ")


@pytest.mark.unit
class TestGenerateMessageId:
    """Generated ids for items without a message id"""

    def test_format(self):
        assert re.fullmatch(r"MSG-\d{13}-[0-9a-f]{8}", generate_message_id())

    def test_ids_are_unique(self):
        assert len({generate_message_id() for _ in range(200)}) == 200


@pytest.mark.unit
class TestValidationProperties:

    @given(st.text(min_size=1).filter(lambda s: s.strip() != ""))
    def test_property_any_nonblank_payload_passes(self, payload):
        """Property test: any non-blank text is accepted verbatim"""
        assert validate_payload(payload) == payload

    @given(st.integers(min_value=1))
    def test_property_positive_ids_pass(self, record_id):
        assert validate_record_id(record_id) == record_id
        assert validate_record_id(str(record_id)) == record_id
