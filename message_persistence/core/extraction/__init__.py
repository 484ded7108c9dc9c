"""
Payload field extraction.
"""

from .payload_fields import FIELD_MAPPINGS, PartialFields, extract_fields, parse_offset_datetime

__all__ = ["FIELD_MAPPINGS", "PartialFields", "extract_fields", "parse_offset_datetime"]
