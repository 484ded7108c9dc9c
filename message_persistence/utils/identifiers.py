"""
Identifier helpers.
"""

import time
import uuid


def generate_message_id() -> str:
    """
    Generate a message id for items that arrive without one.

    Format: ``MSG-<epoch millis>-<8 hex chars>``.
    """
    return f"MSG-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
