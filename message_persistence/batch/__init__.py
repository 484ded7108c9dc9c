"""
Batch persistence: per-item coordination and bulk insertion.
"""

from .bulk_writer import BulkMessageWriter
from .coordinator import BatchCoordinator
from .errors import BatchFailureError

__all__ = [
    "BatchCoordinator",
    "BulkMessageWriter",
    "BatchFailureError",
]
