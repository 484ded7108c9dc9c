"""
Batch-level exceptions.
"""

from message_persistence.core.models import BatchOutcome


class BatchFailureError(RuntimeError):
    """
    Raised when a non-empty batch had no successful item.

    The outcome (with every per-item error) travels with the exception so
    the caller can dead-letter the whole batch.
    """

    def __init__(self, outcome: BatchOutcome):
        self.outcome = outcome
        super().__init__(f"Batch failed: {outcome.summary()}")
