"""
Per-item batch persistence.

Every item is normalised and written through the store's single-item
path, in its own transaction. A failing item never affects the others,
and the counts in the returned BatchOutcome are final: nothing is rolled
back after the fact.
"""

from collections.abc import Iterable
from typing import Any

from message_persistence.core.models import BatchItemError, BatchOutcome, InboundItem
from message_persistence.observability import metrics
from message_persistence.observability.logger import get_logger, log_operation
from message_persistence.warehouse.cdm_store import CdmStore
from message_persistence.warehouse.error_log import MessageErrorLog
from message_persistence.warehouse.message_store import MessageStore

from .errors import BatchFailureError

logger = get_logger(__name__)

MODE = "per_item"


class BatchCoordinator:
    """
    Persists a batch of items one by one with failure isolation.
    """

    def __init__(
        self,
        store: MessageStore | CdmStore,
        error_log: MessageErrorLog | None = None,
    ):
        """
        Initialize batch coordinator.

        Args:
            store: Store every item is written to
            error_log: Optional log receiving each item failure
        """
        self.store = store
        self.error_log = error_log

    def process(self, items: Iterable[Any]) -> BatchOutcome:
        """
        Persist every item of a batch.

        Args:
            items: Raw items in any shape InboundItem.from_raw accepts

        Returns:
            BatchOutcome with per-item errors in input order

        Raises:
            BatchFailureError: At least one item and none succeeded
        """
        items = list(items)
        errors: list[BatchItemError] = []
        record_ids: list[int] = []

        with log_operation(
            "Persisting batch",
            logger=logger,
            store=self.store.store_name,
            batch_size=len(items),
        ):
            for index, raw in enumerate(items):
                item = None
                try:
                    item = InboundItem.from_raw(raw)
                    if item.payload is None or not item.payload.strip():
                        logger.warning(
                            f"Skipping empty message in batch at index {index}",
                            extra={"batch_index": index},
                        )
                        self._fail(errors, index, "Empty message body", item)
                        continue

                    result = self.store.save_item(item)
                except Exception as e:
                    logger.error(
                        f"Error processing message at index {index}: {e}",
                        exc_info=True,
                        extra={"batch_index": index},
                    )
                    self._fail(errors, index, str(e), item, cause=e)
                    continue

                if result.succeeded:
                    record_ids.append(result.record_id)
                else:
                    self._fail(errors, index, result.error or "Unknown persistence error", item)

            outcome = BatchOutcome.from_counts(
                mode=MODE,
                total=len(items),
                success_count=len(record_ids),
                errors=errors,
                record_ids=record_ids,
            )

        metrics.record_batch_outcome(MODE, outcome.total, outcome.overall_status)
        logger.info(
            f"Batch processing completed: {outcome.summary()}",
            extra={
                "store": self.store.store_name,
                "batch_size": outcome.total,
                "success_count": outcome.success_count,
                "failure_count": outcome.failure_count,
                "overall_status": outcome.overall_status,
            },
        )

        if outcome.is_total_failure:
            raise BatchFailureError(outcome)
        return outcome

    def _fail(
        self,
        errors: list[BatchItemError],
        index: int,
        message: str,
        item: InboundItem | None,
        cause: Exception | None = None,
    ) -> None:
        errors.append(BatchItemError(index=index, error=message))
        if self.error_log is None:
            return

        message_id = item.metadata.message_id if item else None
        body = item.payload if item else None
        self.error_log.record(
            message_id,
            f"batch:{self.store.store_name}",
            cause if cause is not None else message,
            body,
        )
