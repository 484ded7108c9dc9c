"""
Bulk insertion of received messages.

Items are prepared one by one (preparation failures are counted per
item), then every prepared row is inserted with a single executemany in
a single transaction. A failure during execution rolls back the whole
batch and cannot be attributed to a row.
"""

from collections.abc import Iterable
from typing import Any

import psycopg

from message_persistence.core.models import BatchItemError, BatchOutcome, InboundItem
from message_persistence.observability import metrics
from message_persistence.observability.logger import get_logger, log_operation
from message_persistence.warehouse.errors import StorageError
from message_persistence.warehouse.message_store import (
    INSERT_RECEIVED_MESSAGE_SQL,
    STORE_NAME,
    MessageStore,
    utc_now,
)

from .errors import BatchFailureError

logger = get_logger(__name__)

MODE = "bulk"


class BulkMessageWriter:
    """
    Writes a batch of new received messages in one transaction.

    Only creation is supported: update requests in the batch are
    inserted as new rows.
    """

    def __init__(self, store: MessageStore):
        """
        Initialize bulk writer.

        Args:
            store: Message store providing row preparation and the pool
        """
        self.store = store
        self.pool = store.pool

    def write(self, items: Iterable[Any]) -> BatchOutcome:
        """
        Insert a batch of messages.

        Args:
            items: Raw items in any shape InboundItem.from_raw accepts

        Returns:
            BatchOutcome; success_count is the number of inserted rows

        Raises:
            BatchFailureError: No item could be prepared
            StorageError: The insert failed; nothing was written
        """
        items = list(items)
        if not items:
            outcome = BatchOutcome.from_counts(MODE, 0, 0, [])
            metrics.record_batch_outcome(MODE, 0, outcome.overall_status)
            return outcome

        errors: list[BatchItemError] = []
        rows: list[dict[str, Any]] = []
        now = utc_now()

        for index, raw in enumerate(items):
            try:
                item = InboundItem.from_raw(raw)
                if item.wants_update:
                    logger.warning(
                        f"Bulk mode only creates records, inserting item {index} as new",
                        extra={"batch_index": index, "record_id": item.existing_id},
                    )
                rows.append(self.store.prepare(item.payload, item.metadata, now=now))
            except ValueError as e:
                logger.warning(
                    f"Skipping message at index {index}: {e}",
                    extra={"batch_index": index},
                )
                errors.append(BatchItemError(index=index, error=str(e)))

        if not rows:
            outcome = BatchOutcome.from_counts(MODE, len(items), 0, errors)
            metrics.record_batch_outcome(MODE, outcome.total, outcome.overall_status)
            raise BatchFailureError(outcome)

        with log_operation("Bulk inserting messages", logger=logger, batch_size=len(rows)):
            record_ids = self._insert(rows)

        outcome = BatchOutcome.from_counts(
            mode=MODE,
            total=len(items),
            success_count=len(rows),
            errors=errors,
            record_ids=record_ids,
        )
        metrics.increment_counter(
            metrics.messages_persisted_total, len(rows), store=STORE_NAME, operation="create"
        )
        metrics.record_batch_outcome(MODE, outcome.total, outcome.overall_status)
        logger.info(
            f"Bulk insert completed: {outcome.summary()}",
            extra={
                "batch_size": outcome.total,
                "success_count": outcome.success_count,
                "failure_count": outcome.failure_count,
                "overall_status": outcome.overall_status,
            },
        )
        return outcome

    def _insert(self, rows: list[dict[str, Any]]) -> list[int]:
        record_ids: list[int] = []
        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    cur.executemany(INSERT_RECEIVED_MESSAGE_SQL + " RETURNING id", rows, returning=True)
                    while True:
                        row = cur.fetchone()
                        if row is not None:
                            record_ids.append(row["id"])
                        if not cur.nextset():
                            break
        except psycopg.Error as e:
            logger.error(f"Bulk insert of {len(rows)} messages failed: {e}", exc_info=True)
            metrics.increment_counter(
                metrics.persistence_errors_total, store=STORE_NAME, error_type="storage"
            )
            metrics.record_batch_outcome(MODE, len(rows), "FAILED")
            raise StorageError(STORE_NAME, "bulk_create", str(e)) from e
        return record_ids
