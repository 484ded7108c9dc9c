"""
Lifecycle management for raw received messages.

create inserts a new row. update rewrites the payload of an existing
row by id and falls back to create when the id does not resolve. Every
write is a single statement in its own transaction, so concurrent
updates of one id are last-write-wins and never torn.
"""

from datetime import datetime, timezone
from typing import Any

import psycopg

from message_persistence.core.extraction import parse_offset_datetime
from message_persistence.core.models import (
    InboundItem,
    MessageMetadata,
    MessageSource,
    PersistenceResult,
    ReceivedMessage,
    classify_source,
)
from message_persistence.core.models.received_message import ENRICHED_STATUS, RECEIVED_STATUS
from message_persistence.observability import metrics
from message_persistence.observability.logger import get_logger
from message_persistence.utils.identifiers import generate_message_id
from message_persistence.utils.validation import (
    ValidationError,
    truncate_error_message,
    validate_message_id,
    validate_payload,
    validate_record_id,
)

from .connection import DatabaseConnectionPool
from .errors import StorageError

logger = get_logger(__name__)

STORE_NAME = "received"

INSERT_RECEIVED_MESSAGE_SQL = """
    INSERT INTO received_message (
        message_id, correlation_id, message_type, source, payload,
        file_name, line_number, processing_status,
        received_at, created_at, updated_at
    )
    VALUES (
        %(message_id)s, %(correlation_id)s, %(message_type)s, %(source)s, %(payload)s,
        %(file_name)s, %(line_number)s, %(processing_status)s,
        %(received_at)s, %(created_at)s, %(updated_at)s
    )
"""

UPDATE_RECEIVED_MESSAGE_SQL = """
    UPDATE received_message
    SET payload = %(payload)s,
        processing_status = %(processing_status)s,
        updated_at = %(now)s,
        processed_at = %(now)s
    WHERE id = %(id)s
    RETURNING id
"""

SELECT_RECEIVED_MESSAGE_SQL = """
    SELECT id, message_id, correlation_id, message_type, source, payload,
           file_name, line_number, processing_status, received_at,
           created_at, updated_at, processed_at, error_message
    FROM received_message
    WHERE id = %s
"""

MARK_FAILED_SQL = """
    UPDATE received_message
    SET processing_status = %(status)s,
        error_message = %(error_message)s,
        updated_at = %(now)s
    WHERE id = %(id)s
"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageStore:
    """
    Creates, locates and updates rows of the received_message table.

    Validation failures come back as ERROR results; only storage failures
    raise (as StorageError).
    """

    store_name = STORE_NAME

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize message store.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    # -----------------------
    # Row preparation
    # -----------------------

    def prepare(
        self,
        payload: Any,
        metadata: MessageMetadata | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Build the insert parameters for a new received message.

        Args:
            payload: Message text
            metadata: Optional identity/routing metadata
            now: Write time (defaults to the current UTC time)

        Returns:
            Parameter dict for INSERT_RECEIVED_MESSAGE_SQL

        Raises:
            ValidationError: Null/blank payload or invalid message id
        """
        metadata = metadata or MessageMetadata()
        payload = validate_payload(payload)
        now = now or utc_now()

        source = classify_source(metadata.source, metadata.endpoint)
        from_file = source is MessageSource.FILE

        return {
            "message_id": validate_message_id(metadata.message_id) or generate_message_id(),
            "correlation_id": metadata.correlation_id,
            "message_type": metadata.message_type,
            "source": source.value,
            "payload": payload,
            "file_name": metadata.file_name if from_file else None,
            "line_number": metadata.line_number if from_file else None,
            "processing_status": RECEIVED_STATUS,
            "received_at": self._receipt_time(metadata) or now,
            "created_at": now,
            "updated_at": now,
        }

    def _receipt_time(self, metadata: MessageMetadata) -> datetime | None:
        if not metadata.receipt_timestamp:
            return None
        try:
            return parse_offset_datetime(metadata.receipt_timestamp)
        except ValueError:
            logger.warning(
                f"Could not parse receipt timestamp {metadata.receipt_timestamp!r}, using current time",
                extra={"message_id": metadata.message_id},
            )
            return None

    # -----------------------
    # Writes
    # -----------------------

    def create(
        self,
        payload: Any,
        metadata: MessageMetadata | None = None,
        fallback: bool = False,
    ) -> PersistenceResult:
        """
        Persist a new received message.

        Args:
            payload: Message text
            metadata: Optional identity/routing metadata
            fallback: Set when called because an update found nothing

        Returns:
            SUCCESS result with the new id, or ERROR for a null/blank payload

        Raises:
            StorageError: If the insert fails
        """
        metadata = metadata or MessageMetadata()
        try:
            params = self.prepare(payload, metadata)
        except ValidationError as e:
            return self._reject(e, metadata)

        with metrics.track_duration(metrics.write_duration_seconds, store=STORE_NAME, operation="create"):
            row = self._execute("create", INSERT_RECEIVED_MESSAGE_SQL + " RETURNING id", params)
        record_id = row["id"]

        metrics.increment_counter(metrics.messages_persisted_total, store=STORE_NAME, operation="create")
        logger.info(
            f"Message persisted - ID: {record_id}, Source: {params['source']}, Type: {params['message_type']}",
            extra={
                "record_id": record_id,
                "message_id": params["message_id"],
                "source": params["source"],
                "message_type": params["message_type"],
            },
        )
        return PersistenceResult.created(STORE_NAME, record_id, fallback=fallback)

    def update(
        self,
        existing_id: int | None,
        payload: Any,
        status_override: str | None = None,
        metadata: MessageMetadata | None = None,
    ) -> PersistenceResult:
        """
        Replace the payload of an existing message.

        An id that is absent or matches no row is an expected condition:
        it is logged and the payload is persisted with create() instead.

        Args:
            existing_id: Id of the row to update
            payload: New message text
            status_override: Processing status to set (default "ENRICHED")
            metadata: Metadata used if the update falls back to create

        Returns:
            SUCCESS result (operation UPDATE, or CREATE with fallback=True),
            or ERROR for a null/blank payload or malformed id

        Raises:
            StorageError: If the write fails
        """
        if existing_id is None:
            return self._fall_back(None, payload, metadata)

        try:
            payload = validate_payload(payload)
            record_id = validate_record_id(existing_id, field_name="existing_id")
        except ValidationError as e:
            return self._reject(e, metadata or MessageMetadata())

        status = (status_override or "").strip() or ENRICHED_STATUS
        params = {"id": record_id, "payload": payload, "processing_status": status, "now": utc_now()}

        with metrics.track_duration(metrics.write_duration_seconds, store=STORE_NAME, operation="update"):
            row = self._execute("update", UPDATE_RECEIVED_MESSAGE_SQL, params)

        if row is None:
            return self._fall_back(record_id, payload, metadata)

        metrics.increment_counter(metrics.messages_persisted_total, store=STORE_NAME, operation="update")
        logger.info(
            f"Message updated with enriched data - ID: {record_id}, Status: {status}",
            extra={"record_id": record_id, "processing_status": status},
        )
        return PersistenceResult.updated(STORE_NAME, record_id)

    def save(
        self,
        payload: Any,
        metadata: MessageMetadata | None = None,
        existing_id: int | None = None,
        status_override: str | None = None,
        is_update: bool = False,
    ) -> PersistenceResult:
        """
        Create or update depending on whether an update was requested.
        """
        if existing_id is not None or is_update:
            return self.update(existing_id, payload, status_override=status_override, metadata=metadata)
        return self.create(payload, metadata)

    def save_item(self, item: InboundItem) -> PersistenceResult:
        return self.save(
            item.payload,
            item.metadata,
            existing_id=item.existing_id,
            status_override=item.status_override,
            is_update=item.is_update,
        )

    def mark_failed(self, record_id: int, error_message: str, status: str = "FAILED") -> bool:
        """
        Record a processing error against a stored message.

        Returns:
            True if a row was updated
        """
        params = {
            "id": validate_record_id(record_id),
            "status": status,
            "error_message": truncate_error_message(error_message),
            "now": utc_now(),
        }
        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(MARK_FAILED_SQL, params)
                    return cur.rowcount > 0
        except psycopg.Error as e:
            raise self._storage_error("mark_failed", e) from e

    # -----------------------
    # Reads
    # -----------------------

    def get(self, record_id: int) -> ReceivedMessage | None:
        """Load a stored message by id, or None."""
        try:
            rows = self.pool.execute_query(SELECT_RECEIVED_MESSAGE_SQL, (validate_record_id(record_id),))
        except psycopg.Error as e:
            raise self._storage_error("get", e) from e
        return ReceivedMessage.from_row(rows[0]) if rows else None

    # -----------------------
    # Internals
    # -----------------------

    def _execute(self, operation: str, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return cur.fetchone()
        except psycopg.Error as e:
            raise self._storage_error(operation, e) from e

    def _fall_back(
        self,
        existing_id: int | None,
        payload: Any,
        metadata: MessageMetadata | None,
    ) -> PersistenceResult:
        if existing_id is None:
            logger.warning("No existing message ID for enriched data persistence - creating new record")
        else:
            logger.warning(
                f"Existing message with ID {existing_id} not found - creating new record",
                extra={"record_id": existing_id},
            )
        metrics.increment_counter(metrics.lookup_misses_total, store=STORE_NAME)
        return self.create(payload, metadata, fallback=True)

    def _reject(self, error: ValidationError, metadata: MessageMetadata) -> PersistenceResult:
        logger.warning(f"Message rejected: {error}", extra={"message_id": metadata.message_id})
        metrics.increment_counter(metrics.persistence_errors_total, store=STORE_NAME, error_type="validation")
        return PersistenceResult.rejected(STORE_NAME, str(error))

    def _storage_error(self, operation: str, error: psycopg.Error) -> StorageError:
        logger.error(f"Error persisting message ({operation}): {error}", exc_info=True)
        metrics.increment_counter(metrics.persistence_errors_total, store=STORE_NAME, error_type="storage")
        return StorageError(STORE_NAME, operation, str(error))
