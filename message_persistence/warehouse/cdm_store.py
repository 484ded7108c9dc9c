"""
Lifecycle management for enriched (CDM) message representations.

A CDM row is created once per transformation event. A later revision of
the same logical message updates the row found by explicit id, or else
the most recent row sharing its message id. Fields are extracted from
the payload on every write; extraction problems never fail the write.
"""

from datetime import datetime, timezone
from typing import Any

import psycopg

from message_persistence.core.extraction import PartialFields, extract_fields
from message_persistence.core.models import (
    CdmMessage,
    InboundItem,
    MessageMetadata,
    PersistenceResult,
    classify_source,
)
from message_persistence.core.models.cdm_message import (
    ENRICHED,
    PENDING_ENRICHMENT,
    PROCESSED_STATUS,
)
from message_persistence.observability import metrics
from message_persistence.observability.logger import get_logger
from message_persistence.utils.identifiers import generate_message_id
from message_persistence.utils.validation import (
    ValidationError,
    validate_message_id,
    validate_payload,
    validate_record_id,
)

from .connection import DatabaseConnectionPool
from .errors import StorageError

logger = get_logger(__name__)

STORE_NAME = "cdm"

CDM_COLUMNS = """
    id, message_id, original_message_id, message_type, source,
    enrichment_status, creation_date_time, number_of_transactions,
    processing_status, processed_at, error_message, cdm_payload,
    original_payload, original_received_message_id, created_at, updated_at
"""

INSERT_CDM_MESSAGE_SQL = """
    INSERT INTO cdm_message (
        message_id, original_message_id, message_type, source,
        cdm_payload, original_payload, original_received_message_id,
        enrichment_status, creation_date_time, number_of_transactions,
        processing_status, processed_at, created_at, updated_at
    )
    VALUES (
        %(message_id)s, %(original_message_id)s, %(message_type)s, %(source)s,
        %(cdm_payload)s, %(original_payload)s, %(original_received_message_id)s,
        %(enrichment_status)s, %(creation_date_time)s, %(number_of_transactions)s,
        %(processing_status)s, %(now)s, %(now)s, %(now)s
    )
    RETURNING id
"""

# Extracted fields only replace stored values when present
UPDATE_CDM_MESSAGE_SQL = """
    UPDATE cdm_message
    SET cdm_payload = %(cdm_payload)s,
        enrichment_status = %(enrichment_status)s,
        processing_status = %(processing_status)s,
        creation_date_time = COALESCE(%(creation_date_time)s::timestamptz, creation_date_time),
        number_of_transactions = COALESCE(%(number_of_transactions)s::integer, number_of_transactions),
        updated_at = %(now)s,
        processed_at = %(now)s
    WHERE id = %(id)s
    RETURNING id
"""

SELECT_CDM_BY_ID_SQL = f"SELECT {CDM_COLUMNS} FROM cdm_message WHERE id = %s"

SELECT_LATEST_CDM_BY_MESSAGE_ID_SQL = f"""
    SELECT {CDM_COLUMNS}
    FROM cdm_message
    WHERE message_id = %s
    ORDER BY created_at DESC, id DESC
    LIMIT 1
"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CdmStore:
    """
    Creates, resolves and updates rows of the cdm_message table.
    """

    store_name = STORE_NAME

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize CDM store.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def create(
        self,
        cdm_payload: Any,
        metadata: MessageMetadata | None = None,
        fallback: bool = False,
    ) -> PersistenceResult:
        """
        Persist a new CDM message.

        enrichment_status is the caller's explicit value, else the value
        extracted from the payload, else PENDING.

        Args:
            cdm_payload: Transformed payload
            metadata: Optional identity/routing metadata
            fallback: Set when called because an update found nothing

        Returns:
            SUCCESS result with the new id, or ERROR for a null/blank payload

        Raises:
            StorageError: If the insert fails
        """
        metadata = metadata or MessageMetadata()
        try:
            payload = validate_payload(cdm_payload, field_name="cdm_payload")
            fields = extract_fields(payload)
            message_id = (
                validate_message_id(metadata.message_id)
                or validate_message_id(fields.message_id)
                or generate_message_id()
            )
        except ValidationError as e:
            return self._reject(e, metadata)

        params = {
            "message_id": message_id,
            "original_message_id": metadata.original_message_id or message_id,
            "message_type": metadata.message_type,
            "source": classify_source(metadata.source, metadata.endpoint).value,
            "cdm_payload": payload,
            "original_payload": metadata.original_payload,
            "original_received_message_id": metadata.original_received_message_id,
            "enrichment_status": (
                metadata.enrichment_status
                or self._inferred_enrichment(fields, message_id)
                or PENDING_ENRICHMENT
            ),
            "creation_date_time": fields.creation_date_time,
            "number_of_transactions": fields.number_of_transactions,
            "processing_status": fields.processing_status or PROCESSED_STATUS,
            "now": utc_now(),
        }

        with metrics.track_duration(metrics.write_duration_seconds, store=STORE_NAME, operation="create"):
            row = self._execute("create", INSERT_CDM_MESSAGE_SQL, params)
        record_id = row["id"]

        metrics.increment_counter(metrics.messages_persisted_total, store=STORE_NAME, operation="create")
        logger.info(
            f"CDM message persisted - ID: {record_id}, MessageId: {message_id}, Type: {params['message_type']}",
            extra={
                "record_id": record_id,
                "message_id": message_id,
                "enrichment_status": params["enrichment_status"],
            },
        )
        return PersistenceResult.created(STORE_NAME, record_id, fallback=fallback)

    def find_for_update(
        self,
        existing_id: int | None = None,
        message_id: str | None = None,
    ) -> CdmMessage | None:
        """
        Resolve the record a revision applies to.

        Resolution order: direct id lookup, then the most recently created
        record with the same message_id, then no match.

        Raises:
            ValidationError: Malformed existing_id
            StorageError: If a lookup fails
        """
        if existing_id is not None:
            record = self.get(existing_id)
            if record is not None:
                return record
            logger.warning(
                f"No CDM message with ID {existing_id}, trying message id",
                extra={"record_id": existing_id, "message_id": message_id},
            )

        message_id = validate_message_id(message_id)
        if message_id is not None:
            return self.latest_for_message(message_id)
        return None

    def update(
        self,
        record: CdmMessage,
        cdm_payload: Any,
        metadata: MessageMetadata | None = None,
    ) -> PersistenceResult:
        """
        Overwrite a resolved record with a revised payload.

        enrichment_status becomes the caller's explicit value, else
        ENRICHED, whatever the payload says.

        Returns:
            SUCCESS result (UPDATE, or CREATE with fallback=True if the
            record vanished), or ERROR for a null/blank payload

        Raises:
            StorageError: If the write fails
        """
        metadata = metadata or MessageMetadata()
        try:
            payload = validate_payload(cdm_payload, field_name="cdm_payload")
        except ValidationError as e:
            return self._reject(e, metadata)

        fields = extract_fields(payload)
        params = {
            "id": record.id,
            "cdm_payload": payload,
            "enrichment_status": metadata.enrichment_status or ENRICHED,
            "processing_status": fields.processing_status or PROCESSED_STATUS,
            "creation_date_time": fields.creation_date_time,
            "number_of_transactions": fields.number_of_transactions,
            "now": utc_now(),
        }

        with metrics.track_duration(metrics.write_duration_seconds, store=STORE_NAME, operation="update"):
            row = self._execute("update", UPDATE_CDM_MESSAGE_SQL, params)

        if row is None:
            logger.warning(
                f"CDM message {record.id} disappeared before update - creating new record",
                extra={"record_id": record.id, "message_id": record.message_id},
            )
            metrics.increment_counter(metrics.lookup_misses_total, store=STORE_NAME)
            return self.create(payload, self._metadata_for_recreate(record, metadata), fallback=True)

        metrics.increment_counter(metrics.messages_persisted_total, store=STORE_NAME, operation="update")
        logger.info(
            f"CDM message updated - ID: {record.id}, MessageId: {record.message_id}",
            extra={
                "record_id": record.id,
                "message_id": record.message_id,
                "enrichment_status": params["enrichment_status"],
            },
        )
        return PersistenceResult.updated(STORE_NAME, record.id)

    def save(
        self,
        cdm_payload: Any,
        metadata: MessageMetadata | None = None,
        existing_id: int | None = None,
        is_update: bool = False,
    ) -> PersistenceResult:
        """
        Create, or update the resolved record when an update is requested.

        An update that resolves nothing creates a new record.
        """
        metadata = metadata or MessageMetadata()
        if existing_id is None and not is_update:
            return self.create(cdm_payload, metadata)

        try:
            validate_payload(cdm_payload, field_name="cdm_payload")
            message_id = metadata.message_id or extract_fields(cdm_payload).message_id
            record = self.find_for_update(existing_id, message_id)
        except ValidationError as e:
            return self._reject(e, metadata)

        if record is None:
            logger.warning(
                "No existing CDM message found for update - creating new record",
                extra={"record_id": existing_id, "message_id": message_id},
            )
            metrics.increment_counter(metrics.lookup_misses_total, store=STORE_NAME)
            return self.create(cdm_payload, metadata, fallback=True)

        return self.update(record, cdm_payload, metadata)

    def save_item(self, item: InboundItem) -> PersistenceResult:
        return self.save(
            item.payload,
            item.metadata,
            existing_id=item.existing_id,
            is_update=item.is_update,
        )

    def get(self, record_id: int) -> CdmMessage | None:
        """Load a CDM message by id, or None."""
        rows = self._query("get", SELECT_CDM_BY_ID_SQL, (validate_record_id(record_id),))
        return CdmMessage.from_row(rows[0]) if rows else None

    def latest_for_message(self, message_id: str) -> CdmMessage | None:
        """Most recently created CDM message for a message id, or None."""
        rows = self._query("find", SELECT_LATEST_CDM_BY_MESSAGE_ID_SQL, (message_id,))
        return CdmMessage.from_row(rows[0]) if rows else None

    def _inferred_enrichment(self, fields: PartialFields, message_id: str) -> str | None:
        status = fields.enrichment_status
        if status == "FAILED":
            # FAILED must come from the caller, not from the payload
            logger.warning(
                "Ignoring FAILED enrichment status found in payload",
                extra={"message_id": message_id},
            )
            return None
        return status

    def _metadata_for_recreate(self, record: CdmMessage, metadata: MessageMetadata) -> MessageMetadata:
        updates = {
            "message_id": metadata.message_id or record.message_id,
            "original_message_id": metadata.original_message_id or record.original_message_id,
            "message_type": metadata.message_type or record.message_type,
            "source": metadata.source or record.source.value,
            "enrichment_status": metadata.enrichment_status or ENRICHED,
        }
        return metadata.model_copy(update=updates)

    def _execute(self, operation: str, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return cur.fetchone()
        except psycopg.Error as e:
            raise self._storage_error(operation, e) from e

    def _query(self, operation: str, sql: str, params: tuple) -> list[dict[str, Any]]:
        try:
            return self.pool.execute_query(sql, params)
        except psycopg.Error as e:
            raise self._storage_error(operation, e) from e

    def _reject(self, error: ValidationError, metadata: MessageMetadata) -> PersistenceResult:
        logger.warning(f"CDM message rejected: {error}", extra={"message_id": metadata.message_id})
        metrics.increment_counter(metrics.persistence_errors_total, store=STORE_NAME, error_type="validation")
        return PersistenceResult.rejected(STORE_NAME, str(error))

    def _storage_error(self, operation: str, error: psycopg.Error) -> StorageError:
        logger.error(f"Error persisting CDM message ({operation}): {error}", exc_info=True)
        metrics.increment_counter(metrics.persistence_errors_total, store=STORE_NAME, error_type="storage")
        return StorageError(STORE_NAME, operation, str(error))
