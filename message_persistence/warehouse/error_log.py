"""
Error log for messages that failed processing.

Rows in message_errors are diagnostic only: writing one must never turn
a handled failure into a new one, so record() logs its own storage
problems instead of raising them.
"""

import traceback
from typing import Any

import psycopg

from message_persistence.core.models import MessageErrorRecord
from message_persistence.observability.logger import get_logger
from message_persistence.utils.validation import validate_message_id

from .connection import DatabaseConnectionPool
from .errors import StorageError

logger = get_logger(__name__)

STORE_NAME = "errors"

INSERT_MESSAGE_ERROR_SQL = """
    INSERT INTO message_errors (
        message_id, error_route, error_message, message_body, error_timestamp
    ) VALUES (
        %(message_id)s, %(error_route)s, %(error_message)s, %(message_body)s, %(error_timestamp)s
    ) RETURNING id, created_at;
"""

SELECT_MESSAGE_ERRORS_SQL = """
    SELECT id, message_id, error_route, error_message, message_body,
           error_timestamp, created_at
    FROM message_errors
    WHERE message_id = %s
    ORDER BY error_timestamp DESC, id DESC
"""


def format_error(error: BaseException | str) -> str:
    """
    Render an error as "<ExceptionType>: <message>", followed by the
    traceback when the exception carries one.
    """
    if isinstance(error, BaseException):
        text = f"{type(error).__name__}: {error}"
        if error.__traceback__ is not None:
            text += "\n" + "".join(traceback.format_tb(error.__traceback__))
        return text
    return str(error)


class MessageErrorLog:
    """Writes and reads rows of the message_errors table."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def record(
        self,
        message_id: str | None,
        error_route: str | None,
        error: BaseException | str,
        message_body: Any = None,
    ) -> int | None:
        """
        Record a processing failure.

        Args:
            message_id: Business message id, if known
            error_route: Step or component where the failure happened
            error: The exception (or an error message)
            message_body: Payload that failed

        Returns:
            Id of the new row, or None if it could not be written
        """
        if isinstance(message_body, (bytes, bytearray)):
            message_body = bytes(message_body).decode("utf-8", errors="replace")
        elif message_body is not None and not isinstance(message_body, str):
            message_body = str(message_body)

        try:
            entry = MessageErrorRecord(
                message_id=validate_message_id(message_id),
                error_route=error_route[:100] if error_route else None,
                error_message=format_error(error),
                message_body=message_body,
            )
        except ValueError as e:
            logger.error(f"Could not build error log entry: {e}")
            return None

        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(INSERT_MESSAGE_ERROR_SQL, entry.model_dump(exclude={"id", "created_at"}))
                    row = cur.fetchone()
        except psycopg.Error as e:
            logger.error(
                f"Failed to write error log entry: {e}",
                exc_info=True,
                extra={"message_id": entry.message_id, "error_route": error_route},
            )
            return None

        logger.debug(
            f"Error logged for message {entry.message_id} at {error_route}",
            extra={"message_id": entry.message_id, "error_route": error_route},
        )
        return row["id"]

    def for_message(self, message_id: str) -> list[MessageErrorRecord]:
        """
        All recorded failures for a message, newest first.

        Raises:
            StorageError: If the query fails
        """
        try:
            rows = self.pool.execute_query(SELECT_MESSAGE_ERRORS_SQL, (message_id,))
        except psycopg.Error as e:
            logger.error(f"Failed to read error log: {e}", exc_info=True)
            raise StorageError(STORE_NAME, "for_message", str(e)) from e
        return [MessageErrorRecord.model_validate(row) for row in rows]
