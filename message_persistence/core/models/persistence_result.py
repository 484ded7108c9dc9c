"""
Result descriptors returned to the router: PersistenceResult for single
writes, BatchOutcome for batches.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

SUCCESS = "SUCCESS"
ERROR = "ERROR"
PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
FAILED = "FAILED"


class PersistenceResult(BaseModel):
    """
    Outcome of one single-item write (ephemeral).

    Attributes:
        status: SUCCESS, or ERROR for a locally recovered validation failure
        store: Which store handled the write ("received" or "cdm")
        record_id: Assigned or resolved record id
        operation: CREATE or UPDATE (what actually happened)
        fallback: True when an update found no record and a create was done instead
        error: Error message for ERROR results
    """

    status: Literal["SUCCESS", "ERROR"]
    store: str
    record_id: int | None = None
    operation: Literal["CREATE", "UPDATE"] | None = None
    fallback: bool = False
    error: str | None = None

    @classmethod
    def created(cls, store: str, record_id: int, fallback: bool = False) -> "PersistenceResult":
        return cls(status=SUCCESS, store=store, record_id=record_id, operation="CREATE", fallback=fallback)

    @classmethod
    def updated(cls, store: str, record_id: int) -> "PersistenceResult":
        return cls(status=SUCCESS, store=store, record_id=record_id, operation="UPDATE")

    @classmethod
    def rejected(cls, store: str, error: str) -> "PersistenceResult":
        return cls(status=ERROR, store=store, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS

    def as_headers(self) -> dict[str, Any]:
        """Render the result as the header map the router branches on."""
        headers: dict[str, Any] = {"persistenceStatus": self.status}
        if self.record_id is not None:
            key = "persistedCdmId" if self.store == "cdm" else "persistedMessageId"
            headers[key] = self.record_id
        if self.operation is not None:
            headers["persistenceOperation"] = self.operation
        if self.error:
            headers["persistenceError"] = self.error
        return headers


class BatchItemError(BaseModel):
    """A failed batch item: its 0-based position in the input and why it failed."""

    index: int = Field(..., ge=0)
    error: str


class BatchOutcome(BaseModel):
    """
    Aggregate result of a batch write (ephemeral).

    Attributes:
        mode: "per_item" or "bulk"
        total: Number of items in the batch
        success_count: Items persisted
        failure_count: Items not persisted
        per_item_errors: Failures in input order
        record_ids: Ids of persisted rows, when the mode reports them
        overall_status: SUCCESS, PARTIAL_SUCCESS or FAILED
    """

    mode: str
    total: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    failure_count: int = Field(..., ge=0)
    per_item_errors: list[BatchItemError] = Field(default_factory=list)
    record_ids: list[int] = Field(default_factory=list)
    overall_status: Literal["SUCCESS", "PARTIAL_SUCCESS", "FAILED"]

    @model_validator(mode="after")
    def check_counts(self):
        if self.success_count + self.failure_count != self.total:
            raise ValueError(
                f"success_count ({self.success_count}) + failure_count "
                f"({self.failure_count}) must equal total ({self.total})"
            )
        return self

    @classmethod
    def from_counts(
        cls,
        mode: str,
        total: int,
        success_count: int,
        errors: list[BatchItemError],
        record_ids: list[int] | None = None,
    ) -> "BatchOutcome":
        """
        Build an outcome and derive its overall status.

        No success out of at least one item is FAILED, no failure is
        SUCCESS, anything else PARTIAL_SUCCESS. An empty batch is SUCCESS.
        """
        failure_count = total - success_count
        if total > 0 and success_count == 0:
            status = FAILED
        elif failure_count == 0:
            status = SUCCESS
        else:
            status = PARTIAL_SUCCESS

        return cls(
            mode=mode,
            total=total,
            success_count=success_count,
            failure_count=failure_count,
            per_item_errors=errors,
            record_ids=record_ids or [],
            overall_status=status,
        )

    @property
    def is_total_failure(self) -> bool:
        return self.overall_status == FAILED

    def summary(self) -> str:
        return (
            f"{self.overall_status}: {self.success_count} succeeded, "
            f"{self.failure_count} failed, {self.total} total"
        )

    def as_headers(self) -> dict[str, Any]:
        headers: dict[str, Any] = {
            "persistenceStatus": self.overall_status,
            "batchSize": self.total,
            "batchProcessedCount": self.success_count,
            "batchErrorCount": self.failure_count,
        }
        if self.failure_count:
            headers["persistenceError"] = (
                f"Batch processing completed with {self.failure_count} failures "
                f"out of {self.total} messages"
            )
        return headers

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "per_item",
                "total": 5,
                "success_count": 4,
                "failure_count": 1,
                "per_item_errors": [{"index": 2, "error": "Empty message body"}],
                "record_ids": [101, 102, 103, 104],
                "overall_status": "PARTIAL_SUCCESS"
            }
        }
