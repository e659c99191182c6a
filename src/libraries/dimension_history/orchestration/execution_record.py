"""
Batch execution record and its lifecycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from ..common.config import ProcessingMode
from ..common.exceptions import InvalidStateTransitionError
from ..common.utils import utc_now

logger = logging.getLogger(__name__)


class BatchStatus(Enum):
    """Overall status of a batch."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    PARTIALLY_FAILED = "PARTIALLY_FAILED"
    FAILED = "FAILED"


class LoadStatus(Enum):
    """Status of one dimension load or fact stage."""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    BLOCKED = "BLOCKED"


TERMINAL_BATCH_STATES = {BatchStatus.SUCCEEDED, BatchStatus.PARTIALLY_FAILED, BatchStatus.FAILED}

_ALLOWED_TRANSITIONS = {
    BatchStatus.PENDING: {BatchStatus.RUNNING, BatchStatus.FAILED},
    BatchStatus.RUNNING: TERMINAL_BATCH_STATES,
}


@dataclass
class EntityLoadResult:
    """Outcome of one dimension load or fact stage."""

    entity_type: str
    status: LoadStatus = LoadStatus.PENDING
    rows_inserted: int = 0
    rows_updated: int = 0
    rows_rejected: int = 0
    rows_unchanged: int = 0
    attempts: int = 0
    error_detail: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == LoadStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "entity_type": self.entity_type,
            "status": self.status.value,
            "rows_inserted": self.rows_inserted,
            "rows_updated": self.rows_updated,
            "rows_rejected": self.rows_rejected,
            "rows_unchanged": self.rows_unchanged,
            "attempts": self.attempts,
            "error_detail": self.error_detail,
            "error_code": self.error_code,
            "started_at": self.started_at,
            "ended_at": self.ended_at
        }


@dataclass
class BatchExecutionRecord:
    """
    In-memory record of one batch run.

    Created PENDING, moved to RUNNING when the batch starts and finalised
    to SUCCEEDED, PARTIALLY_FAILED or FAILED. A finalised record cannot be
    changed.
    """

    batch_id: str
    mode: ProcessingMode
    processing_ts: Optional[datetime] = None
    status: BatchStatus = BatchStatus.PENDING
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_detail: Optional[str] = None
    results: Dict[str, EntityLoadResult] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BATCH_STATES

    def _transition(self, new_status: BatchStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransitionError(
                f"Batch {self.batch_id} cannot move from {self.status.value} to {new_status.value}",
                self.status.value,
                new_status.value
            )
        logger.info(f"Batch {self.batch_id}: {self.status.value} -> {new_status.value}")
        self.status = new_status

    def _require_mutable(self) -> None:
        if self.is_terminal:
            raise InvalidStateTransitionError(
                f"Batch {self.batch_id} is already {self.status.value}",
                self.status.value
            )

    def start(self, processing_ts: datetime) -> None:
        """Move the record to RUNNING."""
        self._transition(BatchStatus.RUNNING)
        self.processing_ts = processing_ts
        self.started_at = utc_now()

    def record_result(self, result: EntityLoadResult) -> None:
        """Store the outcome of one load, replacing any earlier outcome for it."""
        self._require_mutable()
        self.results[result.entity_type] = result

    def get_result(self, entity_type: str) -> Optional[EntityLoadResult]:
        return self.results.get(entity_type)

    def statuses(self) -> Dict[str, LoadStatus]:
        return {name: result.status for name, result in self.results.items()}

    def finalize(self, error_detail: str = None) -> BatchStatus:
        """
        Derive and set the terminal status from the recorded results.

        An error_detail marks a batch-level failure and forces FAILED.

        Returns:
            The terminal batch status
        """
        self._require_mutable()
        statuses = [result.status for result in self.results.values()]
        problems = [s for s in statuses if s in (LoadStatus.FAILED, LoadStatus.BLOCKED)]

        if error_detail is not None:
            final_status = BatchStatus.FAILED
            self.error_detail = error_detail
        elif not problems:
            final_status = BatchStatus.SUCCEEDED
        elif LoadStatus.SUCCEEDED not in statuses:
            final_status = BatchStatus.FAILED
        else:
            final_status = BatchStatus.PARTIALLY_FAILED

        if self.status == BatchStatus.PENDING:
            # Aborted before any load ran
            final_status = BatchStatus.FAILED

        self.ended_at = utc_now()
        self._transition(final_status)
        return final_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary."""
        return {
            "batch_id": self.batch_id,
            "mode": self.mode.value,
            "processing_ts": self.processing_ts,
            "status": self.status.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "error_detail": self.error_detail,
            "results": {name: result.to_dict() for name, result in self.results.items()}
        }

    def _row(self, result: Optional[EntityLoadResult]) -> Dict[str, Any]:
        header = {
            "batch_id": self.batch_id,
            "mode": self.mode.value,
            "processing_ts": self.processing_ts,
            "batch_status": self.status.value,
            "batch_started_at": self.started_at,
            "batch_ended_at": self.ended_at,
            "batch_error_detail": self.error_detail
        }
        if result is None:
            return dict(header, entity_type=None, status=None, rows_inserted=0, rows_updated=0,
                        rows_rejected=0, rows_unchanged=0, attempts=0, error_detail=None,
                        error_code=None, started_at=None, ended_at=None)
        return dict(header, **result.to_dict())

    def progress_row(self, result: EntityLoadResult = None) -> Dict[str, Any]:
        """
        Execution log row written while the batch runs.

        Args:
            result: Load that just completed, or None for the batch start row

        Returns:
            Row carrying the current batch header
        """
        return self._row(result)

    def summary_rows(self) -> List[Dict[str, Any]]:
        """One flat row per load, as written to the execution log."""
        if not self.results:
            return [self._row(None)]
        return [self._row(result) for result in self.results.values()]
