"""
Grouped, retried bulk writes to the document store.

Enhanced with:
- Atomic groups bounded by the provider batch limit
- Retry with linearly increasing backoff (tenacity)
- Multi-operation units (delete + set renames) that are never split
- Structured logging and write counters
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from travel_enrichment.document_store import WriteOp
from travel_enrichment.errors import PersistenceError, RetryExhausted
from travel_enrichment.logging_config import get_logger, metrics

logger = get_logger("bulk_writer")

# Firestore rejects batches larger than this
MAX_GROUP_SIZE = 500

WriteUnit = Union[WriteOp, Tuple[WriteOp, ...]]


@dataclass(frozen=True)
class BulkWriteResult:
    """Outcome of a bulk write: operations committed / not committed."""

    succeeded: int
    failed: int = 0
    error: Optional[RetryExhausted] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the stored RetryExhausted, if any."""
        if self.error is not None:
            raise self.error


def rename_unit(old_path: str, new_path: str, data: dict) -> Tuple[WriteOp, WriteOp]:
    """Delete-then-set pair moving a document to a new key atomically."""
    return (WriteOp.delete(old_path), WriteOp.set(new_path, data))


def partition(units: Iterable[WriteUnit], group_size: int) -> List[List[WriteOp]]:
    """
    Split write units into groups of at most group_size operations,
    keeping every multi-operation unit inside a single group.

    Raises:
        ValueError: If a single unit exceeds group_size
    """
    groups: List[List[WriteOp]] = []
    current: List[WriteOp] = []
    for unit in units:
        ops = [unit] if isinstance(unit, WriteOp) else list(unit)
        if len(ops) > group_size:
            raise ValueError(f"Write unit of {len(ops)} operations exceeds group size {group_size}")
        if len(current) + len(ops) > group_size:
            groups.append(current)
            current = []
        current.extend(ops)
    if current:
        groups.append(current)
    return groups


class BulkWriter:
    """
    Commits write units to a DocumentStore in sequential atomic groups.

    A failed group is retried up to max_attempts times, sleeping
    attempt * 1s between tries. Groups committed before an exhausted
    group stay committed.
    """

    def __init__(
        self,
        store,
        group_size: int = MAX_GROUP_SIZE,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not 0 < group_size <= MAX_GROUP_SIZE:
            raise ValueError(f"group_size must be between 1 and {MAX_GROUP_SIZE}")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.group_size = group_size
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _commit_group(self, ops: Sequence[WriteOp], group_index: int) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=1, increment=1),
            retry=retry_if_exception_type(PersistenceError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                logger.debug(
                    f"Committing group {group_index}",
                    extra={
                        "group": group_index,
                        "attempt": attempt.retry_state.attempt_number,
                        "op_count": len(ops),
                    }
                )
                self.store.commit(ops)

    def commit_all(self, units: Iterable[WriteUnit]) -> BulkWriteResult:
        """
        Commit all write units.

        Args:
            units: WriteOps, or tuples of WriteOps that must share a group

        Returns:
            BulkWriteResult with succeeded/failed operation counts and the
            RetryExhausted error when a group could not be committed
        """
        groups = partition(units, self.group_size)
        total = sum(len(group) for group in groups)
        succeeded = 0

        for index, group in enumerate(groups):
            try:
                self._commit_group(group, index)
            except PersistenceError as e:
                metrics.record_error("bulk_write_exhausted")
                logger.error(
                    f"Group {index} failed after {self.max_attempts} attempts: {e}",
                    extra={
                        "group": index,
                        "committed_count": succeeded,
                        "failed_count": total - succeeded,
                    }
                )
                return BulkWriteResult(
                    succeeded=succeeded,
                    failed=total - succeeded,
                    error=RetryExhausted(self.max_attempts, e),
                )
            succeeded += len(group)
            metrics.increment("documents_written", len(group))

        logger.info(
            f"Bulk write committed {succeeded} operations in {len(groups)} groups",
            extra={"committed_count": succeeded, "group_count": len(groups)}
        )
        return BulkWriteResult(succeeded=succeeded)
