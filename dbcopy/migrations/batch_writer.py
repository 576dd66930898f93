"""
Batch Writer
Full-replace writes into a target collection
"""
import logging
from typing import Dict, Optional, Set

from ..exceptions import WriteFailure
from ..monitoring.metrics import MetricsCollector, OperationType
from .page_reader import Batch

logger = logging.getLogger(__name__)

class BatchWriter:
    """
    Replaces the contents of a job's target collection

    ``prepare`` clears the target exactly once per job; ``write_batch``
    then appends pages in order. Any store error becomes a WriteFailure.
    """

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics_collector = metrics_collector
        self._prepared: Set[str] = set()
        # Records the target accepted fewer of than were sent, per job
        self.discrepancies: Dict[str, int] = {}

    async def prepare(self, job) -> int:
        """Clear the target collection; returns the number of records removed"""
        if job.name in self._prepared:
            raise RuntimeError(f"Target for '{job.name}' was already prepared")

        operation = self._start(f"clear:{job.name}", f"clear {job.name}", OperationType.CLEAR)
        try:
            deleted = await job.target.clear()
        except Exception as e:
            self._end(operation, 0, False, str(e))
            raise WriteFailure(job, None, e) from e

        self._end(operation, deleted or 0, True)
        self._prepared.add(job.name)
        self.discrepancies[job.name] = 0
        logger.info(f"Cleared target collection {job.name} ({deleted or 0:,} records removed)")
        return deleted or 0

    async def write_batch(self, job, batch: Batch) -> int:
        """Insert every record of ``batch``; returns the number the target reports as inserted"""
        if job.name not in self._prepared:
            raise RuntimeError(f"Target for '{job.name}' must be prepared before writing")
        if batch.is_empty:
            return 0

        operation = self._start(f"write:{job.name}:{batch.number}", f"write {job.name}", OperationType.WRITE)
        try:
            inserted = await job.target.insert_many(batch.records)
        except Exception as e:
            self._end(operation, 0, False, str(e))
            raise WriteFailure(job, batch, e) from e

        self._end(operation, inserted, True)

        if inserted < len(batch):
            missing = len(batch) - inserted
            self.discrepancies[job.name] += missing
            logger.warning(f"⚠️ Target {job.name} reported {inserted:,} of {len(batch):,} records inserted "
                           f"for batch {batch.number} ({missing:,} unaccounted)")
        else:
            logger.debug(f"Wrote batch {batch.number} to {job.name}: {inserted:,} records")

        return inserted

    def finish(self, job):
        """Forget a finished job so the writer can be reused for a later run"""
        self._prepared.discard(job.name)

    def _start(self, operation_id: str, name: str, operation_type: OperationType):
        if not self.metrics_collector:
            return None
        return self.metrics_collector.start_operation(operation_id, name, operation_type)

    def _end(self, operation, documents: int, success: bool, error: Optional[str] = None):
        if operation:
            self.metrics_collector.end_operation(operation, documents, success, error)
