"""
Page Reader
Offset-based paginated reads from a source collection
"""
import logging
from typing import List, Dict, Any, Optional, AsyncIterator
from dataclasses import dataclass, field

from ..core.database import estimate_record_size
from ..exceptions import ReadFailure
from ..monitoring.metrics import MetricsCollector, OperationType

logger = logging.getLogger(__name__)

@dataclass
class Batch:
    """One page of records, in source order"""
    records: List[Dict[str, Any]]
    offset: int
    number: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def estimated_bytes(self) -> int:
        """Best-effort serialized size of the batch"""
        return sum(estimate_record_size(record) for record in self.records)


class PageReader:
    """
    Reads a job's source collection in fixed-size pages

    Pages come back in the source's stable order; an empty page means the
    collection has been drained.
    """

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics_collector = metrics_collector

    async def read(self, job, offset: int, limit: int, number: int = 0) -> Batch:
        """Read up to ``limit`` records starting at ``offset``"""
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        operation = None
        if self.metrics_collector:
            operation = self.metrics_collector.start_operation(
                f"read:{job.name}:{offset}", f"read {job.name}", OperationType.READ)

        try:
            records = list(await job.source.read(offset, limit))
        except Exception as e:
            if operation:
                self.metrics_collector.end_operation(operation, 0, False, str(e))
            raise ReadFailure(job.name, offset, limit, e) from e

        if operation:
            self.metrics_collector.end_operation(operation, len(records), True)

        logger.debug(f"Read {len(records)} records from {job.name} at offset {offset}")
        return Batch(records=records, offset=offset, number=number)

    async def pages(self, job, page_size: int) -> AsyncIterator[Batch]:
        """Yield every page from offset 0 until the source returns an empty page

        The offset advances by the records actually read. A short page is the
        final one, so no further read is issued after it.
        """
        offset = 0
        number = 1
        while True:
            batch = await self.read(job, offset, page_size, number=number)
            if batch.is_empty:
                return
            yield batch
            if len(batch) < page_size:
                return
            offset += len(batch)
            number += 1
