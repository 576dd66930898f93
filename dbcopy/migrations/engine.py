"""
Transfer Engine
Sequential, memory-bounded copy of whole collections with per-collection failure isolation
"""
import functools
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..config.manager import CopyConfig
from ..core.database import CollectionHandle
from ..exceptions import CancellationRequested, NothingToTransfer, ReadFailure
from ..monitoring.metrics import MetricsCollector
from ..monitoring.progress import ProgressSink, ProgressTracker
from .batch_writer import BatchWriter
from .memory_budget import MemoryBudgetEstimator, measure_available_memory
from .page_reader import PageReader

logger = logging.getLogger(__name__)

class JobState(Enum):
    """Lifecycle of a collection job"""
    PENDING = "pending"
    PREPARING = "preparing"
    COPYING = "copying"
    COMPLETED = "completed"
    FAILED = "failed"

_TRANSITIONS = {
    JobState.PENDING: {JobState.PREPARING, JobState.FAILED},
    JobState.PREPARING: {JobState.COPYING, JobState.FAILED},
    JobState.COPYING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}

@dataclass(frozen=True)
class CollectionJob:
    """One collection to copy from ``source`` to ``target``

    ``estimated_total_records`` is None when the source has not been counted
    yet; the engine counts it when the job starts.
    """
    name: str
    source: CollectionHandle
    target: CollectionHandle
    estimated_total_records: Optional[int] = 0

    def __post_init__(self):
        if self.estimated_total_records is not None and self.estimated_total_records < 0:
            raise ValueError(f"estimated_total_records must be >= 0, got {self.estimated_total_records}")

@dataclass
class JobResult:
    """Terminal report for one job"""
    name: str
    state: JobState = JobState.PENDING
    processed: int = 0
    total: int = 0
    bytes_transferred: int = 0
    batches: int = 0
    page_size: int = 0
    elapsed: float = 0.0
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "processed": self.processed,
            "total": self.total,
            "bytes_transferred": self.bytes_transferred,
            "batches": self.batches,
            "page_size": self.page_size,
            "elapsed_seconds": self.elapsed,
            "error": str(self.error) if self.error else None,
        }

@dataclass
class RunSummary:
    """Outcome of a whole run"""
    results: List[JobResult]
    elapsed: float
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[JobResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> List[JobResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def total_processed(self) -> int:
        return sum(r.processed for r in self.results)

    def result(self, name: str) -> JobResult:
        for r in self.results:
            if r.name == name:
                return r
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elapsed_seconds": self.elapsed,
            "total_documents_copied": self.total_processed,
            "succeeded": [r.name for r in self.succeeded],
            "failed": [r.name for r in self.failed],
            "jobs": [r.to_dict() for r in self.results],
            "metrics": self.metrics,
        }

class TransferEngine:
    """
    Copies collections one at a time:
    - Page size sized from memory headroom and average record size
    - Target cleared, then filled page by page
    - Progress emitted after every page
    - A failed collection never stops the rest of the run
    - Cooperative cancellation between pages
    """

    def __init__(self,
                 estimator: Optional[MemoryBudgetEstimator] = None,
                 reader: Optional[PageReader] = None,
                 writer: Optional[BatchWriter] = None,
                 tracker: Optional[ProgressTracker] = None,
                 memory_probe: Optional[Callable[[], int]] = None,
                 max_page_size: Optional[int] = None,
                 metrics_collector: Optional[MetricsCollector] = None):
        self.metrics_collector = metrics_collector or MetricsCollector()
        self.estimator = estimator or MemoryBudgetEstimator()
        self.reader = reader or PageReader(self.metrics_collector)
        self.writer = writer or BatchWriter(self.metrics_collector)
        self.tracker = tracker or ProgressTracker()
        self.memory_probe = memory_probe or measure_available_memory
        if max_page_size is not None and max_page_size < 1:
            raise ValueError(f"max_page_size must be >= 1, got {max_page_size}")
        self.max_page_size = max_page_size
        self.is_running = False
        self._cancel_reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_reason is not None

    def cancel(self, reason: str = "Transfer cancelled"):
        """Stop after the page currently being copied"""
        if not self.is_cancelled:
            logger.warning(f"Cancellation requested: {reason}")
            self._cancel_reason = reason

    async def build_jobs(self, pairs: Iterable[Tuple[CollectionHandle, CollectionHandle]]) -> List[CollectionJob]:
        """Count each source collection and create its job

        A source that cannot be counted still gets a job; its count is retried
        when the job starts, so the failure stays with that collection.
        """
        jobs = []
        for source, target in pairs:
            try:
                total = await source.count()
            except Exception as e:
                logger.warning(f"⚠️ Could not count {source.name}: {e}")
                total = None
            jobs.append(CollectionJob(name=source.name, source=source, target=target,
                                      estimated_total_records=total))
        return jobs

    async def run(self, jobs: Iterable[CollectionJob]) -> RunSummary:
        """Transfer every job in order and summarize the run"""
        jobs = list(jobs)
        if not jobs:
            raise NothingToTransfer("No collections selected for transfer")

        self._cancel_reason = None
        self.is_running = True
        run_start = time.monotonic()
        results = []

        logger.info(f"Starting transfer of {len(jobs)} collection(s)")
        try:
            for job in jobs:
                if self.is_cancelled:
                    results.append(self._abandon(job))
                else:
                    results.append(await self.transfer(job))
        finally:
            self.is_running = False

        summary = RunSummary(
            results=results,
            elapsed=time.monotonic() - run_start,
            metrics=self.metrics_collector.get_summary()
        )
        self._log_summary(summary)
        return summary

    async def transfer(self, job: CollectionJob) -> JobResult:
        """Run one job to a terminal state; never raises for job failures"""
        result = JobResult(name=job.name, total=job.estimated_total_records or 0)
        started = time.monotonic()

        try:
            if job.estimated_total_records is None:
                job = replace(job, estimated_total_records=await self._count(job))
                result.total = job.estimated_total_records
            self.tracker.on_job_start(job)

            self._transition(result, JobState.PREPARING)
            result.page_size = await self._estimate_page_size(job)
            # Clearing the target is destructive; never start it once cancelled
            self._check_cancelled()
            await self.writer.prepare(job)
            self._check_cancelled()

            self._transition(result, JobState.COPYING)
            if job.estimated_total_records == 0:
                logger.info(f"{job.name} is empty; nothing to copy")
            else:
                async for batch in self.reader.pages(job, result.page_size):
                    await self.writer.write_batch(job, batch)
                    snapshot = self.tracker.on_batch_copied(job, batch, batch.estimated_bytes)
                    result.processed = snapshot.processed
                    result.total = snapshot.total
                    result.bytes_transferred = snapshot.bytes_transferred
                    result.batches += 1
                    self._check_cancelled()

            self._transition(result, JobState.COMPLETED)
            self.tracker.on_job_complete(job)

        except Exception as e:
            result.error = e
            self._transition(result, JobState.FAILED)
            self.tracker.on_job_failed(job, e)
            logger.error(f"❌ {job.name} failed: {e}")

        finally:
            self.writer.finish(job)
            result.elapsed = time.monotonic() - started

        return result

    async def _count(self, job: CollectionJob) -> int:
        try:
            return await job.source.count()
        except Exception as e:
            raise ReadFailure(job.name, 0, 0, e) from e

    async def _estimate_page_size(self, job: CollectionJob) -> int:
        stats = await job.source.stats()
        avg_size = int(stats.get("avg_record_size_bytes") or 0)
        available = int(self.memory_probe())
        page_size = self.estimator.estimate(available, avg_size)
        if self.max_page_size is not None:
            page_size = min(page_size, self.max_page_size)

        logger.info(f"{job.name}: page size {page_size:,} "
                    f"(avg record {avg_size:,} bytes, {available / 1024 / 1024:.0f}MB available)")
        return page_size

    def _check_cancelled(self):
        if self.is_cancelled:
            raise CancellationRequested(self._cancel_reason)

    def _abandon(self, job: CollectionJob) -> JobResult:
        """Report a job the run never started because of cancellation"""
        result = JobResult(name=job.name, total=job.estimated_total_records or 0)
        result.error = CancellationRequested(self._cancel_reason)
        self._transition(result, JobState.FAILED)
        self.tracker.on_job_failed(job, result.error)
        return result

    @staticmethod
    def _transition(result: JobResult, new_state: JobState):
        if new_state not in _TRANSITIONS[result.state]:
            raise RuntimeError(f"Illegal transition for {result.name}: {result.state.value} -> {new_state.value}")
        logger.debug(f"{result.name}: {result.state.value} -> {new_state.value}")
        result.state = new_state

    def _log_summary(self, summary: RunSummary):
        logger.info(f"📊 Transfer finished in {summary.elapsed:.2f}s: "
                    f"{len(summary.succeeded)} succeeded, {len(summary.failed)} failed, "
                    f"{summary.total_processed:,} documents copied")
        for r in summary.succeeded:
            discrepancy = self.writer.discrepancies.get(r.name, 0)
            note = f" ({discrepancy:,} not acknowledged by target)" if discrepancy else ""
            logger.info(f"   • {r.name}: completed, {r.processed:,} documents in {r.elapsed:.2f}s{note}")
        for r in summary.failed:
            logger.error(f"   • {r.name}: FAILED - {r.error}")


def create_transfer_engine(config: CopyConfig, sinks: Optional[List[ProgressSink]] = None) -> TransferEngine:
    """Create a transfer engine from configuration"""
    limit_mb = config.transfer.memory_limit_mb
    limit_bytes = limit_mb * 1024 * 1024 if limit_mb else None

    return TransferEngine(
        estimator=MemoryBudgetEstimator(
            safety_factor=config.transfer.safety_factor,
            min_record_size_bytes=config.transfer.min_record_size_bytes
        ),
        tracker=ProgressTracker(sinks),
        memory_probe=functools.partial(measure_available_memory, limit_bytes),
        max_page_size=config.transfer.max_page_size
    )
