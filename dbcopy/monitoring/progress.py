"""
Progress Tracking
Normalized per-job progress events (percentage, throughput, ETA)
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

class EventKind(Enum):
    """Progress event types"""
    STARTED = "started"
    BATCH = "batch"
    COMPLETED = "completed"
    FAILED = "failed"

@dataclass(frozen=True)
class ProgressSnapshot:
    """Progress of one job at a point in time"""
    job_name: str
    processed: int
    total: int
    bytes_transferred: int
    elapsed: float

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 100
        return min(100, round(self.processed / self.total * 100))

    @property
    def records_per_second(self) -> float:
        return self.processed / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def bytes_per_second(self) -> float:
        return self.bytes_transferred / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def eta_seconds(self) -> Optional[float]:
        """Seconds left at the current rate; None until a rate is known"""
        remaining = max(0, self.total - self.processed)
        if remaining == 0:
            return 0.0
        rate = self.records_per_second
        return remaining / rate if rate > 0 else None

@dataclass(frozen=True)
class ProgressEvent:
    """What the presentation layer receives"""
    kind: EventKind
    snapshot: ProgressSnapshot
    error: Optional[BaseException] = None

    @property
    def job_name(self) -> str:
        return self.snapshot.job_name

ProgressSink = Callable[[ProgressEvent], None]

class _JobProgress:
    __slots__ = ("total", "processed", "bytes_transferred", "started_at")

    def __init__(self, total: int, started_at: float):
        self.total = total
        self.processed = 0
        self.bytes_transferred = 0
        self.started_at = started_at

class ProgressTracker:
    """
    Aggregates copied record and byte counts per job and emits events

    Events are delivered synchronously to every sink. A sink that raises is
    logged and skipped; it never fails the transfer.
    """

    def __init__(self, sinks: Optional[List[ProgressSink]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.sinks: List[ProgressSink] = list(sinks or [])
        self.clock = clock
        self._jobs: Dict[str, _JobProgress] = {}

    def add_sink(self, sink: ProgressSink):
        self.sinks.append(sink)

    def on_job_start(self, job) -> ProgressSnapshot:
        self._jobs[job.name] = _JobProgress(max(0, job.estimated_total_records or 0), self.clock())
        return self._emit(EventKind.STARTED, job)

    def on_batch_copied(self, job, batch, batch_byte_size: int) -> ProgressSnapshot:
        state = self._state(job)
        state.processed += len(batch)
        state.bytes_transferred += max(0, batch_byte_size)
        if state.processed > state.total:
            # Count taken at job start was an underestimate
            logger.debug(f"{job.name}: raising total from {state.total:,} to {state.processed:,}")
            state.total = state.processed
        return self._emit(EventKind.BATCH, job)

    def on_job_complete(self, job) -> ProgressSnapshot:
        return self._emit(EventKind.COMPLETED, job)

    def on_job_failed(self, job, error: BaseException) -> ProgressSnapshot:
        return self._emit(EventKind.FAILED, job, error)

    def snapshot(self, job) -> ProgressSnapshot:
        state = self._state(job)
        return ProgressSnapshot(
            job_name=job.name,
            processed=state.processed,
            total=state.total,
            bytes_transferred=state.bytes_transferred,
            elapsed=max(0.0, self.clock() - state.started_at)
        )

    def _state(self, job) -> _JobProgress:
        # Jobs cancelled before starting still get a terminal event
        state = self._jobs.get(job.name)
        if state is None:
            state = self._jobs[job.name] = _JobProgress(max(0, job.estimated_total_records or 0), self.clock())
        return state

    def _emit(self, kind: EventKind, job, error: Optional[BaseException] = None) -> ProgressSnapshot:
        snapshot = self.snapshot(job)
        event = ProgressEvent(kind=kind, snapshot=snapshot, error=error)
        for sink in self.sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error(f"Error in progress sink: {e}")
        return snapshot


def logging_sink(event: ProgressEvent):
    """Progress sink that writes events to the log"""
    snapshot = event.snapshot
    if event.kind is EventKind.STARTED:
        logger.info(f"🚀 Copying {snapshot.job_name}: {snapshot.total:,} documents")
    elif event.kind is EventKind.BATCH:
        logger.debug(f"{snapshot.job_name}: {snapshot.processed:,}/{snapshot.total:,} "
                     f"({snapshot.percentage}%) at {snapshot.records_per_second:.0f} docs/s")
    elif event.kind is EventKind.COMPLETED:
        logger.info(f"✅ Copied {snapshot.job_name}: {snapshot.processed:,} documents in {snapshot.elapsed:.2f}s")
    else:
        logger.error(f"❌ Failed {snapshot.job_name} after {snapshot.processed:,} documents: {event.error}")
