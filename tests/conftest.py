"""Shared fixtures: in-memory collection handles and engine helpers."""

import copy
from typing import Any, Dict, List, Optional

import pytest

from dbcopy.core.database import CollectionHandle, estimate_record_size
from dbcopy.migrations.engine import CollectionJob, TransferEngine
from dbcopy.migrations.memory_budget import MemoryBudgetEstimator
from dbcopy.monitoring.progress import ProgressTracker


class InMemoryCollection(CollectionHandle):
    """Collection handle over a Python list, with failure injection.

    ``fail_insert_on`` / ``fail_read_on`` are 1-based call numbers that raise.
    ``insert_shortfall`` makes every insert report that many fewer records.
    """

    def __init__(self, name: str, records: Optional[List[Dict[str, Any]]] = None,
                 avg_size: Optional[int] = None,
                 fail_insert_on: Optional[int] = None,
                 fail_read_on: Optional[int] = None,
                 fail_clear: bool = False,
                 fail_stats: bool = False,
                 fail_count: bool = False,
                 insert_shortfall: int = 0):
        self.name = name
        self.records: List[Dict[str, Any]] = [copy.deepcopy(r) for r in (records or [])]
        self.avg_size = avg_size
        self.fail_insert_on = fail_insert_on
        self.fail_read_on = fail_read_on
        self.fail_clear = fail_clear
        self.fail_stats = fail_stats
        self.fail_count = fail_count
        self.insert_shortfall = insert_shortfall
        self.read_calls: List[tuple] = []
        self.insert_calls = 0
        self.clear_calls = 0

    async def count(self) -> int:
        if self.fail_count:
            raise IOError("count failed")
        return len(self.records)

    async def read(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        self.read_calls.append((offset, limit))
        if self.fail_read_on is not None and len(self.read_calls) == self.fail_read_on:
            raise IOError(f"read {len(self.read_calls)} failed")
        return [copy.deepcopy(r) for r in self.records[offset:offset + limit]]

    async def clear(self) -> int:
        self.clear_calls += 1
        if self.fail_clear:
            raise IOError("clear failed")
        deleted = len(self.records)
        self.records = []
        return deleted

    async def insert_many(self, records: List[Dict[str, Any]]) -> int:
        self.insert_calls += 1
        if self.fail_insert_on is not None and self.insert_calls == self.fail_insert_on:
            raise IOError(f"insert {self.insert_calls} failed")
        self.records.extend(copy.deepcopy(r) for r in records)
        return len(records) - self.insert_shortfall

    async def stats(self) -> Dict[str, int]:
        if self.fail_stats:
            raise IOError("stats failed")
        if self.avg_size is not None:
            return {"avg_record_size_bytes": self.avg_size}
        if not self.records:
            return {"avg_record_size_bytes": 0}
        total = sum(estimate_record_size(r) for r in self.records)
        return {"avg_record_size_bytes": total // len(self.records)}


def make_records(count: int, prefix: str = "doc") -> List[Dict[str, Any]]:
    return [{"_id": i, "name": f"{prefix}-{i}", "tags": ["a", "b"], "nested": {"n": i}} for i in range(count)]


def make_job(source: InMemoryCollection, target: InMemoryCollection) -> CollectionJob:
    return CollectionJob(name=source.name, source=source, target=target,
                         estimated_total_records=len(source.records))


@pytest.fixture
def events():
    """List that collects every progress event"""
    return []


@pytest.fixture
def make_engine(events):
    """Engine factory with a fixed page size and plenty of memory"""

    def _make(page_size: int = 1000, available: int = 10 ** 12, **kwargs) -> TransferEngine:
        return TransferEngine(
            estimator=MemoryBudgetEstimator(safety_factor=0.5),
            tracker=ProgressTracker([events.append]),
            memory_probe=lambda: available,
            max_page_size=page_size,
            **kwargs
        )

    return _make
