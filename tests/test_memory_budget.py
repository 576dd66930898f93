"""Tests for page sizing from memory headroom."""

from types import SimpleNamespace

import pytest

from dbcopy.migrations import memory_budget
from dbcopy.migrations.memory_budget import MemoryBudgetEstimator, measure_available_memory


class TestMemoryBudgetEstimator:
    """Tests for MemoryBudgetEstimator.estimate()."""

    def test_applies_safety_factor(self):
        estimator = MemoryBudgetEstimator(safety_factor=0.75)
        assert estimator.estimate(1000, 10) == 75

    def test_floors_fractional_pages(self):
        estimator = MemoryBudgetEstimator(safety_factor=0.5)
        assert estimator.estimate(1000, 3) == 166

    def test_default_safety_factor_leaves_headroom(self):
        estimator = MemoryBudgetEstimator()
        assert estimator.safety_factor == pytest.approx(0.70)
        page_size = estimator.estimate(100 * 1024 * 1024, 1024)
        assert 0 < page_size < 100 * 1024

    def test_zero_average_size_falls_back_to_minimum(self):
        estimator = MemoryBudgetEstimator(safety_factor=0.5)
        assert estimator.estimate(100, 0) == 50

    def test_configured_minimum_record_size(self):
        estimator = MemoryBudgetEstimator(safety_factor=0.5, min_record_size_bytes=10)
        assert estimator.estimate(100, 0) == 5

    def test_no_memory_still_returns_one(self):
        estimator = MemoryBudgetEstimator()
        assert estimator.estimate(0, 500) == 1

    def test_negative_memory_is_clamped(self):
        estimator = MemoryBudgetEstimator()
        assert estimator.estimate(-4096, 500) == 1

    def test_records_larger_than_budget(self):
        estimator = MemoryBudgetEstimator()
        assert estimator.estimate(1024, 16 * 1024 * 1024) == 1

    @pytest.mark.parametrize("available,avg_size", [
        (0, 1), (1, 1), (10, 3), (999, 1000), (2 ** 40, 7), (12345, 0), (12345, -5),
    ])
    def test_always_at_least_one(self, available, avg_size):
        page_size = MemoryBudgetEstimator().estimate(available, avg_size)
        assert isinstance(page_size, int)
        assert page_size >= 1

    @pytest.mark.parametrize("factor", [0, -0.1, 1.5])
    def test_rejects_bad_safety_factor(self, factor):
        with pytest.raises(ValueError):
            MemoryBudgetEstimator(safety_factor=factor)


class TestMeasureAvailableMemory:
    """Tests for the psutil-backed memory probe."""

    def test_system_available_memory(self, monkeypatch):
        monkeypatch.setattr(memory_budget.psutil, "virtual_memory",
                            lambda: SimpleNamespace(available=123456))
        assert measure_available_memory() == 123456

    def test_limit_minus_process_rss(self, monkeypatch):
        process = SimpleNamespace(memory_info=lambda: SimpleNamespace(rss=300))
        monkeypatch.setattr(memory_budget.psutil, "Process", lambda: process)
        assert measure_available_memory(1000) == 700

    def test_limit_below_rss_is_zero(self, monkeypatch):
        process = SimpleNamespace(memory_info=lambda: SimpleNamespace(rss=5000))
        monkeypatch.setattr(memory_budget.psutil, "Process", lambda: process)
        assert measure_available_memory(1000) == 0
