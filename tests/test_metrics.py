"""Tests for operation metrics."""

from dbcopy.monitoring.metrics import MetricsCollector, OperationType


class TestMetricsCollector:

    def test_totals_per_operation_type(self):
        metrics = MetricsCollector()

        read = metrics.start_operation("read:orders:0", "read orders", OperationType.READ)
        assert metrics.get_summary()["active_operations"] == 1
        metrics.end_operation(read, 100, True)
        write = metrics.start_operation("write:orders:1", "write orders", OperationType.WRITE)
        metrics.end_operation(write, 0, False, "duplicate key")

        summary = metrics.get_summary()
        assert summary["read"]["operations"] == 1
        assert summary["read"]["documents"] == 100
        assert summary["write"]["errors"] == 1
        assert summary["clear"]["operations"] == 0
        assert summary["active_operations"] == 0
        assert summary["peak_memory_mb"] > 0
        assert write.error_message == "duplicate key"
        assert not write.success

    def test_duration_and_rate(self):
        metrics = MetricsCollector()
        operation = metrics.start_operation("op", "op", OperationType.READ)
        operation.start_time -= 2.0

        metrics.end_operation(operation, 50, True)

        assert operation.duration >= 2.0
        assert 0 < operation.rate <= 25
