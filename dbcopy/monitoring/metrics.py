"""
Monitoring and Metrics Framework
Per-operation timing for reads, writes and clears
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Any
from enum import Enum

import psutil

logger = logging.getLogger(__name__)

class OperationType(Enum):
    """Types of operations to monitor"""
    READ = "read"
    WRITE = "write"
    CLEAR = "clear"

@dataclass
class OperationMetrics:
    """Metrics for a single operation"""
    operation_id: str
    operation_name: str
    operation_type: OperationType
    start_time: float
    end_time: Optional[float] = None
    documents_processed: int = 0
    success: bool = False
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def rate(self) -> float:
        return self.documents_processed / self.duration if self.duration > 0 else 0

class MetricsCollector:
    """
    Metrics collector with:
    - Active operation tracking
    - Per-type totals (count, documents, time, errors)
    - Process memory sampling
    """

    def __init__(self):
        self.operations: Dict[str, OperationMetrics] = {}
        self.totals: Dict[OperationType, Dict[str, float]] = {
            op_type: {"operations": 0, "documents": 0, "seconds": 0.0, "errors": 0}
            for op_type in OperationType
        }
        self.peak_memory_mb = 0.0
        self.start_time = time.time()

    def start_operation(self, operation_id: str, operation_name: str, operation_type: OperationType,
                        documents_count: int = 0) -> OperationMetrics:
        """Start tracking an operation"""
        operation = OperationMetrics(
            operation_id=operation_id,
            operation_name=operation_name,
            operation_type=operation_type,
            start_time=time.time(),
            documents_processed=documents_count
        )

        self.operations[operation_id] = operation
        logger.debug(f"Started operation: {operation_name} ({operation_id})")
        return operation

    def end_operation(self, operation: OperationMetrics, documents_processed: int,
                      success: bool, error_message: Optional[str] = None):
        """End tracking an operation"""
        operation.end_time = time.time()
        operation.documents_processed = documents_processed
        operation.success = success
        operation.error_message = error_message

        totals = self.totals[operation.operation_type]
        totals["operations"] += 1
        totals["documents"] += documents_processed
        totals["seconds"] += operation.duration
        if not success:
            totals["errors"] += 1

        self.operations.pop(operation.operation_id, None)
        self._sample_memory()

        logger.debug(f"Ended operation: {operation.operation_name} - {documents_processed} docs in {operation.duration:.2f}s")

    def _sample_memory(self) -> float:
        """Current process RSS in MB; tracks the peak"""
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        if memory_mb > self.peak_memory_mb:
            self.peak_memory_mb = memory_mb
        return memory_mb

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary"""
        summary: Dict[str, Any] = {}
        for op_type, totals in self.totals.items():
            seconds = totals["seconds"]
            summary[op_type.value] = {
                "operations": int(totals["operations"]),
                "documents": int(totals["documents"]),
                "seconds": seconds,
                "errors": int(totals["errors"]),
                "documents_per_second": totals["documents"] / seconds if seconds > 0 else 0,
            }

        summary["active_operations"] = len(self.operations)
        summary["peak_memory_mb"] = self.peak_memory_mb
        summary["uptime_seconds"] = time.time() - self.start_time
        return summary
