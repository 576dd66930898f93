"""
Memory Budget Estimator
Sizes read/write pages so one page of records fits in the available memory headroom
"""
import logging
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_FACTOR = 0.70
DEFAULT_MIN_RECORD_SIZE_BYTES = 1


def measure_available_memory(limit_bytes: Optional[int] = None) -> int:
    """Memory headroom in bytes

    Without a limit this is the system's available memory. With a limit it is
    the part of the limit not yet used by this process (never below zero).
    """
    if limit_bytes is None:
        return int(psutil.virtual_memory().available)

    rss = psutil.Process().memory_info().rss
    return max(0, int(limit_bytes) - int(rss))


class MemoryBudgetEstimator:
    """Turns memory headroom and average record size into a page size (record count)"""

    def __init__(self, safety_factor: float = DEFAULT_SAFETY_FACTOR,
                 min_record_size_bytes: int = DEFAULT_MIN_RECORD_SIZE_BYTES):
        if not 0 < safety_factor <= 1:
            raise ValueError(f"safety_factor must be in (0, 1], got {safety_factor}")
        self.safety_factor = safety_factor
        self.min_record_size_bytes = max(1, int(min_record_size_bytes))

    def estimate(self, available_memory_bytes: int, avg_record_size_bytes: int) -> int:
        """Page size for the given headroom; always >= 1"""
        available = max(0, int(available_memory_bytes))
        avg_size = int(avg_record_size_bytes)
        if avg_size <= 0:
            # Store reported no size (empty or unsampled collection)
            avg_size = self.min_record_size_bytes

        page_size = int(available * self.safety_factor) // avg_size
        return max(1, page_size)
