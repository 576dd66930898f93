"""
Transfer Framework
"""
from .engine import (
    TransferEngine,
    CollectionJob,
    JobState,
    JobResult,
    RunSummary,
    create_transfer_engine
)
from .memory_budget import MemoryBudgetEstimator, measure_available_memory
from .page_reader import PageReader, Batch
from .batch_writer import BatchWriter
