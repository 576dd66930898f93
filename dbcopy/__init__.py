"""
Database Copy Utility
Memory-bounded copy of whole collections between MongoDB-compatible databases
"""

__version__ = "2.0.0"

# Core components
from .core.database import (
    CollectionHandle,
    MongoCollectionHandle,
    MongoDatabaseClient,
    DatabaseConfig,
    connect_with_retry,
    estimate_record_size
)

# Configuration management
from .config.manager import (
    ConfigManager,
    CopyConfig,
    DatabaseSettings,
    TransferSettings,
    MonitoringSettings,
    Environment
)

# Transfer
from .migrations import (
    TransferEngine,
    CollectionJob,
    JobState,
    JobResult,
    RunSummary,
    create_transfer_engine,
    MemoryBudgetEstimator,
    measure_available_memory,
    PageReader,
    Batch,
    BatchWriter
)

# Monitoring
from .monitoring.progress import (
    ProgressTracker,
    ProgressSnapshot,
    ProgressEvent,
    EventKind,
    logging_sink
)
from .monitoring.metrics import MetricsCollector, OperationType
from .monitoring.console import ConsoleProgressRenderer

# Errors
from .exceptions import (
    TransferError,
    ConnectionFailure,
    ReadFailure,
    WriteFailure,
    CancellationRequested,
    NothingToTransfer
)

__all__ = [
    # Core
    "CollectionHandle",
    "MongoCollectionHandle",
    "MongoDatabaseClient",
    "DatabaseConfig",
    "connect_with_retry",
    "estimate_record_size",

    # Configuration
    "ConfigManager",
    "CopyConfig",
    "DatabaseSettings",
    "TransferSettings",
    "MonitoringSettings",
    "Environment",

    # Transfer
    "TransferEngine",
    "CollectionJob",
    "JobState",
    "JobResult",
    "RunSummary",
    "create_transfer_engine",
    "MemoryBudgetEstimator",
    "measure_available_memory",
    "PageReader",
    "Batch",
    "BatchWriter",

    # Monitoring
    "ProgressTracker",
    "ProgressSnapshot",
    "ProgressEvent",
    "EventKind",
    "logging_sink",
    "MetricsCollector",
    "OperationType",
    "ConsoleProgressRenderer",

    # Errors
    "TransferError",
    "ConnectionFailure",
    "ReadFailure",
    "WriteFailure",
    "CancellationRequested",
    "NothingToTransfer"
]
