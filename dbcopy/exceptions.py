"""
Transfer Errors
Failure taxonomy for collection copy jobs
"""
from typing import Optional, Any


class TransferError(Exception):
    """Base class for all copy errors"""


class ConnectionFailure(TransferError):
    """Could not connect to a database after the allowed attempts"""

    def __init__(self, uri: str, attempts: int, cause: Optional[BaseException] = None):
        self.uri = uri
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Could not connect after {attempts} attempt(s): {cause}")


class ReadFailure(TransferError):
    """A paginated read against the source collection failed"""

    def __init__(self, collection: str, offset: int, limit: int, cause: Optional[BaseException] = None):
        self.collection = collection
        self.offset = offset
        self.limit = limit
        self.cause = cause
        super().__init__(f"Read of '{collection}' failed at offset={offset} limit={limit}: {cause}")


class WriteFailure(TransferError):
    """Clearing or writing the target collection failed

    ``batch`` is None when the failure happened while clearing the target.
    """

    def __init__(self, job: Any, batch: Any = None, cause: Optional[BaseException] = None):
        self.job = job
        self.batch = batch
        self.cause = cause
        if batch is None:
            where = "while clearing target"
        else:
            where = f"on batch {batch.number} ({len(batch)} records at offset {batch.offset})"
        super().__init__(f"Write to '{job.name}' failed {where}: {cause}")


class CancellationRequested(TransferError):
    """The run was cancelled between batches"""

    def __init__(self, reason: str = "Transfer cancelled"):
        self.reason = reason
        super().__init__(reason)


class NothingToTransfer(TransferError):
    """The run was started without any collections"""
