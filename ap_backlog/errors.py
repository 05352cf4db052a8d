from __future__ import annotations

from typing import Optional


class BacklogError(Exception):
    """Base class for every error raised by the backlog core."""


class StoreError(BacklogError):
    pass


class PartialWriteError(StoreError):
    """A chunked write stopped part way; earlier chunks stay committed."""

    def __init__(self, message: str, committed: int, pending: int) -> None:
        super().__init__(message)
        self.committed = committed
        self.pending = pending


class ImportAbortedError(PartialWriteError):
    def __init__(self, message: str, batch_id: str, committed: int, pending: int) -> None:
        super().__init__(message, committed=committed, pending=pending)
        self.batch_id = batch_id


class LifecycleError(BacklogError):
    pass


class BatchNotFoundError(LifecycleError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch not found: {batch_id}")
        self.batch_id = batch_id


class NoCurrentBatchError(LifecycleError):
    def __init__(self) -> None:
        super().__init__("No current batch found")


class BatchOrderError(LifecycleError):
    def __init__(self, batch_id: str, most_recent_id: Optional[str] = None) -> None:
        super().__init__(
            "Batches must be deleted from most recent to oldest. "
            "Please delete batches in order from top to bottom."
        )
        self.batch_id = batch_id
        self.most_recent_id = most_recent_id


class EmptyImportError(BacklogError):
    def __init__(self, errors: Optional[list[str]] = None) -> None:
        super().__init__(
            "No valid invoices found. Zero-value and fully paid invoices are filtered out."
        )
        self.errors = list(errors or [])


class ArchiveError(BacklogError):
    pass


class UnknownProfileError(BacklogError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown format profile: {name}")
        self.name = name


class InvoiceNotFoundError(BacklogError):
    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"Invoice not found: {invoice_id}")
        self.invoice_id = invoice_id
