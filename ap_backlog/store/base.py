from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

Row = Dict[str, Any]
Filter = Mapping[str, Any]
T = TypeVar("T")

BATCHES = "import_batches"
INVOICES = "invoices"


class Transaction(Protocol):
    """Reads run immediately; writes may be buffered until the transaction commits.

    Callers do every read before the first write.
    """

    async def get(self, table: str, row_id: str) -> Optional[Row]: ...

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]: ...

    async def insert(self, table: str, row: Row) -> str: ...

    async def update(self, table: str, row_id: str, patch: Row) -> None: ...


class Store(Protocol):
    """Generic table store the core talks to.

    ``filter`` maps a field to the value it must equal; a list, tuple or set
    value means the field must be one of them. ``order`` lists field names,
    ``-name`` for descending. ``range_end`` is inclusive. Every returned row
    carries its id under ``"id"``.
    """

    async def insert(self, table: str, rows: Sequence[Row]) -> List[str]: ...

    async def update(self, table: str, patch: Row, filter: Filter) -> int: ...

    async def delete(self, table: str, filter: Filter) -> int: ...

    async def get(self, table: str, row_id: str) -> Optional[Row]: ...

    async def select(
        self,
        table: str,
        filter: Optional[Filter] = None,
        order: Optional[Sequence[str]] = None,
        range_start: int = 0,
        range_end: Optional[int] = None,
    ) -> Tuple[List[Row], int]: ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T: ...


def matches(row: Row, filter: Optional[Filter]) -> bool:
    if not filter:
        return True
    for field, expected in filter.items():
        value = row.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def sort_rows(rows: List[Row], order: Optional[Sequence[str]]) -> List[Row]:
    if not order:
        return rows
    ordered = list(rows)
    # Stable sorts applied from the last key to the first.
    for key in reversed(order):
        descending = key.startswith("-")
        field = key.lstrip("-")
        ordered.sort(
            key=lambda row: (row.get(field) is not None, row.get(field) if row.get(field) is not None else 0),
            reverse=descending,
        )
    return ordered
