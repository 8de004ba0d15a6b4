"""The persistence collaborator: a table store with filters and a few RPCs."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence

from canvasmap.errors import CanvasMapError


class BackendError(CanvasMapError):
    """Raised by a backend when a persistence call fails."""
    pass


FilterOp = Literal["eq", "neq", "is_null"]


@dataclass(frozen=True)
class Filter:
    column: str
    op: FilterOp
    value: Any = None

    def matches(self, row: Dict[str, Any]) -> bool:
        current = row.get(self.column)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            # SQL semantics: NULL <> x is not true
            return current is not None and current != self.value
        if self.op == "is_null":
            return current is None
        raise ValueError(f"Unsupported filter operator: {self.op}")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


def eq_or_null(column: str, value: Any) -> Filter:
    """``column = value``, or ``column IS NULL`` when ``value`` is empty."""
    return eq(column, value) if value else is_null(column)


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


class MappingBackend(ABC):
    """Async table access used by the mapping store.

    Every method is a single request/response call. Implementations raise
    ``BackendError`` on failure and never retry.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (with generated columns)."""
        ...

    @abstractmethod
    async def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        """Update matching rows and return them."""
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        ...
