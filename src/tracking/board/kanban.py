"""Kanban classifier and ranker for the delivery execution board.

Pure functions over whatever candidate orders the caller supplies: aggregates,
board projection records or plain mappings all work, as long as they expose
``delivery_status``, ``planned_delivery_date``, ``last_challan_date`` and an
``order_id`` or ``id``. Filtering the candidate set is the caller's job.

Columns:
    pending: nothing shipped; earliest planned delivery first
    partial: partly shipped; earliest planned delivery first
    complete: fully shipped; most recent challan first

Orders without the relevant date always sink to the bottom of their column.
"""

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from datetime import UTC, date, datetime, time
from enum import Enum
from functools import cached_property

from tracking.order.metrics import DeliveryStatus
from tracking.utils.logging import get_logger

logger = get_logger(__name__)


class BoardColumn(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


COLUMN_TITLES = {
    BoardColumn.PENDING.value: "Pending",
    BoardColumn.PARTIAL.value: "Partial Delivered",
    BoardColumn.COMPLETE.value: "Completed",
}

_STATUS_TO_COLUMN = {
    DeliveryStatus.PENDING.value: BoardColumn.PENDING.value,
    DeliveryStatus.PARTIAL.value: BoardColumn.PARTIAL.value,
    DeliveryStatus.COMPLETE.value: BoardColumn.COMPLETE.value,
}


# ---------------------------------------------------------------------------
# Attribute access
# ---------------------------------------------------------------------------
def _read(order, name: str):
    if isinstance(order, Mapping):
        return order.get(name)
    return getattr(order, name, None)


def order_key(order):
    """Identity of a board card: ``order_id`` for read models, ``id`` otherwise."""
    value = _read(order, "order_id")
    return value if value is not None else _read(order, "id")


def _as_datetime(value) -> datetime | None:
    """Normalise dates, datetimes and ISO strings to aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable board date ignored", value=value)
            return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    return None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
def classify(order) -> str:
    """Board column for an order, derived from its delivery status alone."""
    status = _read(order, "delivery_status")
    column = _STATUS_TO_COLUMN.get(str(status).lower() if status else None)
    if column is None:
        if status:
            logger.warning("Unknown delivery status placed in pending column", order_id=order_key(order), status=status)
        return BoardColumn.PENDING.value
    return column


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def _sort_attribute(column: str) -> tuple[str, bool]:
    if column == BoardColumn.COMPLETE.value:
        return "last_challan_date", True
    return "planned_delivery_date", False


def _rank(column: str, orders: Sequence) -> tuple:
    attribute, newest_first = _sort_attribute(column)
    dated = []
    undated = []
    for order in orders:
        moment = _as_datetime(_read(order, attribute))
        if moment is None:
            undated.append(order)
        else:
            dated.append((moment, order))

    # sorted() is stable, also with reverse=True
    dated.sort(key=lambda pair: pair[0], reverse=newest_first)
    return tuple(order for _, order in dated) + tuple(undated)


class RankedColumn(Sequence):
    """Read-only ranked view of one board column.

    Ranking happens on first access and is cached; iterating again replays
    the same order, and the input is snapshotted so later changes to the
    caller's list do not leak in.
    """

    def __init__(self, column: str, orders: Iterable):
        if column not in COLUMN_TITLES:
            raise ValueError(f"Unknown board column: {column}")
        self.column = column
        self._orders = tuple(orders)

    @cached_property
    def _ranked(self) -> tuple:
        return _rank(self.column, self._orders)

    def __getitem__(self, index):
        return self._ranked[index]

    def __len__(self) -> int:
        return len(self._orders)

    def __iter__(self) -> Iterator:
        return iter(self._ranked)

    def __repr__(self) -> str:
        return f"<RankedColumn {self.column}: {len(self)} orders>"

    @property
    def title(self) -> str:
        return COLUMN_TITLES[self.column]

    def keys(self) -> list:
        return [order_key(order) for order in self]

    def total(self, attribute: str = "capacity") -> float:
        return column_capacity(self, attribute)


def rank_within_column(column: str, orders: Iterable) -> RankedColumn:
    return RankedColumn(column, orders)


def column_capacity(orders: Iterable, attribute: str = "capacity") -> float:
    """Sum of a numeric order attribute, used for column header summaries."""
    total = 0.0
    for order in orders:
        value = _read(order, attribute)
        try:
            total += float(value) if value is not None else 0.0
        except (TypeError, ValueError):
            continue
    return total


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------
class Board(dict):
    """Column key → RankedColumn, always holding every column."""

    def summary(self, attribute: str = "capacity") -> dict:
        return {
            column: {"title": ranked.title, "count": len(ranked), attribute: ranked.total(attribute)}
            for column, ranked in self.items()
        }


def build_board(orders: Iterable, predicate: Callable | None = None) -> Board:
    """Group orders into columns and rank each column."""
    grouped = {column.value: [] for column in BoardColumn}
    for order in orders:
        if predicate is not None and not predicate(order):
            continue
        grouped[classify(order)].append(order)
    return Board({column: rank_within_column(column, members) for column, members in grouped.items()})
