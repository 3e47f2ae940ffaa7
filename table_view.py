"""
Sorting, pagination and row selection for the shipment and user tables.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, MutableMapping, Optional

from formatting import parse_datetime

SELECTION_KEY = "selectedShipments"

DATE_FIELDS = {"createdAt", "updatedAt", "approvedAt", "invoiceUploadedAt"}


def _field_value(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _sort_key(value: Any, is_date: bool):
    """(type rank, comparable) so mixed column types never compare directly."""
    if is_date:
        parsed = parse_datetime(value)
        return (0, parsed.timestamp()) if parsed else None
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value.casefold())
    return (2, str(value))


def sort_records(records: Iterable[Any], field_name: str, order: str = "asc") -> List[Any]:
    """Stable sort by one field. Missing values always sort last."""
    is_date = field_name in DATE_FIELDS
    keyed, missing = [], []
    for record in records:
        value = _field_value(record, field_name)
        key = _sort_key(value, is_date) if value is not None else None
        if key is None:
            missing.append(record)
        else:
            keyed.append((key, record))

    keyed.sort(key=lambda pair: pair[0], reverse=(order == "desc"))
    return [record for _, record in keyed] + missing


@dataclass(frozen=True)
class SortState:
    field: str = "createdAt"
    order: str = "desc"

    def toggle(self, field_name: str) -> "SortState":
        """Same column flips the order; a new column starts ascending."""
        if field_name == self.field:
            return SortState(self.field, "desc" if self.order == "asc" else "asc")
        return SortState(field_name, "asc")

    def apply(self, records: Iterable[Any]) -> List[Any]:
        return sort_records(records, self.field, self.order)


@dataclass
class Page:
    items: List[Any]
    page: int
    total_pages: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class ClientPaginator:
    """Slices an already-fetched list."""

    def __init__(self, page_size: int = 25):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size

    def page(self, records: List[Any], page: int = 1) -> Page:
        total = len(records)
        total_pages = math.ceil(total / self.page_size)
        page = min(max(page, 1), max(total_pages, 1))
        start = (page - 1) * self.page_size
        return Page(records[start:start + self.page_size], page, total_pages, total)


class ServerPaginator:
    """Pages come pre-sliced from the server; only the current page is held."""

    def __init__(self, fetch_page: Callable[[int, int], Any], page_size: int = 25):
        self.fetch_page = fetch_page
        self.page_size = page_size

    def page(self, page: int = 1) -> Page:
        result = self.fetch_page(max(page, 1), self.page_size)
        pagination = result.pagination
        return Page(list(result.data), pagination.page, pagination.totalPages, pagination.total)


class PaginationModeError(RuntimeError):
    pass


@dataclass
class TableView:
    """Sort state plus exactly one pagination mode for a single table instance."""

    name: str
    page_size: int = 25
    sort: SortState = field(default_factory=SortState)
    mode: Optional[str] = None

    def _bind(self, mode: str):
        if self.mode is None:
            self.mode = mode
        elif self.mode != mode:
            raise PaginationModeError(f"{self.name} already uses {self.mode} pagination, cannot switch to {mode}")

    def client_page(self, records: List[Any], page: int = 1) -> Page:
        self._bind("client")
        return ClientPaginator(self.page_size).page(self.sort.apply(records), page)

    def server_page(self, fetch_page: Callable[[int, int], Any], page: int = 1) -> Page:
        """Server pages are sorted locally within the page only."""
        self._bind("server")
        result = ServerPaginator(fetch_page, self.page_size).page(page)
        result.items = self.sort.apply(result.items)
        return result

    def toggle_sort(self, field_name: str):
        self.sort = self.sort.toggle(field_name)


class SelectionStore:
    """Selected row ids persisted in a mapping such as st.session_state."""

    def __init__(self, state: MutableMapping, key: str = SELECTION_KEY):
        self.state = state
        self.key = key

    @property
    def ids(self) -> List[int]:
        return list(self.state.get(self.key, []))

    def _save(self, ids: List[int]):
        self.state[self.key] = ids

    def __contains__(self, item_id: int) -> bool:
        return item_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)

    def toggle(self, item_id: int, checked: bool):
        ids = self.ids
        if checked and item_id not in ids:
            ids.append(item_id)
        elif not checked:
            ids = [i for i in ids if i != item_id]
        self._save(ids)

    def select_page(self, page_ids: Iterable[int], checked: bool):
        """Add or remove every id on the current page, leaving other pages untouched."""
        page_ids = list(page_ids)
        ids = self.ids
        if checked:
            ids.extend(i for i in page_ids if i not in ids)
        else:
            ids = [i for i in ids if i not in page_ids]
        self._save(ids)

    def clear(self):
        """Drop the persisted selection; called when the view is torn down."""
        if self.key in self.state:
            del self.state[self.key]
