"""
Unit tests for table sorting, pagination and selection.
"""

import pytest

from moogship_models import PaginatedShipments, parse_shipments
from table_view import (
    SELECTION_KEY,
    ClientPaginator,
    PaginationModeError,
    SelectionStore,
    SortState,
    TableView,
    sort_records,
)
from test_data import get_mock_api_responses


class TestSortRecords:

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.shipments = parse_shipments(get_mock_api_responses()["shipments"])

    def test_dates_sort_chronologically(self):
        ordered = sort_records(self.shipments, "createdAt", "desc")

        assert [s.id for s in ordered] == [9, 8, 7]

    def test_strings_sort_case_insensitively(self):
        ordered = sort_records(self.shipments, "receiverName", "asc")

        assert [s.receiverName for s in ordered] == ["Alice Jones", "bob brown", "John Smith"]

    def test_numbers_sort_numerically(self):
        ordered = sort_records(self.shipments, "totalPrice", "desc")

        assert [s.totalPrice for s in ordered] == [12345, 5000, 2500]

    def test_missing_values_sort_last_both_ways(self):
        records = [{"id": 1, "v": None}, {"id": 2, "v": 3}, {"id": 3}, {"id": 4, "v": 1}]

        assert [r["id"] for r in sort_records(records, "v", "asc")] == [4, 2, 1, 3]
        assert [r["id"] for r in sort_records(records, "v", "desc")] == [2, 4, 1, 3]

    def test_sort_is_stable_and_idempotent(self):
        """Test that re-sorting sorted output changes nothing and ties keep input order."""
        records = [{"id": i, "status": status} for i, status in
                   enumerate(["pending", "approved", "pending", "approved", "delivered"])]

        once = sort_records(records, "status", "asc")
        twice = sort_records(once, "status", "asc")

        assert once == twice
        assert [r["id"] for r in once] == [1, 3, 4, 0, 2]

    def test_unparseable_dates_sort_last(self):
        records = [{"id": 1, "createdAt": "bad"}, {"id": 2, "createdAt": "2024-01-01T00:00:00Z"}]

        assert [r["id"] for r in sort_records(records, "createdAt", "desc")] == [2, 1]


class TestSortState:

    def test_default(self):
        state = SortState()

        assert (state.field, state.order) == ("createdAt", "desc")

    def test_toggle_same_field_flips_order(self):
        assert SortState("createdAt", "desc").toggle("createdAt").order == "asc"

    def test_new_field_starts_ascending(self):
        state = SortState("createdAt", "desc").toggle("status")

        assert (state.field, state.order) == ("status", "asc")


class TestPagination:

    def test_client_paginator(self):
        paginator = ClientPaginator(page_size=2)
        records = list(range(5))

        page = paginator.page(records, 3)

        assert page.items == [4]
        assert page.total_pages == 3
        assert page.has_prev and not page.has_next

    def test_client_paginator_clamps_page(self):
        page = ClientPaginator(page_size=2).page([1, 2, 3], 99)

        assert page.page == 2
        assert page.items == [3]

    def test_client_paginator_empty(self):
        page = ClientPaginator(page_size=10).page([], 1)

        assert page.items == []
        assert page.total_pages == 0

    def test_server_page_is_not_resliced(self):
        """Test that server pages are used as delivered."""
        response = PaginatedShipments.model_validate(get_mock_api_responses()["paginated"])
        view = TableView("admin", page_size=2)
        calls = []

        def fetch(page, limit):
            calls.append((page, limit))
            return response

        page = view.server_page(fetch, 1)

        assert calls == [(1, 2)]
        assert len(page.items) == 2
        assert page.total == 3
        assert page.has_next

    def test_mixing_modes_raises(self):
        view = TableView("mine", page_size=2)
        view.client_page([1, 2, 3], 1)

        with pytest.raises(PaginationModeError):
            view.server_page(lambda page, limit: None, 1)


class TestSelectionStore:

    def setup_method(self):
        self.state = {}
        self.selection = SelectionStore(self.state)

    def test_toggle_persists_under_fixed_key(self):
        self.selection.toggle(7, True)
        self.selection.toggle(8, True)
        self.selection.toggle(7, False)

        assert self.state[SELECTION_KEY] == [8]
        assert 8 in self.selection
        assert len(self.selection) == 1

    def test_select_page_keeps_other_pages(self):
        self.selection.toggle(1, True)

        self.selection.select_page([7, 8, 7], True)
        assert self.selection.ids == [1, 7, 8]

        self.selection.select_page([7, 8], False)
        assert self.selection.ids == [1]

    def test_clear_removes_key(self):
        self.selection.toggle(1, True)

        self.selection.clear()

        assert SELECTION_KEY not in self.state
        assert self.selection.ids == []
