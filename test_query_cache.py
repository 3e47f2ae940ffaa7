"""
Unit tests for the query cache.
"""

import pytest
from unittest.mock import Mock

from moogship_models import parse_shipments
from query_cache import (
    DEFAULT_STALE_TIME,
    STATIC_STALE_TIME,
    QueryCache,
    remove_from_list,
    replace_in_list,
)
from test_data import get_mock_api_responses


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestQueryCache:

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.clock = FakeClock()
        self.cache = QueryCache(clock=self.clock)
        self.mock_responses = get_mock_api_responses()

    def test_read_uses_fresh_value(self):
        """Test that a fresh entry is served without refetching."""
        fetcher = Mock(return_value=["a"])

        assert self.cache.read(("/api/products",), fetcher) == ["a"]
        self.clock.now += 60
        assert self.cache.read(("/api/products",), fetcher) == ["a"]

        assert fetcher.call_count == 1

    def test_read_refetches_after_stale_time(self):
        fetcher = Mock(side_effect=[["old"], ["new"]])

        self.cache.read(("/api/products",), fetcher)
        self.clock.now += STATIC_STALE_TIME + 1

        assert self.cache.read(("/api/products",), fetcher) == ["new"]

    def test_user_specific_endpoints_are_never_fresh(self):
        """Test that user-specific data is refetched on every read."""
        fetcher = Mock(side_effect=[[1], [2]])

        self.cache.read(("/api/shipments/my",), fetcher)

        assert self.cache.read(("/api/shipments/my",), fetcher) == [2]
        assert self.cache.default_stale_time(("/api/shipments/my",)) == 0

    def test_default_stale_times(self):
        assert self.cache.default_stale_time(("/api/marketing-banners",)) == STATIC_STALE_TIME
        assert self.cache.default_stale_time(("/api/something-else",)) == DEFAULT_STALE_TIME

    def test_longest_prefix_default_wins(self):
        self.cache.set_query_defaults(("/api/reports",), 100)
        self.cache.set_query_defaults(("/api/reports", "daily"), 5)

        assert self.cache.default_stale_time(("/api/reports", "daily", 1)) == 5
        assert self.cache.default_stale_time(("/api/reports", "weekly")) == 100

    def test_string_keys_are_normalized(self):
        self.cache.set_data("/api/products", [1])

        assert self.cache.get(("/api/products",)) == [1]

    def test_write_without_cached_value_is_noop(self):
        """Test that an optimistic write to an empty key does nothing."""
        updater = Mock()

        assert self.cache.write(("/api/shipments/my",), updater) is None
        updater.assert_not_called()

    def test_two_subscribers_see_same_patch(self):
        """Test that every subscriber observes the same optimistically written value."""
        shipments = parse_shipments(self.mock_responses["shipments"])
        self.cache.set_data(("/api/shipments/my",), shipments)
        seen_a, seen_b = [], []
        self.cache.subscribe(("/api/shipments/my",), seen_a.append)
        self.cache.subscribe(("/api/shipments/my",), seen_b.append)

        self.cache.write(("/api/shipments/my",), lambda items: replace_in_list(items, 7, status="cancelled"))

        assert seen_a == seen_b
        assert seen_a[-1][0].status == "cancelled"
        assert shipments[0].status == "pending"

    def test_write_invalidate_read_returns_server_value(self):
        """Test that invalidation discards an optimistic value on the next read."""
        fetcher = Mock(return_value=[{"id": 7, "status": "pending"}])
        self.cache.read(("/api/catalog",), fetcher)
        self.cache.write(("/api/catalog",), lambda items: replace_in_list(items, 7, status="cancelled"))
        assert self.cache.get(("/api/catalog",))[0]["status"] == "cancelled"

        self.cache.invalidate(("/api/catalog",))

        assert self.cache.read(("/api/catalog",), fetcher)[0]["status"] == "pending"

    def test_older_fetch_resolving_late_is_discarded(self):
        """Test that a slow fetch cannot overwrite the result of a fetch issued after it."""
        key = ("/api/catalog",)
        received = []
        self.cache.subscribe(key, received.append)

        def slow_fetch():
            # A newer fetch starts and stores while this one is still in flight
            self.cache.read(key, lambda: ["newer"], stale_time=0)
            return ["older"]

        result = self.cache.read(key, slow_fetch, stale_time=0)

        assert result == ["newer"]
        assert self.cache.get(key) == ["newer"]
        assert received == [["newer"]]

    def test_fetch_overrides_optimistic_write_made_in_flight(self):
        key = ("/api/catalog",)
        self.cache.set_data(key, [{"id": 7, "status": "pending"}])

        def fetch_during_patch():
            self.cache.write(key, lambda items: replace_in_list(items, 7, status="cancelled"))
            assert self.cache.get(key)[0]["status"] == "cancelled"
            return [{"id": 7, "status": "approved"}]

        self.cache.read(key, fetch_during_patch, stale_time=0)

        assert self.cache.get(key) == [{"id": 7, "status": "approved"}]
        assert not self.cache.is_stale(key)

    def test_invalidate_prefix_marks_children_stale(self):
        self.cache.set_data(("/api/shipments", 7, "items"), [1])
        self.cache.set_data(("/api/shipments", 8, "items"), [2])
        self.cache.set_data(("/api/shipments/my",), [3])

        matched = self.cache.invalidate(("/api/shipments",))

        assert set(matched) == {("/api/shipments", 7, "items"), ("/api/shipments", 8, "items")}
        assert self.cache.is_stale(("/api/shipments", 7, "items"))
        assert not self.cache.is_stale(("/api/shipments/my",))

    def test_invalidate_refetches_subscribed_keys(self):
        """Test that active subscribers receive the refetched server value."""
        fetcher = Mock(side_effect=[["v1"], ["v2"]])
        self.cache.read(("/api/catalog",), fetcher)
        received = []
        self.cache.subscribe(("/api/catalog",), received.append)

        self.cache.invalidate(("/api/catalog",))

        assert received == [["v2"]]
        assert not self.cache.is_stale(("/api/catalog",))

    def test_invalidate_survives_refetch_error(self):
        fetcher = Mock(side_effect=[["v1"], RuntimeError("down")])
        self.cache.read(("/api/catalog",), fetcher)
        self.cache.subscribe(("/api/catalog",), lambda value: None)

        self.cache.invalidate(("/api/catalog",))

        assert self.cache.is_stale(("/api/catalog",))
        assert self.cache.get(("/api/catalog",)) == ["v1"]

    def test_unsubscribed_view_receives_nothing(self):
        """Test that a late write after unsubscribing notifies nobody and does not raise."""
        self.cache.set_data(("/api/catalog",), [1])
        received = []
        unsubscribe = self.cache.subscribe(("/api/catalog",), received.append)
        unsubscribe()

        self.cache.set_data(("/api/catalog",), [2])

        assert received == []
        assert self.cache.subscriber_count(("/api/catalog",)) == 0

    def test_failing_subscriber_does_not_block_others(self):
        self.cache.set_data(("/api/catalog",), [1])
        received = []
        self.cache.subscribe(("/api/catalog",), Mock(side_effect=RuntimeError("boom")))
        self.cache.subscribe(("/api/catalog",), received.append)

        self.cache.set_data(("/api/catalog",), [2])

        assert received == [[2]]

    def test_fetch_error_propagates_from_read(self):
        with pytest.raises(RuntimeError):
            self.cache.read(("/api/catalog",), Mock(side_effect=RuntimeError("down")))

    def test_refresh_due_respects_interval(self):
        """Test periodic refetch only after the interval has elapsed."""
        fetcher = Mock(side_effect=[["v1"], ["v2"]])
        self.cache.read(("/api/shipments/track", 9), fetcher, refetch_interval=30)

        self.clock.now += 10
        assert self.cache.refresh_due() == []

        self.clock.now += 25
        assert self.cache.refresh_due() == [("/api/shipments/track", 9)]
        assert self.cache.get(("/api/shipments/track", 9)) == ["v2"]

    def test_remove_and_clear(self):
        self.cache.set_data(("/api/users",), [1])
        self.cache.set_data(("/api/products",), [2])

        assert self.cache.remove(("/api/users",)) == 1
        assert self.cache.keys() == [("/api/products",)]
        self.cache.clear()
        assert self.cache.keys() == []


class TestListHelpers:

    def test_replace_in_list_returns_new_objects(self):
        items = [{"id": 1, "status": "pending"}, {"id": 2, "status": "pending"}]

        updated = replace_in_list(items, 2, status="cancelled")

        assert updated[1]["status"] == "cancelled"
        assert items[1]["status"] == "pending"
        assert updated[0] is items[0]

    def test_replace_in_list_handles_none(self):
        assert replace_in_list(None, 1, status="x") is None

    def test_remove_from_list(self):
        assert remove_from_list([{"id": 1}, {"id": 2}], 1) == [{"id": 2}]
