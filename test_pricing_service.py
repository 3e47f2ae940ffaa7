"""
Unit tests for price multiplier rules.
"""

import pytest
import requests_mock

from api_client import MoogShipClient
from mutations import MutationState, Notifier
from pricing_service import COUNTRIES_PATH, WEIGHT_RANGES_PATH, PriceMultiplierService, apply_multiplier
from query_cache import QueryCache
from test_data import BASE_URL, get_mock_api_responses


@pytest.mark.parametrize("cents, multiplier, expected", [
    (1000, 1.25, 1250),
    (999, 1.5, 1499),   # 1498.5 rounds half-up
    (1, 0.5, 1),
    (12345, 1.0, 12345),
    (3333, 1.1, 3666),  # 3666.3
])
def test_apply_multiplier(cents, multiplier, expected):
    """Test multiplier application rounds half-up to whole cents."""
    result = apply_multiplier(cents, multiplier)

    assert result == expected
    assert abs(result - cents * multiplier) <= 1


class TestPriceMultiplierService:

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.client = MoogShipClient(BASE_URL, user_id="1", session_id="admin-sess")
        self.cache = QueryCache()
        self.notifier = Notifier()
        self.service = PriceMultiplierService(self.client, self.cache, self.notifier)
        self.mock_responses = get_mock_api_responses()

    @requests_mock.Mocker()
    def test_list_countries(self, m):
        m.get(f"{BASE_URL}{COUNTRIES_PATH}", json=self.mock_responses["countries"])

        countries = self.service.list_countries()

        assert [c.countryCode for c in countries] == ["DE", "US"]

    @requests_mock.Mocker()
    def test_create_country(self, m):
        m.post(f"{BASE_URL}{COUNTRIES_PATH}", json={"id": 3})

        result = self.service.create_country("fr", "France", "1.15")

        assert result.ok
        assert m.last_request.json() == {"countryCode": "FR", "countryName": "France", "priceMultiplier": 1.15}
        assert self.notifier.last.description == "Country price multiplier created successfully"

    @requests_mock.Mocker()
    def test_create_country_validation(self, m):
        """Test that incomplete country rules never reach the server."""
        for args in (("", "France", "1.1"), ("FR", "", "1.1"), ("FR", "France", "0"), ("FR", "France", "x"),
                     ("FR", "France", "nan"), ("FR", "France", "inf")):
            result = self.service.create_country(*args)
            assert result.state == MutationState.REJECTED

        assert m.call_count == 0
        assert self.notifier.last.description == "Please fill all fields with valid values"

    @requests_mock.Mocker()
    def test_update_country_is_optimistic(self, m):
        m.get(f"{BASE_URL}{COUNTRIES_PATH}", json=self.mock_responses["countries"])
        m.put(f"{BASE_URL}{COUNTRIES_PATH}/1", json={"success": True})
        countries = self.service.list_countries()

        result = self.service.update_country(countries[0], multiplier=1.4)

        assert result.ok
        assert m.last_request.json() == {"priceMultiplier": 1.4}
        assert self.cache.get((COUNTRIES_PATH,))[0].priceMultiplier == 1.4

    @requests_mock.Mocker()
    def test_delete_country(self, m):
        m.get(f"{BASE_URL}{COUNTRIES_PATH}", json=self.mock_responses["countries"])
        m.delete(f"{BASE_URL}{COUNTRIES_PATH}/2", json={"success": True})
        self.service.list_countries()

        self.service.delete_country(2)

        assert [c.id for c in self.cache.get((COUNTRIES_PATH,))] == [1]
        assert self.cache.is_stale((COUNTRIES_PATH,))

    @requests_mock.Mocker()
    def test_create_weight_range_open_ended(self, m):
        m.post(f"{BASE_URL}{WEIGHT_RANGES_PATH}", json={"id": 3})

        result = self.service.create_weight_range("Bulk", "10", None, "1.3")

        assert result.ok
        assert m.last_request.json() == {
            "rangeName": "Bulk",
            "minWeight": 10.0,
            "maxWeight": None,
            "priceMultiplier": 1.3,
        }

    @requests_mock.Mocker()
    def test_weight_range_max_must_exceed_min(self, m):
        result = self.service.create_weight_range("Odd", "5", "2", "1.1")

        assert result.state == MutationState.REJECTED
        assert self.notifier.last.description == "Maximum weight must be greater than minimum weight"
        assert m.call_count == 0

    @requests_mock.Mocker()
    def test_weight_range_requires_fields(self, m):
        result = self.service.create_weight_range("", "-1", None, "1.1")

        assert result.state == MutationState.REJECTED
        assert self.notifier.last.description == "Please fill all required fields with valid values"

    @requests_mock.Mocker()
    def test_weight_range_rejects_non_finite_values(self, m):
        for args in (("Heavy", "nan", None, "1.1"), ("Heavy", "0", None, "inf")):
            result = self.service.create_weight_range(*args)
            assert result.state == MutationState.REJECTED

        assert m.call_count == 0

    @requests_mock.Mocker()
    def test_update_weight_range(self, m):
        m.get(f"{BASE_URL}{WEIGHT_RANGES_PATH}", json=self.mock_responses["weight_ranges"])
        m.put(f"{BASE_URL}{WEIGHT_RANGES_PATH}/1", json={"success": True})
        ranges = self.service.list_weight_ranges()

        result = self.service.update_weight_range(ranges[0], "Light", "0", "3", "1.05")

        assert result.ok
        assert self.cache.get((WEIGHT_RANGES_PATH,))[0].maxWeight == 3.0

    @requests_mock.Mocker()
    def test_delete_weight_range_failure(self, m):
        m.get(f"{BASE_URL}{WEIGHT_RANGES_PATH}", json=self.mock_responses["weight_ranges"])
        m.delete(f"{BASE_URL}{WEIGHT_RANGES_PATH}/2", json={"message": "Range in use"}, status_code=409)
        self.service.list_weight_ranges()

        result = self.service.delete_weight_range(2)

        assert result.state == MutationState.ROLLED_BACK
        assert self.notifier.last.title == "Error"
        assert self.notifier.last.description == "Range in use"
