"""
Country and weight-range price multiplier rules.
"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from api_client import MoogShipClient
from moogship_models import CountryPriceMultiplier, WeightRangePriceMultiplier
from mutations import MutationResult, Notifier, OptimisticMutation, PendingTracker, PreconditionFailed
from query_cache import QueryCache, remove_from_list, replace_in_list

COUNTRIES_PATH = "/api/price-multipliers/countries"
WEIGHT_RANGES_PATH = "/api/price-multipliers/weight-ranges"


def apply_multiplier(cents: int, multiplier: float) -> int:
    """Scale a cent amount, rounding half-up to a whole cent."""
    scaled = Decimal(int(cents)) * Decimal(str(multiplier))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _positive(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) and number > 0 else None


def _non_negative(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) and number >= 0 else None


class PriceMultiplierService:
    """Service class for the admin pricing rules editor."""

    def __init__(self, client: MoogShipClient, cache: QueryCache, notifier: Notifier,
                 pending: Optional[PendingTracker] = None):
        self.client = client
        self.cache = cache
        self.notifier = notifier
        self.pending = pending or PendingTracker()
        self.logger = logging.getLogger(__name__)

    def _mutation(self, name: str, mutate, entity_id=None, **kwargs) -> MutationResult:
        return OptimisticMutation(self.cache, self.notifier, name, mutate, pending=self.pending,
                                  entity_id=entity_id, success_title="Success", error_title="Error",
                                  **kwargs).run()

    # Countries

    def list_countries(self) -> List[CountryPriceMultiplier]:
        def fetch():
            data = self.client.get(COUNTRIES_PATH) or []
            return [CountryPriceMultiplier.model_validate(item) for item in data]

        return self.cache.read((COUNTRIES_PATH,), fetch)

    def _check_country(self, code: str, name: str, multiplier):
        def check():
            if not (code or "").strip() or not (name or "").strip() or _positive(multiplier) is None:
                raise PreconditionFailed("Error", "Please fill all fields with valid values")
        return check

    def create_country(self, country_code: str, country_name: str, multiplier) -> MutationResult:
        def create():
            return self.client.post(COUNTRIES_PATH, json={
                "countryCode": country_code.strip().upper(),
                "countryName": country_name.strip(),
                "priceMultiplier": float(multiplier),
            })

        return self._mutation(
            "create_country_multiplier", create,
            precondition=self._check_country(country_code, country_name, multiplier),
            invalidate=[(COUNTRIES_PATH,)],
            success_message="Country price multiplier created successfully",
        )

    def update_country(self, item: CountryPriceMultiplier, multiplier=None,
                       is_active: Optional[bool] = None) -> MutationResult:
        changes = {}
        if multiplier is not None:
            changes["priceMultiplier"] = _positive(multiplier)
        if is_active is not None:
            changes["isActive"] = is_active

        def check():
            if "priceMultiplier" in changes and changes["priceMultiplier"] is None:
                raise PreconditionFailed("Error", "Please fill all fields with valid values")

        return self._mutation(
            "update_country_multiplier",
            lambda: self.client.put(f"{COUNTRIES_PATH}/{item.id}", json=changes),
            entity_id=item.id,
            precondition=check,
            patches=[((COUNTRIES_PATH,), lambda items: replace_in_list(items, item.id, **changes))],
            success_message="Country price multiplier updated successfully",
        )

    def delete_country(self, item_id: int) -> MutationResult:
        return self._mutation(
            "delete_country_multiplier",
            lambda: self.client.delete(f"{COUNTRIES_PATH}/{item_id}"),
            entity_id=item_id,
            patches=[((COUNTRIES_PATH,), lambda items: remove_from_list(items, item_id))],
            success_message="Country price multiplier deleted successfully",
        )

    # Weight ranges

    def list_weight_ranges(self) -> List[WeightRangePriceMultiplier]:
        def fetch():
            data = self.client.get(WEIGHT_RANGES_PATH) or []
            return [WeightRangePriceMultiplier.model_validate(item) for item in data]

        return self.cache.read((WEIGHT_RANGES_PATH,), fetch)

    def _check_weight_range(self, range_name: str, min_weight, max_weight, multiplier):
        def check():
            minimum = _non_negative(min_weight)
            if not (range_name or "").strip() or minimum is None or _positive(multiplier) is None:
                raise PreconditionFailed("Error", "Please fill all required fields with valid values")
            if max_weight not in (None, ""):
                maximum = _positive(max_weight)
                if maximum is None or maximum <= minimum:
                    raise PreconditionFailed("Error", "Maximum weight must be greater than minimum weight")
        return check

    @staticmethod
    def _weight_range_body(range_name, min_weight, max_weight, multiplier) -> dict:
        return {
            "rangeName": range_name.strip(),
            "minWeight": float(min_weight),
            "maxWeight": float(max_weight) if max_weight not in (None, "") else None,
            "priceMultiplier": float(multiplier),
        }

    def create_weight_range(self, range_name: str, min_weight, max_weight, multiplier) -> MutationResult:
        return self._mutation(
            "create_weight_range",
            lambda: self.client.post(WEIGHT_RANGES_PATH, json=self._weight_range_body(
                range_name, min_weight, max_weight, multiplier)),
            precondition=self._check_weight_range(range_name, min_weight, max_weight, multiplier),
            invalidate=[(WEIGHT_RANGES_PATH,)],
            success_message="Weight range price multiplier created successfully",
        )

    def update_weight_range(self, item: WeightRangePriceMultiplier, range_name: str, min_weight,
                            max_weight, multiplier) -> MutationResult:
        check = self._check_weight_range(range_name, min_weight, max_weight, multiplier)
        try:
            check()
            body = self._weight_range_body(range_name, min_weight, max_weight, multiplier)
        except PreconditionFailed:
            body = None

        return self._mutation(
            "update_weight_range",
            lambda: self.client.put(f"{WEIGHT_RANGES_PATH}/{item.id}", json=body),
            entity_id=item.id,
            precondition=check,
            patches=[((WEIGHT_RANGES_PATH,), lambda items: replace_in_list(items, item.id, **body))] if body else [],
            success_message="Weight range price multiplier updated successfully",
        )

    def delete_weight_range(self, item_id: int) -> MutationResult:
        return self._mutation(
            "delete_weight_range",
            lambda: self.client.delete(f"{WEIGHT_RANGES_PATH}/{item_id}"),
            entity_id=item_id,
            patches=[((WEIGHT_RANGES_PATH,), lambda items: remove_from_list(items, item_id))],
            success_message="Weight range price multiplier deleted successfully",
        )
