"""
Shipment reads and actions against the MoogShip API.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from api_client import ApiError, MoogShipClient
from formatting import dollars_to_cents, format_cents
from moogship_models import (
    BatchPrintResponse,
    InvoiceUploadResponse,
    PackageItem,
    PaginatedShipments,
    PriceUpdateResponse,
    Shipment,
    ShipmentStatus,
    parse_shipments,
)
from mutations import MutationResult, Notifier, OptimisticMutation, PendingTracker, PreconditionFailed
from query_cache import QueryCache, key_matches, replace_in_list

MY_SHIPMENTS_KEY = ("/api/shipments/my",)
ALL_SHIPMENTS_KEY = ("/api/shipments/all",)
SHIPMENT_LIST_KEYS = [("/api/shipments",), MY_SHIPMENTS_KEY, ALL_SHIPMENTS_KEY]
PAGINATED_KEY = ("/api/admin/shipments/paginated",)
COUNTS_KEY = ("/api/admin/shipments/counts",)
TRACK_KEY = "/api/shipments/track"

MAX_INVOICE_BYTES = 10 * 1024 * 1024
PDF_CONTENT_TYPE = "application/pdf"


class ShipmentService:
    """Service class for shipment lists and shipment actions."""

    def __init__(self, client: MoogShipClient, cache: QueryCache, notifier: Notifier,
                 pending: Optional[PendingTracker] = None, refresh_seconds: Optional[float] = None):
        self.client = client
        self.cache = cache
        self.notifier = notifier
        self.pending = pending or PendingTracker()
        self.refresh_seconds = refresh_seconds
        self.logger = logging.getLogger(__name__)

    # Reads

    def list_my_shipments(self) -> List[Shipment]:
        """Shipments owned by the signed-in user."""
        return self.cache.read(MY_SHIPMENTS_KEY, self._fetch_list("/api/shipments/my"),
                               refetch_interval=self.refresh_seconds)

    def list_all_shipments(self) -> List[Shipment]:
        """Every shipment in the system (admin)."""
        return self.cache.read(ALL_SHIPMENTS_KEY, self._fetch_list("/api/shipments/all"),
                               refetch_interval=self.refresh_seconds)

    def list_paginated(self, page: int = 1, limit: int = 25, search: Optional[str] = None,
                       status: Optional[str] = None, customer_id: Optional[int] = None) -> PaginatedShipments:
        """One server-side page of the admin shipment list."""
        params = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if status:
            params["status"] = status
        if customer_id is not None:
            params["customerId"] = customer_id

        def fetch():
            data = self.client.get("/api/admin/shipments/paginated", params=params)
            result = PaginatedShipments.model_validate(data or {})
            self.logger.info(f"Fetched page {page} of admin shipments ({len(result.data)} rows)")
            return result

        key = PAGINATED_KEY + (page, limit, search or "", status or "", customer_id)
        return self.cache.read(key, fetch, refetch_interval=self.refresh_seconds)

    def shipment_counts(self) -> Dict[str, int]:
        return self.cache.read(COUNTS_KEY, lambda: self.client.get("/api/admin/shipments/counts") or {})

    def get_items(self, shipment_id: int) -> List[PackageItem]:
        """Package items for a single shipment."""
        def fetch():
            data = self.client.get(f"/api/shipments/{shipment_id}/items")
            return [PackageItem.model_validate(item) for item in data or []]

        return self.cache.read(("/api/shipments", shipment_id, "items"), fetch)

    def _fetch_list(self, path: str):
        def fetch():
            shipments = parse_shipments(self.client.get(path))
            self.logger.info(f"Fetched {len(shipments)} shipments from {path}")
            return shipments
        return fetch

    def _patches(self, shipment_id: int, **changes):
        """Optimistic updaters for every cached list holding the shipment."""
        patches = [(key, lambda items: replace_in_list(items, shipment_id, **changes))
                   for key in (MY_SHIPMENTS_KEY, ALL_SHIPMENTS_KEY)]

        def patch_page(page: PaginatedShipments) -> PaginatedShipments:
            return page.model_copy(update={"data": replace_in_list(page.data, shipment_id, **changes)})

        for key in self.cache.keys():
            if key_matches(key, PAGINATED_KEY) and key != PAGINATED_KEY:
                patches.append((key, patch_page))
        return patches

    def _mutation(self, name: str, mutate, entity_id=None, **kwargs) -> MutationResult:
        return OptimisticMutation(self.cache, self.notifier, name, mutate,
                                  pending=self.pending, entity_id=entity_id, **kwargs).run()

    # Actions

    def cancel(self, shipment: Shipment) -> MutationResult:
        """Cancel a pending shipment."""
        def check():
            if shipment.status != ShipmentStatus.PENDING.value:
                raise PreconditionFailed("Cannot Cancel Shipment", "Only pending shipments can be cancelled.")

        return self._mutation(
            "cancel",
            lambda: self.client.post(f"/api/shipments/{shipment.id}/cancel"),
            entity_id=shipment.id,
            precondition=check,
            patches=self._patches(shipment.id, status=ShipmentStatus.CANCELLED.value),
            invalidate=SHIPMENT_LIST_KEYS + [PAGINATED_KEY, COUNTS_KEY],
            success_title="Shipment Cancelled",
            success_message="Shipment has been cancelled successfully",
            error_title="Cancellation Failed",
            error_fallback="Failed to cancel shipment",
        )

    def request_tracking(self, shipment_id: int) -> MutationResult:
        """Ask the operations team to chase a tracking number."""
        return self._mutation(
            "request_tracking",
            lambda: self.client.post(f"/api/shipments/{shipment_id}/request-tracking"),
            entity_id=shipment_id,
            success_title="Tracking Request Sent",
            success_message="Your tracking request has been sent to our team.",
            error_title="Request Failed",
            error_fallback="Failed to send tracking request",
        )

    def refresh_tracking(self, shipment_id: int) -> MutationResult:
        return self._mutation(
            "refresh_tracking",
            lambda: self.client.post(f"/api/shipments/{shipment_id}/track"),
            entity_id=shipment_id,
            invalidate=[("/api/shipments", shipment_id), (TRACK_KEY, shipment_id)] + SHIPMENT_LIST_KEYS,
            success_title="Tracking Updated",
            success_message="Latest tracking information has been retrieved.",
            error_title="Tracking Update Failed",
        )

    def upload_invoice(self, shipment_id: int, filename: str, content: bytes,
                       content_type: Optional[str] = None) -> MutationResult:
        """Attach a PDF invoice (10 MB max)."""
        content_type = content_type or (PDF_CONTENT_TYPE if filename.lower().endswith(".pdf") else None)

        def check():
            if content_type != PDF_CONTENT_TYPE:
                raise PreconditionFailed("Invalid File Type", "Please select a PDF file.")
            if len(content) > MAX_INVOICE_BYTES:
                raise PreconditionFailed("File Too Large", "File size must be less than 10MB.")

        def upload():
            data = self.client.post(f"/api/shipments/{shipment_id}/upload-invoice",
                                    files={"invoice": (filename, content, content_type)})
            return InvoiceUploadResponse.model_validate(data or {})

        return self._mutation(
            "upload_invoice",
            upload,
            entity_id=shipment_id,
            precondition=check,
            patches=self._patches(shipment_id, invoiceFilename=filename),
            invalidate=[("/api/shipments",)],
            success_title="Invoice Uploaded",
            success_message="Invoice has been uploaded successfully.",
            error_title="Upload Failed",
            error_fallback="Failed to upload invoice",
        )

    def delete_invoice(self, shipment_id: int) -> MutationResult:
        return self._mutation(
            "delete_invoice",
            lambda: self.client.delete(f"/api/shipments/{shipment_id}/delete-invoice"),
            entity_id=shipment_id,
            patches=self._patches(shipment_id, invoiceFilename=None, invoiceUploadedAt=None),
            invalidate=[("/api/shipments",)],
            success_title="Invoice Deleted",
            success_message="Invoice has been deleted successfully.",
            error_title="Delete Failed",
            error_fallback="Failed to delete invoice",
        )

    def update_price(self, shipment_id: int, new_price_dollars) -> MutationResult:
        """Admin price override; the server adjusts the customer balance by the difference."""
        try:
            new_cents = dollars_to_cents(new_price_dollars)
        except ValueError:
            new_cents = None

        def check():
            if new_cents is None or new_cents < 0:
                raise PreconditionFailed("Invalid Price", "Please enter a valid price")

        def update():
            data = self.client.patch(f"/api/admin/shipments/{shipment_id}/price",
                                     json={"newPrice": new_cents / 100})
            return PriceUpdateResponse.model_validate(data or {})

        def describe(response: PriceUpdateResponse) -> str:
            adjustment = response.shipment.balanceAdjustment
            if adjustment:
                return f"Shipment price updated. Balance adjusted by {format_cents(adjustment)}"
            return "Shipment price updated. No balance adjustment needed."

        return self._mutation(
            "update_price",
            update,
            entity_id=shipment_id,
            precondition=check,
            patches=self._patches(shipment_id, totalPrice=new_cents) if new_cents is not None else [],
            invalidate=SHIPMENT_LIST_KEYS + [PAGINATED_KEY, ("/api/user",)],
            success_title="Price Updated",
            success_message=describe,
            error_title="Update Failed",
            error_fallback="Failed to update shipment price",
        )

    def batch_print(self, shipment_ids: Iterable[int]) -> MutationResult:
        """Merge labels for the selection into one PDF; result data is its absolute URL."""
        ids = list(shipment_ids)

        def check():
            if not ids:
                raise PreconditionFailed("No shipments selected", "Please select at least one shipment to print.")

        def print_labels():
            data = self.client.post("/api/shipments/batch-print", json={"shipmentIds": ids})
            response = BatchPrintResponse.model_validate(data or {})
            if not response.labelUrl:
                raise ApiError("No label URL returned by server")
            return self.client.url_for(response.labelUrl)

        return self._mutation(
            "batch_print",
            print_labels,
            precondition=check,
            success_title="Labels Ready",
            success_message=f"Generated labels for {len(ids)} shipment(s).",
            error_title="Print Failed",
            error_fallback="Failed to generate labels",
        )

    def batch_pickup(self, shipment_ids: Iterable[int], pickup_date: Optional[date],
                     notes: str = "") -> MutationResult:
        ids = list(shipment_ids)

        def check():
            if not ids:
                raise PreconditionFailed("No shipments selected", "Please select at least one shipment.")
            if not pickup_date:
                raise PreconditionFailed("Pickup date required", "Please select a pickup date.")

        def request_pickup():
            when = pickup_date if isinstance(pickup_date, datetime) else datetime.combine(pickup_date, datetime.min.time())
            return self.client.post("/api/shipments/batch-pickup", json={
                "shipmentIds": ids,
                "pickupDate": when.isoformat(),
                "pickupNotes": notes or "",
            })

        return self._mutation(
            "batch_pickup",
            request_pickup,
            precondition=check,
            invalidate=SHIPMENT_LIST_KEYS,
            success_title="Pickup Requested",
            success_message=f"Pickup requested for {len(ids)} shipment(s).",
            error_title="Pickup Request Failed",
            error_fallback="Failed to request pickup",
        )

    def purchase_labels(self, shipment_ids: Iterable[int], shipments: List[Shipment]) -> MutationResult:
        """Buy carrier labels for the approved shipments in the selection."""
        selected = set(shipment_ids)
        eligible = [s.id for s in shipments
                    if s.id in selected and s.status == ShipmentStatus.APPROVED.value]

        def check():
            if not eligible:
                raise PreconditionFailed("No eligible shipments selected",
                                         "Only approved shipments can have labels purchased.")

        return self._mutation(
            "purchase_labels",
            lambda: self.client.post("/api/shipments/purchase-labels", json={"shipmentIds": eligible}),
            precondition=check,
            invalidate=SHIPMENT_LIST_KEYS + [PAGINATED_KEY, ("/api/user",), ("/api/balance",)],
            success_title="Labels Purchased",
            success_message=f"Purchased carrier labels for {len(eligible)} shipment(s).",
            error_title="Purchase Failed",
            error_fallback="Failed to purchase labels",
        )

    def download_label(self, shipment: Shipment, label_type: str = "moogship") -> Optional[bytes]:
        """Return label PDF bytes, or None after recording an error notification."""
        if label_type == "carrier" and not shipment.has_carrier_label:
            self.notifier.error("Label Unavailable", "Carrier label is not available for this shipment yet.")
            return None

        try:
            with self.pending.track("download_label", shipment.id):
                return self.client.download_label(shipment.id, label_type)
        except ApiError as e:
            self.logger.error(f"Label download for shipment {shipment.id} failed: {e.message}")
            self.notifier.error("Download Failed", e.message)
            return None
