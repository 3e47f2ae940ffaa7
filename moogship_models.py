"""
Pydantic data models for MoogShip API responses.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    TEMPORARY = "temporary"


class ApiModel(BaseModel):
    # The server adds fields over time; keep them instead of failing validation
    model_config = ConfigDict(extra="allow")


class PackageItem(ApiModel):
    id: Optional[int] = None
    shipmentId: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[int] = None
    gtin: Optional[str] = None
    hsCode: Optional[str] = None
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    countryOfOrigin: Optional[str] = None
    manufacturer: Optional[str] = None


class Shipment(ApiModel):
    id: int
    userId: Optional[int] = None
    status: Optional[str] = None

    # Tracking identifiers
    trackingNumber: Optional[str] = None
    carrierTrackingNumber: Optional[str] = None
    manualTrackingNumber: Optional[str] = None
    manualCarrierName: Optional[str] = None
    manualTrackingLink: Optional[str] = None
    carrierName: Optional[str] = None
    selectedService: Optional[str] = None
    serviceLevel: Optional[str] = None
    trackingInfo: Optional[Union[str, dict]] = None

    # Pricing, integer cents
    basePrice: Optional[int] = None
    fuelCharge: Optional[int] = None
    additionalFee: Optional[int] = None
    taxes: Optional[int] = None
    totalPrice: Optional[int] = None
    insuranceCost: Optional[int] = None
    originalTotalPrice: Optional[int] = None
    appliedMultiplier: Optional[float] = None

    # Sender
    senderName: Optional[str] = None
    senderAddress: Optional[str] = None
    senderCity: Optional[str] = None
    senderPostalCode: Optional[str] = None
    senderPhone: Optional[str] = None
    senderEmail: Optional[str] = None

    # Receiver
    receiverName: Optional[str] = None
    receiverAddress: Optional[str] = None
    receiverCity: Optional[str] = None
    receiverState: Optional[str] = None
    receiverCountry: Optional[str] = None
    receiverPostalCode: Optional[str] = None
    receiverPhone: Optional[str] = None
    receiverEmail: Optional[str] = None

    # Package
    packageWeight: Optional[float] = None
    packageLength: Optional[float] = None
    packageWidth: Optional[float] = None
    packageHeight: Optional[float] = None
    pieceCount: Optional[int] = None
    packageContents: Optional[str] = None
    packageItems: Optional[List[PackageItem]] = None

    # Documents
    invoiceFilename: Optional[str] = None
    invoiceUploadedAt: Optional[str] = None
    labelUrl: Optional[str] = None
    carrierLabelUrl: Optional[str] = None

    # Audit
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    approvedAt: Optional[str] = None
    approvedBy: Optional[int] = None
    rejectionReason: Optional[str] = None

    @property
    def margin_cents(self) -> Optional[int]:
        """Admin-visible margin: charged total minus the pre-multiplier total."""
        if self.totalPrice is None or self.originalTotalPrice is None:
            return None
        return self.totalPrice - self.originalTotalPrice

    @property
    def has_carrier_label(self) -> bool:
        return bool(self.carrierTrackingNumber)

    @property
    def effective_tracking_number(self) -> Optional[str]:
        return self.manualTrackingNumber or self.carrierTrackingNumber or self.trackingNumber

    @property
    def is_pending(self) -> bool:
        return self.status == ShipmentStatus.PENDING.value


class User(ApiModel):
    id: int
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = "user"
    balance: int = 0
    minimumBalance: Optional[int] = None
    priceMultiplier: float = 1.0
    isApproved: bool = False
    rejectionReason: Optional[str] = None
    approvedBy: Optional[int] = None
    approvedAt: Optional[str] = None
    canAccessCarrierLabels: Optional[bool] = None
    canAccessReturnSystem: Optional[bool] = None
    isEmailVerified: Optional[bool] = None
    companyName: Optional[str] = None
    createdAt: Optional[str] = None

    @property
    def approval_status(self) -> str:
        if self.isApproved:
            return "Approved"
        if self.rejectionReason:
            return "Rejected"
        return "Pending"

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"


class CountryPriceMultiplier(ApiModel):
    id: Optional[int] = None
    countryCode: str
    countryName: str
    priceMultiplier: float = 1.0
    isActive: bool = True


class WeightRangePriceMultiplier(ApiModel):
    id: Optional[int] = None
    minWeight: float
    maxWeight: Optional[float] = None
    priceMultiplier: float = 1.0
    rangeName: str
    isActive: bool = True


class Pagination(ApiModel):
    page: int = 1
    limit: int = 25
    total: int = 0
    totalPages: int = 0
    hasNext: bool = False
    hasPrev: bool = False


class PaginatedShipments(ApiModel):
    data: List[Shipment] = []
    pagination: Pagination = Pagination()


class BalanceAdjustment(ApiModel):
    balanceAdjustment: int = 0


class PriceUpdateResponse(ApiModel):
    shipment: BalanceAdjustment = BalanceAdjustment()


class BatchPrintResponse(ApiModel):
    labelUrl: Optional[str] = None


class InvoiceUploadResponse(ApiModel):
    filename: Optional[str] = None
    uploadedAt: Optional[str] = None


def parse_shipments(data: Any) -> List[Shipment]:
    """Validate a raw list payload into Shipment models."""
    if not data:
        return []
    return [Shipment.model_validate(item) for item in data]


def parse_users(data: Any) -> List[User]:
    if not data:
        return []
    return [User.model_validate(item) for item in data]
