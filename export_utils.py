"""
CSV export of shipments and users.
"""

import logging
from typing import Any, Dict, List

import pandas as pd

from formatting import format_cents, format_date, format_shipment_id, status_label
from moogship_models import Shipment, User

logger = logging.getLogger(__name__)


def _text(record: Any, name: str) -> str:
    value = getattr(record, name, None)
    return "" if value is None else str(value)


def _dollars(cents) -> str:
    return f"{cents / 100:.2f}" if cents is not None else ""


def format_shipment_for_export(shipment: Shipment, is_admin: bool = False) -> Dict[str, Any]:
    """Flatten a shipment into export columns. Cost and multiplier columns are admin only."""
    row = {
        "formattedId": f"SHIP-{format_shipment_id(shipment.id)}",
        "id": shipment.id,
        "status": status_label(shipment.status) if shipment.status else "",
        "createdAt": format_date(shipment.createdAt, empty=""),
        "senderName": _text(shipment, "senderName"),
        "senderAddress1": _text(shipment, "senderAddress1") or _text(shipment, "senderAddress"),
        "senderCity": _text(shipment, "senderCity"),
        "senderPostalCode": _text(shipment, "senderPostalCode"),
        "senderCountry": _text(shipment, "senderCountry"),
        "receiverName": _text(shipment, "receiverName"),
        "receiverAddress1": _text(shipment, "receiverAddress1") or _text(shipment, "receiverAddress"),
        "receiverCity": _text(shipment, "receiverCity"),
        "receiverPostalCode": _text(shipment, "receiverPostalCode"),
        "receiverCountry": _text(shipment, "receiverCountry"),
        "serviceLevel": status_label(shipment.serviceLevel) if shipment.serviceLevel else "",
        "totalPrice": _dollars(shipment.totalPrice),
        "trackingNumber": _text(shipment, "trackingNumber"),
    }

    if shipment.packageWeight is not None:
        row["packageWeight"] = f"{shipment.packageWeight} kg"
    if shipment.packageLength and shipment.packageWidth and shipment.packageHeight:
        row["packageDimensions"] = (
            f"{shipment.packageLength} × {shipment.packageWidth} × {shipment.packageHeight} cm"
        )
    if shipment.packageContents:
        row["packageContents"] = shipment.packageContents

    if is_admin:
        row["costPrice"] = _dollars(shipment.originalTotalPrice)
        row["customerPrice"] = _dollars(shipment.totalPrice)
        row["priceMultiplier"] = (
            f"{shipment.appliedMultiplier:.2f}" if shipment.appliedMultiplier is not None else ""
        )

    return row


def format_user_for_export(user: User) -> Dict[str, Any]:
    row = {
        "id": user.id,
        "username": _text(user, "username"),
        "name": _text(user, "name"),
        "email": _text(user, "email"),
        "companyName": _text(user, "companyName"),
        "phone": _text(user, "phone"),
        "country": _text(user, "country"),
        "status": user.approval_status,
        "createdAt": format_date(user.createdAt, empty=""),
        "formattedBalance": format_cents(user.balance),
    }
    for source, column in (("address1", "address"), ("city", "city"), ("postalCode", "postalCode")):
        if getattr(user, source, None):
            row[column] = getattr(user, source)
    return row


def shipments_to_dataframe(shipments: List[Shipment], is_admin: bool = False) -> pd.DataFrame:
    return pd.DataFrame([format_shipment_for_export(s, is_admin) for s in shipments])


def users_to_dataframe(users: List[User]) -> pd.DataFrame:
    return pd.DataFrame([format_user_for_export(u) for u in users])


def to_csv(df: pd.DataFrame) -> bytes:
    """Encode a frame as UTF-8 CSV for st.download_button."""
    if df.empty:
        raise ValueError("No data to export")
    logger.info(f"Exporting {len(df)} rows to CSV")
    return df.to_csv(index=False).encode("utf-8")
