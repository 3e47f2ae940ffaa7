"""
Display helpers: ids, currency, dates, service names and carrier tracking links.

All money arrives in integer cents and is only converted for display here.
"""

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

logger = logging.getLogger(__name__)

MOOGSHIP_TRACKING_PATH = "/takip?q={tracking}"


def format_shipment_id(shipment_id: int) -> str:
    """Zero-pad a shipment id to six digits (7 -> 000007)."""
    return str(shipment_id).zfill(6)


def format_cents(cents: Optional[int], empty: str = "N/A") -> str:
    """Render integer cents as dollars: 12345 -> $123.45."""
    if cents is None:
        return empty
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(int(cents)), 100)
    return f"{sign}${dollars:,}.{remainder:02d}"


def dollars_to_cents(value: Any) -> int:
    """Parse a dollar amount ("12.34", 12.34) into integer cents, half-up."""
    try:
        amount = Decimal(str(value).strip().replace("$", "").replace(",", ""))
    except (InvalidOperation, AttributeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int) -> str:
    """Plain two-decimal dollar string for form inputs (12345 -> "123.45")."""
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(int(cents)), 100)
    return f"{sign}{dollars}.{remainder:02d}"


def format_multiplier(multiplier: Optional[float]) -> str:
    if multiplier is None:
        return "N/A"
    return f"{float(multiplier):.2f}x"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; returns None for anything unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000 if value > 1e11 else value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(value: Any, empty: str = "N/A") -> str:
    """Format a timestamp as M/D/YYYY."""
    parsed = parse_datetime(value)
    if parsed is None:
        return empty
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def format_datetime(value: Any, empty: str = "Unknown") -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        return empty
    return f"{parsed.month}/{parsed.day}/{parsed.year} {parsed.strftime('%H:%M')}"


def status_label(status: Optional[str]) -> str:
    """in_transit -> In Transit"""
    if not status:
        return "Unknown"
    return status.replace("_", " ").title()


# Raw provider service codes mapped to customer-facing names
SERVICE_NAME_MAPPINGS = {
    "shipentegra-eco-primary": "MoogShip ECO",
    "shipentegra": "MoogShip ECO",
    "shipentegra-widect": "MoogShip ECO",
    "shipentegra-ingiltere-eko-plus": "MoogShip UK ECO",
    "shipentegra-ups-express": "MoogShip UPS Express",
    "afs-ups-express": "MoogShip UPS Express",
    "shipentegra-fedex": "MoogShip FedEx",
    "shipentegra-worldwide-standard": "MoogShip Worldwide Standard",
    "ecoafs": "MoogShip ECO",
    "afs-gls-express": "MoogShip GLS Express",
    "aramex-ppx": "MoogShip Aramex Express",
    "aramex-ppx-0": "MoogShip Aramex Express",
    "aramex-plx": "MoogShip Aramex Letter",
    "aramex-plx-1": "MoogShip Aramex Letter",
    "aramex-epx": "MoogShip Aramex Economy",
    "aramex-epx-2": "MoogShip Aramex Economy",
    "aramex-gdx": "MoogShip Aramex Ground",
    "aramex-gdx-3": "MoogShip Aramex Ground",
}

ARAMEX_PRODUCTS = {
    "ppx": "MoogShip Aramex Express",
    "plx": "MoogShip Aramex Letter",
    "epx": "MoogShip Aramex Economy",
    "gdx": "MoogShip Aramex Ground",
}


def get_service_display_name(raw_service_name: Optional[str]) -> str:
    """Normalize a raw provider service name so raw codes never reach the UI."""
    if not raw_service_name or not isinstance(raw_service_name, str):
        return raw_service_name or "Unknown Service"

    name = raw_service_name.lower().strip()

    if name in SERVICE_NAME_MAPPINGS:
        return SERVICE_NAME_MAPPINGS[name]

    if "ups" in name and "express" in name:
        return "MoogShip UPS Express"
    if "fedex" in name:
        return "MoogShip FedEx"
    if "worldwide" in name and "standard" in name:
        return "MoogShip Worldwide Standard"
    if "widect" in name:
        return "MoogShip ECO"
    if "ingiltere" in name and "eko" in name:
        return "MoogShip UK ECO"
    if "gls" in name and "express" in name:
        return "MoogShip GLS Express"
    if "aramex" in name:
        for code, display in ARAMEX_PRODUCTS.items():
            if code in name:
                return display
        return "MoogShip Aramex"
    if "eco" in name:
        return "MoogShip ECO"
    if "express" in name:
        return "MoogShip Express"
    if "standard" in name:
        return "MoogShip Standard"

    logger.warning(f"Unknown service name: {raw_service_name}, defaulting to MoogShip ECO")
    return "MoogShip ECO"


def detect_carrier(tracking_number: Optional[str]) -> str:
    """Guess the carrier from the tracking number format."""
    if not tracking_number:
        return "UNKNOWN"

    number = tracking_number.strip().upper()

    if re.fullmatch(r"1Z[A-Z0-9]{16}", number):
        return "UPS"

    # MoogShip/AFS internal formats come before the broader numeric patterns
    if (re.fullmatch(r"MGS_?[A-Z0-9]+", number)
            or re.fullmatch(r"\d{6,8}", number)
            or re.fullmatch(r"003\d{11,14}", number)):
        return "AFS"

    if re.fullmatch(r"[A-Z]{2}\d{9}GB", number):
        return "ROYAL"

    if re.fullmatch(r"\d{12}|\d{15}|\d{20}", number):
        return "FEDEX"

    if re.fullmatch(r"\d{10,15}", number) and (
            len(number) in (11, 12) or number.startswith("50") or number.startswith("59")):
        return "GLS"

    if ((re.fullmatch(r"\d{16,30}", number) and not number.startswith("003"))
            or re.fullmatch(r"(GM|RX|JV|CV|TV|JX)[A-Z0-9]{7,12}", number)
            or (re.fullmatch(r"\d{13,15}", number)
                and not number.startswith("50") and not number.startswith("59"))):
        return "DHL"

    return "UNKNOWN"


def get_carrier_from_service(selected_service: Optional[str]) -> str:
    """Map an automated service code to the carrier that actually moves the parcel."""
    if not selected_service:
        return "Standard"

    service = selected_service.lower()

    if "ups" in service:
        return "UPS"
    if "fedex" in service:
        return "FedEx"
    if "dhl" in service:
        return "DHL"
    if "ingiltere" in service:
        return "ingiltere"
    if "ecoafs" in service or "afs-" in service or "gls" in service:
        return "GLS"
    if "eco" in service:
        return "DHL E-Commerce"
    if "standard" in service or "standart" in service or "widect" in service:
        return "MoogShip Standard"
    return "Standard"


CARRIER_NAME_URLS = [
    ("ups", "https://www.ups.com/track?tracknum={tracking}"),
    ("dhl", "https://www.dhl.com/us-en/home/tracking.html?tracking-id={tracking}&submit=1"),
    ("fedex", "https://www.fedex.com/fedextrack/?trknbr={tracking}"),
    ("gls", "https://gls-group.eu/GROUP/en/parcel-tracking/"),
    ("aramex", "https://www.aramex.com/us/en/track/shipments?ShipmentNumber={tracking}"),
    ("usps", "https://tools.usps.com/go/TrackConfirmAction?tLabels={tracking}"),
    ("royal mail", "https://www.royalmail.com/track-your-item#/details/{tracking}"),
    ("afs transport", "https://afstransport.com/tester_web.php?action=track&company=GLS&kod={tracking}"),
    ("aras", "https://kargotakip.aras.com.tr/track.aspx?guid={tracking}"),
    ("mng", "https://service.mngkargo.com.tr/kargom-nerede?code={tracking}"),
    ("yurtici", "https://www.yurticikargo.com/tr/online-servisler/gonderi-sorgula?code={tracking}"),
    ("yurtiçi", "https://www.yurticikargo.com/tr/online-servisler/gonderi-sorgula?code={tracking}"),
    ("ptt", "https://gonderitakip.ptt.gov.tr/Track/Verify?q={tracking}"),
]

SERVICE_CARRIER_URLS = {
    "UPS": "https://www.ups.com/track?tracknum={tracking}",
    "FedEx": "https://www.fedex.com/fedextrack/?trknbr={tracking}",
    "GLS": "https://afstransport.com/tester_web.php?action=track&company=GLS&kod={tracking}",
    "DHL": "https://www.dhl.com/us-en/home/tracking.html?tracking-id={tracking}",
}

ALLOWED_TRACKING_CARRIERS = {"ups", "usps", "dhl", "fedex", "aramex", "gls", "royal mail", "afs transport"}


def is_allowed_carrier(carrier_name: Optional[str]) -> bool:
    return bool(carrier_name) and carrier_name.lower() in ALLOWED_TRACKING_CARRIERS


def get_carrier_tracking_url(carrier_name: Optional[str], selected_service: Optional[str],
                             tracking_number: Optional[str]) -> Optional[str]:
    """Build a public tracking link.

    An explicit carrier name (admin override) wins, then the service code,
    then the MoogShip tracking page.
    """
    if not tracking_number:
        return None

    if carrier_name:
        normalized = carrier_name.lower()
        for fragment, template in CARRIER_NAME_URLS:
            if fragment in normalized:
                return template.format(tracking=tracking_number)

    if selected_service and "dhl" in selected_service.lower():
        return CARRIER_NAME_URLS[1][1].format(tracking=tracking_number)

    carrier = get_carrier_from_service(selected_service)
    if carrier in SERVICE_CARRIER_URLS:
        return SERVICE_CARRIER_URLS[carrier].format(tracking=tracking_number)

    return MOOGSHIP_TRACKING_PATH.format(tracking=tracking_number)


def tracking_link_for_shipment(shipment) -> Optional[str]:
    """Tracking link for the most specific tracking number a shipment carries."""
    if shipment.manualTrackingNumber:
        if shipment.manualTrackingLink:
            return shipment.manualTrackingLink
        return get_carrier_tracking_url(shipment.manualCarrierName, shipment.selectedService,
                                        shipment.manualTrackingNumber)
    if shipment.carrierTrackingNumber:
        return get_carrier_tracking_url(shipment.carrierName, shipment.selectedService,
                                        shipment.carrierTrackingNumber)
    if shipment.trackingNumber:
        return MOOGSHIP_TRACKING_PATH.format(tracking=shipment.trackingNumber)
    return None
