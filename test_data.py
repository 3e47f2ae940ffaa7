"""
Mock data and test fixtures for MoogShip dashboard testing.
"""

import copy
import json

BASE_URL = "https://api.moogship.test"

MOCK_SHIPMENTS_RESPONSE = [
    {
        "id": 7,
        "userId": 3,
        "status": "pending",
        "trackingNumber": None,
        "selectedService": "shipentegra-ups-express",
        "totalPrice": 5000,
        "originalTotalPrice": 4000,
        "appliedMultiplier": 1.25,
        "senderName": "Ada Exports",
        "senderCity": "Istanbul",
        "receiverName": "John Smith",
        "receiverCity": "Berlin",
        "receiverCountry": "DE",
        "packageWeight": 2.5,
        "packageLength": 30,
        "packageWidth": 20,
        "packageHeight": 10,
        "packageContents": "Ceramic mugs",
        "createdAt": "2024-03-01T10:00:00Z",
    },
    {
        "id": 8,
        "userId": 3,
        "status": "approved",
        "trackingNumber": "MGS123456",
        "carrierTrackingNumber": "1Z999AA10123456784",
        "carrierName": "UPS",
        "selectedService": "afs-ups-express",
        "totalPrice": 12345,
        "originalTotalPrice": 10000,
        "appliedMultiplier": 1.2345,
        "receiverName": "Alice Jones",
        "receiverCity": "London",
        "receiverCountry": "GB",
        "invoiceFilename": "invoice-8.pdf",
        "invoiceUploadedAt": "2024-03-03T09:30:00Z",
        "createdAt": "2024-03-02T08:00:00Z",
    },
    {
        "id": 9,
        "userId": 4,
        "status": "in_transit",
        "trackingNumber": "MGS654321",
        "selectedService": "shipentegra-eco-primary",
        "totalPrice": 2500,
        "receiverName": "bob brown",
        "receiverCity": "Paris",
        "receiverCountry": "FR",
        "trackingInfo": json.dumps({
            "events": [
                {"timestamp": "2024-03-05T12:00:00Z", "status": "Departed facility", "location": "Istanbul"},
                {"timestamp": "2024-03-06T15:30:00Z", "status": "Arrived at hub"},
            ]
        }),
        "createdAt": "2024-03-04T07:00:00Z",
    },
]

MOCK_PAGINATED_RESPONSE = {
    "data": MOCK_SHIPMENTS_RESPONSE[:2],
    "pagination": {
        "page": 1,
        "limit": 2,
        "total": 3,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    },
}

MOCK_COUNTS_RESPONSE = {"pending": 1, "approved": 1, "in_transit": 1}

MOCK_ITEMS_RESPONSE = [
    {"id": 1, "shipmentId": 7, "name": "Mug", "quantity": 4, "price": 1250, "hsCode": "6912.00",
     "countryOfOrigin": "TR"},
]

MOCK_USERS_RESPONSE = [
    {
        "id": 3,
        "username": "ada",
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "companyName": "Ada Exports",
        "role": "user",
        "balance": 150000,
        "priceMultiplier": 1.25,
        "isApproved": True,
        "canAccessCarrierLabels": False,
        "canAccessReturnSystem": False,
        "createdAt": "2024-01-10T10:00:00Z",
    },
    {
        "id": 4,
        "username": "grace",
        "name": "Grace Hopper",
        "email": "grace@example.com",
        "role": "user",
        "balance": -500,
        "priceMultiplier": 1.0,
        "isApproved": False,
        "createdAt": "2024-02-10T10:00:00Z",
    },
    {
        "id": 5,
        "username": "linus",
        "name": "Linus T",
        "email": "linus@example.com",
        "role": "admin",
        "balance": 0,
        "isApproved": False,
        "rejectionReason": "Incomplete documents",
    },
]

MOCK_COUNTRY_MULTIPLIERS = [
    {"id": 1, "countryCode": "DE", "countryName": "Germany", "priceMultiplier": 1.1, "isActive": True},
    {"id": 2, "countryCode": "US", "countryName": "United States", "priceMultiplier": 1.3, "isActive": True},
]

MOCK_WEIGHT_RANGES = [
    {"id": 1, "rangeName": "Light", "minWeight": 0, "maxWeight": 2, "priceMultiplier": 1.0, "isActive": True},
    {"id": 2, "rangeName": "Heavy", "minWeight": 2, "maxWeight": None, "priceMultiplier": 1.2, "isActive": True},
]


def get_mock_api_responses():
    """Get all mock API responses for testing."""
    return copy.deepcopy({
        "shipments": MOCK_SHIPMENTS_RESPONSE,
        "paginated": MOCK_PAGINATED_RESPONSE,
        "counts": MOCK_COUNTS_RESPONSE,
        "items": MOCK_ITEMS_RESPONSE,
        "users": MOCK_USERS_RESPONSE,
        "countries": MOCK_COUNTRY_MULTIPLIERS,
        "weight_ranges": MOCK_WEIGHT_RANGES,
    })
