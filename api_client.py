"""
HTTP client for the MoogShip API.
"""

import logging
import time
from typing import Any, Dict, Optional

import requests

TIMEOUT_MESSAGE = "Request timeout - please check your connection and try again"


class ApiError(Exception):
    """Raised for non-2xx responses and transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MoogShipClient:
    """Thin wrapper around requests that carries session credentials."""

    def __init__(self, base_url: str, user_id: Optional[str] = None, session_id: Optional[str] = None,
                 timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = requests.Session()

        # Session credentials for every request
        if user_id:
            self.session.headers["X-User-Id"] = str(user_id)
        if session_id:
            self.session.headers["X-Session-Id"] = session_id

    def url_for(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, json: Any = None, files: Optional[Dict] = None,
                params: Optional[Dict] = None, raw: bool = False) -> Any:
        """Send a request and return parsed JSON, or the raw response when raw=True.

        Multipart uploads go through ``files``; no Content-Type header is set so
        requests can compute the boundary.
        """
        url = self.url_for(path)

        try:
            response = self.session.request(
                method,
                url,
                json=json,
                files=files,
                params=params,
                timeout=self.timeout,
            )
        except requests.Timeout:
            self.logger.error(f"{method} {path} timed out after {self.timeout}s")
            raise ApiError(TIMEOUT_MESSAGE)
        except requests.ConnectionError as e:
            self.logger.error(f"{method} {path} connection error: {str(e)}")
            raise ApiError("Unable to reach the MoogShip server")

        if not response.ok:
            message = self._error_message(response)
            self.logger.error(f"{method} {path} failed: {response.status_code} - {message}")
            raise ApiError(message, response.status_code)

        if raw:
            return response
        if not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            self.logger.error(f"{method} {path} returned a non-JSON body")
            raise ApiError("Unexpected response from server", response.status_code)

    def _error_message(self, response: requests.Response) -> str:
        generic = f"{response.status_code}: {response.reason or 'Request failed'}"
        try:
            body = response.json()
        except ValueError:
            return generic
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return generic

    def get(self, path: str, params: Optional[Dict] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, files: Optional[Dict] = None) -> Any:
        return self.request("POST", path, json=json, files=files)

    def patch(self, path: str, json: Any = None) -> Any:
        return self.request("PATCH", path, json=json)

    def put(self, path: str, json: Any = None) -> Any:
        return self.request("PUT", path, json=json)

    def delete(self, path: str, json: Any = None) -> Any:
        return self.request("DELETE", path, json=json)

    def download_label(self, shipment_id: int, label_type: str = "moogship") -> bytes:
        """Fetch a label PDF. The v parameter busts any intermediate cache."""
        if label_type not in ("moogship", "carrier"):
            raise ValueError(f"Unknown label type: {label_type}")

        params = {"type": label_type, "v": int(time.time() * 1000)}
        response = self.request("GET", f"/api/shipments/{shipment_id}/label", params=params, raw=True)
        return response.content
