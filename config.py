"""
Environment configuration for the MoogShip dashboard.
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

DEFAULT_API_URL = "https://www.moogship.com"

REQUIRED_VARIABLES = ["MOOGSHIP_USER_ID", "MOOGSHIP_SESSION_ID"]


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""

    def __init__(self, message: str, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])


class AppConfig(BaseModel):
    api_url: str = DEFAULT_API_URL
    user_id: str
    session_id: str
    is_admin: bool = False
    page_size: int = 25
    refresh_seconds: int = 60
    request_timeout: float = 30


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def load_config(environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """Read settings from the environment (and a .env file when present)."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = [name for name in REQUIRED_VARIABLES if not environ.get(name)]
    if missing:
        raise ConfigError(f"Missing configuration: {', '.join(missing)}", missing)

    values = {
        "api_url": environ.get("MOOGSHIP_API_URL") or DEFAULT_API_URL,
        "user_id": environ["MOOGSHIP_USER_ID"],
        "session_id": environ["MOOGSHIP_SESSION_ID"],
        "is_admin": _flag(environ.get("MOOGSHIP_IS_ADMIN")),
    }
    for field_name, variable in (("page_size", "MOOGSHIP_PAGE_SIZE"),
                                 ("refresh_seconds", "MOOGSHIP_REFRESH_SECONDS"),
                                 ("request_timeout", "MOOGSHIP_REQUEST_TIMEOUT")):
        if environ.get(variable):
            values[field_name] = environ[variable]

    try:
        return AppConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Configuration error: {str(e)}")
