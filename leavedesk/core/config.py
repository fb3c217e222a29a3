import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

_WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _weekend_from_env() -> List[int]:
    raw = os.getenv("WEEKEND_DAYS", "saturday,sunday")
    days = []
    for name in raw.split(","):
        name = name.strip().lower()
        if name in _WEEKDAY_NAMES:
            days.append(_WEEKDAY_NAMES.index(name))
    return days


class LeavePolicySettings(BaseModel):
    # date.weekday() numbers: Monday=0 ... Sunday=6
    weekend_days: List[int] = Field(default_factory=_weekend_from_env)
    request_number_prefix: str = Field(default=os.getenv("REQUEST_NUMBER_PREFIX", "LR"))


class Config(BaseModel):
    app_name: str = "LeaveDesk"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leavedesk.db")

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    # Identity is established upstream; the gateway forwards the caller's profile id.
    user_id_header: str = os.getenv("USER_ID_HEADER", "X-User-Id")

    leave: LeavePolicySettings = LeavePolicySettings()

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if settings.database_url.startswith("sqlite:///./"):
        raise RuntimeError(
            "FATAL: DATABASE_URL must point at a real database for non-development environments."
        )
elif settings.database_url.startswith("sqlite"):
    _logger.info("Using SQLite database - row locks are not enforced.")
