from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lsms.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lsms.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Timezone that defines the store's calendar day (receipts, closings, dashboard)
    BUSINESS_TIMEZONE = os.environ.get("LSMS_TIMEZONE", "UTC")

    # |declared cash - expected cash| below this is APPROVED (100.00 in currency units)
    CLOSING_VARIANCE_THRESHOLD_CENTS = int(
        os.environ.get("LSMS_CLOSING_VARIANCE_THRESHOLD_CENTS", "10000")
    )

    # When False, a discount larger than the subtotal is rejected
    ALLOW_NEGATIVE_SALE_TOTAL = _env_bool("LSMS_ALLOW_NEGATIVE_SALE_TOTAL", False)

    # When True, rejecting an expense requires a non-empty rejection_reason
    REQUIRE_REJECTION_REASON = _env_bool("LSMS_REQUIRE_REJECTION_REASON", True)

    DEFAULT_REORDER_LEVEL = 10

    SESSION_ABSOLUTE_TIMEOUT_HOURS = 24
    SESSION_IDLE_TIMEOUT_HOURS = 8

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "LSMS_CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
