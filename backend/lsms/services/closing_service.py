# Overview: Service-layer operations for the daily cash closing; expected takings and reconciliation.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailyClosing, Sale
from ..validation import ConflictError, ValidationError, coerce_int
from lsms.time_utils import business_today, day_bounds_utc
from . import audit_service, settings_service
from .concurrency import run_with_retry


class ClosingError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _tz() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def variance_threshold_cents() -> int:
    """Settings override Config; |variance| below this is APPROVED."""
    return settings_service.get_int_setting(
        "closing_variance_threshold_cents",
        int(current_app.config.get("CLOSING_VARIANCE_THRESHOLD_CENTS", 10000)),
    )


def classify_variance(variance_cents: int, threshold_cents: int) -> str:
    return "APPROVED" if abs(variance_cents) < threshold_cents else "DISCREPANCY"


def expected_takings(day: date) -> dict:
    """
    Expected figures for a business day from non-voided sales,
    grouped by payment method.
    """
    start, end = day_bounds_utc(day, _tz())
    rows = (
        db.session.query(
            Sale.payment_method,
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.count(Sale.id),
        )
        .filter(
            Sale.is_voided.is_(False),
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .group_by(Sale.payment_method)
        .all()
    )
    by_method = {method: (int(total), int(count)) for method, total, count in rows}

    cash = by_method.get("CASH", (0, 0))[0]
    mpesa = by_method.get("MPESA", (0, 0))[0]
    card = by_method.get("CARD", (0, 0))[0]
    return {
        "cash_cents": cash,
        "mpesa_cents": mpesa,
        "card_cents": card,
        "total_cents": cash + mpesa + card,
        "sales_count": sum(count for _, count in by_method.values()),
    }


def get_closing_overview(day: date | None = None) -> dict:
    day = day or business_today(_tz())
    existing = db.session.query(DailyClosing).filter_by(business_date=day).first()
    recent = (
        db.session.query(DailyClosing)
        .order_by(DailyClosing.business_date.desc())
        .limit(7)
        .all()
    )
    expected = expected_takings(day)
    return {
        "date": day.isoformat(),
        "expected": {
            "cash_cents": expected["cash_cents"],
            "mpesa_cents": expected["mpesa_cents"],
            "card_cents": expected["card_cents"],
            "total_cents": expected["total_cents"],
        },
        "sales_count": expected["sales_count"],
        "variance_threshold_cents": variance_threshold_cents(),
        "existing_closing": existing.to_dict() if existing else None,
        "recent_closings": [c.to_dict() for c in recent],
    }


def _optional_amount(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    amount = coerce_int(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    return amount


def submit_closing(
    *,
    day: date,
    declared_cash_cents,
    actor_id: int,
    declared_mpesa_cents=None,
    declared_card_cents=None,
    notes: str | None = None,
) -> DailyClosing:
    """
    Record the end-of-day cash count for a business day.

    - Only one closing per day: a second submission is a 409 and writes nothing.
    - cash variance = declared cash - expected cash; total variance = cash variance.
    - APPROVED iff |variance| < threshold, else DISCREPANCY.
    - M-Pesa / card declarations are stored for reference only.
    """
    if day is None:
        raise ValidationError("date is required")
    if day > business_today(_tz()):
        raise ClosingError("Cannot close a future date")
    if declared_cash_cents is None or declared_cash_cents == "":
        raise ValidationError("declared_cash_cents is required")
    declared_cash = coerce_int(declared_cash_cents, "declared_cash_cents")
    if declared_cash < 0:
        raise ValidationError("declared_cash_cents must be >= 0")
    declared_mpesa = _optional_amount(declared_mpesa_cents, "declared_mpesa_cents")
    declared_card = _optional_amount(declared_card_cents, "declared_card_cents")
    notes = (str(notes).strip() or None) if notes is not None else None

    threshold = variance_threshold_cents()

    def _op():
        try:
            if db.session.query(DailyClosing.id).filter_by(business_date=day).first():
                raise ConflictError("Closing already submitted for this date")

            expected = expected_takings(day)
            cash_variance = declared_cash - expected["cash_cents"]
            status = classify_variance(cash_variance, threshold)

            closing = DailyClosing(
                business_date=day,
                user_id=actor_id,
                expected_cash_cents=expected["cash_cents"],
                expected_mpesa_cents=expected["mpesa_cents"],
                expected_card_cents=expected["card_cents"],
                expected_total_cents=expected["total_cents"],
                declared_cash_cents=declared_cash,
                declared_mpesa_cents=declared_mpesa,
                declared_card_cents=declared_card,
                cash_variance_cents=cash_variance,
                total_variance_cents=cash_variance,
                status=status,
                notes=notes,
            )
            db.session.add(closing)
            db.session.flush()

            audit_service.append_audit(
                user_id=actor_id,
                action="DAILY_CLOSING",
                entity_type="DailyClosing",
                entity_id=closing.id,
                description=f"Daily closing submitted for {day.isoformat()}. Cash variance: {cash_variance} cents",
                new_value={
                    "declared_cash_cents": declared_cash,
                    "expected_cash_cents": expected["cash_cents"],
                    "variance_cents": cash_variance,
                    "status": status,
                },
            )

            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Closing already submitted for this date")
        except Exception:
            db.session.rollback()
            raise

        if status == "DISCREPANCY":
            current_app.logger.warning(
                "Closing discrepancy on %s: declared=%s expected=%s variance=%s (user_id=%s)",
                day.isoformat(),
                declared_cash,
                expected["cash_cents"],
                cash_variance,
                actor_id,
            )
        return closing

    return run_with_retry(_op)
