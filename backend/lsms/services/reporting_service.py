# Overview: Service-layer operations for reporting; dashboard figures and the Owner sales report.

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func

from lsms.extensions import db
from lsms.models import Expense, Product, Sale, SaleItem
from lsms.time_utils import business_date, business_today, day_bounds_utc, parse_iso_date, to_utc_z

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Keys stripped from the dashboard for users without VIEW_PROFIT
OWNER_ONLY_DASHBOARD_KEYS = (
    "gross_profit_cents",
    "gross_profit_margin",
    "expenses_cents",
    "net_profit_cents",
    "weekly_sales",
)


class ReportError(Exception):
    """Raised when report generation fails."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _tz() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def _parse_day(value: str | None, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ReportError(f"{field} must be a date (YYYY-MM-DD)")


def _sales_totals(start, end) -> tuple[int, int, int]:
    """(total_cents, gross_profit_cents, count) for non-voided sales in [start, end)."""
    row = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.coalesce(func.sum(Sale.gross_profit_cents), 0),
        func.count(Sale.id),
    ).filter(
        Sale.is_voided.is_(False),
        Sale.created_at >= start,
        Sale.created_at < end,
    ).one()
    return int(row[0]), int(row[1]), int(row[2])


def _percent_change(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def dashboard_summary(*, is_owner: bool, today: date | None = None) -> dict:
    """
    Today's figures for the home screen.

    Sellers get counts and totals only; profit, margin, expenses, net profit
    and the weekly series are removed for them.
    """
    tz = _tz()
    today = today or business_today(tz)
    start, end = day_bounds_utc(today, tz)
    y_start, _ = day_bounds_utc(today - timedelta(days=1), tz)

    today_total, today_profit, today_count = _sales_totals(start, end)
    yesterday_total, _, _ = _sales_totals(y_start, start)

    breakdown = dict(
        db.session.query(Sale.payment_method, func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(Sale.is_voided.is_(False), Sale.created_at >= start, Sale.created_at < end)
        .group_by(Sale.payment_method)
        .all()
    )

    expenses_today = int(
        db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0))
        .filter(
            Expense.status == "APPROVED",
            Expense.approved_at >= start,
            Expense.approved_at < end,
        )
        .scalar()
        or 0
    )
    pending_expenses = db.session.query(func.count(Expense.id)).filter(Expense.status == "PENDING").scalar() or 0

    low_stock = (
        db.session.query(Product)
        .filter(Product.is_active, Product.current_stock <= Product.reorder_level)
        .order_by(Product.current_stock.asc(), Product.name.asc())
        .all()
    )
    total_products = db.session.query(func.count(Product.id)).filter(Product.is_active).scalar() or 0

    recent = (
        db.session.query(Sale)
        .filter(Sale.is_voided.is_(False))
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )

    response = {
        "date": today.isoformat(),
        "today_sales_cents": today_total,
        "today_sales_count": today_count,
        "today_sales_change": _percent_change(today_total, yesterday_total),
        "gross_profit_cents": today_profit,
        "gross_profit_margin": round(today_profit / today_total * 100, 1) if today_total > 0 else 0,
        "expenses_cents": expenses_today,
        "pending_expenses": int(pending_expenses),
        "net_profit_cents": today_profit - expenses_today,
        "low_stock_count": len(low_stock),
        "total_products": int(total_products),
        "payment_breakdown": {
            "cash_cents": int(breakdown.get("CASH", 0)),
            "mpesa_cents": int(breakdown.get("MPESA", 0)),
            "card_cents": int(breakdown.get("CARD", 0)),
        },
        "recent_sales": [
            {
                "id": s.id,
                "receipt_number": s.receipt_number,
                "amount_cents": s.total_cents,
                "items": sum(i.quantity for i in s.items),
                "time": to_utc_z(s.created_at),
                "payment_method": s.payment_method,
            }
            for s in recent
        ],
        "low_stock_products": [
            {
                "id": p.id,
                "name": p.name,
                "stock": p.current_stock,
                "reorder_level": p.reorder_level,
            }
            for p in low_stock[:5]
        ],
        "weekly_sales": _weekly_series(today, tz),
    }

    if not is_owner:
        for key in OWNER_ONLY_DASHBOARD_KEYS:
            response.pop(key, None)

    return response


def _weekly_series(today: date, tz: str) -> list[dict]:
    first_day = today - timedelta(days=6)
    start, _ = day_bounds_utc(first_day, tz)
    _, end = day_bounds_utc(today, tz)

    series = {}
    for i in range(7):
        day = first_day + timedelta(days=i)
        series[day] = {"day": DAY_NAMES[day.weekday()], "date": day.isoformat(), "sales_cents": 0, "profit_cents": 0}

    rows = (
        db.session.query(Sale.created_at, Sale.total_cents, Sale.gross_profit_cents)
        .filter(Sale.is_voided.is_(False), Sale.created_at >= start, Sale.created_at < end)
        .all()
    )
    for created_at, total, profit in rows:
        bucket = series.get(business_date(created_at, tz))
        if bucket is not None:
            bucket["sales_cents"] += total
            bucket["profit_cents"] += profit

    return list(series.values())


def sales_report(*, start: str | None = None, end: str | None = None, top_n: int = 10) -> dict:
    """
    Owner report over an inclusive business-date range.

    Only non-voided sales and APPROVED expenses (filtered by approved_at)
    count. Every breakdown sums to its headline figure.
    """
    tz = _tz()
    start_day = _parse_day(start, "start")
    end_day = _parse_day(end, "end")
    if start_day and end_day and start_day > end_day:
        raise ReportError("start must be on or before end")

    start_dt = day_bounds_utc(start_day, tz)[0] if start_day else None
    end_dt = day_bounds_utc(end_day, tz)[1] if end_day else None

    sales_q = db.session.query(Sale).filter(Sale.is_voided.is_(False))
    expenses_q = db.session.query(Expense).filter(Expense.status == "APPROVED")
    if start_dt is not None:
        sales_q = sales_q.filter(Sale.created_at >= start_dt)
        expenses_q = expenses_q.filter(Expense.approved_at >= start_dt)
    if end_dt is not None:
        sales_q = sales_q.filter(Sale.created_at < end_dt)
        expenses_q = expenses_q.filter(Expense.approved_at < end_dt)

    sales = sales_q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
    expenses = expenses_q.order_by(Expense.approved_at.desc(), Expense.id.desc()).all()

    total_sales = sum(s.total_cents for s in sales)
    total_cogs = sum(s.total_cost_cents for s in sales)
    gross_profit = sum(s.gross_profit_cents for s in sales)
    total_expenses = sum(e.amount_cents for e in expenses)

    payment_breakdown = {"cash_cents": 0, "mpesa_cents": 0, "card_cents": 0}
    for s in sales:
        payment_breakdown[f"{s.payment_method.lower()}_cents"] += s.total_cents

    daily: dict[date, dict] = {}
    for s in sales:
        day = business_date(s.created_at, tz)
        bucket = daily.setdefault(day, {"date": day.isoformat(), "sales_cents": 0, "profit_cents": 0})
        bucket["sales_cents"] += s.total_cents
        bucket["profit_cents"] += s.gross_profit_cents

    expense_breakdown: dict[str, int] = {}
    for e in expenses:
        name = e.category.name if e.category else "Uncategorized"
        expense_breakdown[name] = expense_breakdown.get(name, 0) + e.amount_cents

    return {
        "start": start_day.isoformat() if start_day else None,
        "end": end_day.isoformat() if end_day else None,
        "summary": {
            "total_sales_cents": total_sales,
            "total_cogs_cents": total_cogs,
            "gross_profit_cents": gross_profit,
            "total_expenses_cents": total_expenses,
            "net_profit_cents": gross_profit - total_expenses,
            "sales_count": len(sales),
            "avg_sale_cents": round(total_sales / len(sales)) if sales else 0,
        },
        "payment_breakdown": payment_breakdown,
        "top_products": top_products(start_dt=start_dt, end_dt=end_dt, limit=top_n),
        "chart_data": [daily[d] for d in sorted(daily)],
        "expense_breakdown": expense_breakdown,
        "sales": [s.to_dict(include_items=False) for s in sales[:50]],
        "expenses": [e.to_dict() for e in expenses[:50]],
    }


def top_products(*, start_dt=None, end_dt=None, limit: int = 10) -> list[dict]:
    """Best sellers by revenue, from the SaleItem snapshots of non-voided sales."""
    query = (
        db.session.query(
            SaleItem.product_id,
            func.max(SaleItem.product_name).label("name"),
            func.coalesce(func.sum(SaleItem.quantity), 0).label("quantity"),
            func.coalesce(func.sum(SaleItem.subtotal_cents), 0).label("revenue"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.is_voided.is_(False))
    )
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Sale.created_at < end_dt)

    limit = max(1, min(int(limit or 10), 100))
    rows = (
        query.group_by(SaleItem.product_id)
        .order_by(func.sum(SaleItem.subtotal_cents).desc(), SaleItem.product_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "name": row.name,
            "quantity": int(row.quantity),
            "revenue_cents": int(row.revenue),
        }
        for row in rows
    ]
