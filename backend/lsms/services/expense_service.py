# Overview: Service-layer operations for expenses; submission and the Owner approval workflow.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Expense, ExpenseCategory
from ..validation import ConflictError, ValidationError
from lsms.time_utils import utcnow
from . import audit_service
from .concurrency import run_with_retry
"""
Expense Workflow Invariants

- New expenses are always PENDING.
- PENDING -> APPROVED or PENDING -> REJECTED, exactly once.
- The decision is a conditional UPDATE (... WHERE status = 'PENDING'), so of
  two concurrent decisions exactly one wins; the loser gets a 409 and
  changes nothing.
- The decision and its audit entry commit together.
"""


DECISION_ACTIONS = ("approve", "reject")


class ExpenseError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ExpenseNotFoundError(ExpenseError):
    pass


def submit_expense(*, patch: dict, actor_id: int) -> Expense:
    """
    Create a PENDING expense from a validated patch
    (category_id, amount_cents, description, payment_method, receipt_image).
    """
    def _op():
        try:
            if not db.session.query(ExpenseCategory.id).filter_by(id=patch["category_id"]).first():
                raise ValidationError("Expense category not found")

            expense = Expense(
                category_id=patch["category_id"],
                amount_cents=patch["amount_cents"],
                description=patch["description"],
                payment_method=patch.get("payment_method") or "CASH",
                receipt_image=patch.get("receipt_image"),
                status="PENDING",
                submitted_by=actor_id,
            )
            db.session.add(expense)
            db.session.commit()
            return expense
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_expenses(
    *,
    actor_id: int,
    is_owner: bool,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Owners see every expense; sellers only their own submissions."""
    query = db.session.query(Expense)
    if not is_owner:
        query = query.filter(Expense.submitted_by == actor_id)
    if status:
        query = query.filter(Expense.status == status.strip().upper())
    if start is not None:
        query = query.filter(Expense.created_at >= start)
    if end is not None:
        query = query.filter(Expense.created_at <= end)

    page = max(int(page or 1), 1)
    limit = max(1, min(int(limit or 50), 200))

    total = query.count()
    rows = (
        query.order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "expenses": [e.to_dict() for e in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def decide_expense(
    *,
    expense_id: int,
    action: str,
    actor_id: int,
    rejection_reason: str | None = None,
) -> Expense:
    """
    Approve or reject a PENDING expense (Owner).

    Raises:
        ExpenseError: invalid action, or reject without a reason when
            REQUIRE_REJECTION_REASON is on
        ExpenseNotFoundError: unknown id
        ConflictError: expense no longer PENDING ("Expense already processed")
    """
    action = (action or "").strip().lower() if isinstance(action, str) else ""
    if action not in DECISION_ACTIONS:
        raise ExpenseError("Invalid action", details={"allowed": list(DECISION_ACTIONS)})

    reason = (rejection_reason or "").strip() if isinstance(rejection_reason, str) else ""
    if action == "reject" and not reason and current_app.config.get("REQUIRE_REJECTION_REASON", True):
        raise ExpenseError("rejection_reason is required when rejecting an expense")

    new_status = "APPROVED" if action == "approve" else "REJECTED"

    def _op():
        try:
            now = utcnow()
            result = db.session.execute(
                update(Expense)
                .where(Expense.id == expense_id, Expense.status == "PENDING")
                .values(
                    status=new_status,
                    approved_by=actor_id,
                    approved_at=now,
                    rejection_reason=(reason[:500] or None) if action == "reject" else None,
                )
                .execution_options(synchronize_session="fetch")
            )

            expense = db.session.query(Expense).filter_by(id=expense_id).first()
            if not expense:
                raise ExpenseNotFoundError("Expense not found")
            if result.rowcount != 1:
                raise ConflictError("Expense already processed")

            audit_service.append_audit(
                user_id=actor_id,
                action="EXPENSE_APPROVE" if action == "approve" else "EXPENSE_REJECT",
                entity_type="Expense",
                entity_id=expense.id,
                description=(
                    f"{'Approved' if action == 'approve' else 'Rejected'} expense: "
                    f"{expense.description} ({expense.amount_cents} cents)"
                ),
                old_value={"status": "PENDING"},
                new_value={"status": new_status},
            )

            db.session.commit()
            return expense
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_expense_categories() -> list[dict]:
    counts = dict(
        db.session.query(Expense.category_id, func.count(Expense.id))
        .group_by(Expense.category_id)
        .all()
    )
    rows = db.session.query(ExpenseCategory).order_by(ExpenseCategory.name.asc()).all()
    result = []
    for c in rows:
        data = c.to_dict()
        data["expense_count"] = int(counts.get(c.id, 0))
        result.append(data)
    return result


def create_expense_category(*, name: str, description: str | None = None) -> ExpenseCategory:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120")

    if db.session.query(ExpenseCategory.id).filter(func.lower(ExpenseCategory.name) == name.lower()).first():
        raise ConflictError("Expense category already exists")

    category = ExpenseCategory(name=name, description=(description or "").strip() or None)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Expense category already exists")
    return category
