from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import Setting
from . import audit_service
from .concurrency import run_with_retry


# Supported keys: type, default (as stored text), description
SETTINGS_CATALOG: dict[str, dict[str, Any]] = {
    "shop_name": {"type": "string", "default": "Liquor Store", "description": "Shop name for receipts"},
    "shop_address": {"type": "string", "default": "", "description": "Shop address"},
    "shop_phone": {"type": "string", "default": "", "description": "Shop phone number"},
    "receipt_footer": {
        "type": "string",
        "default": "Thank you for your business! Please drink responsibly.",
        "description": "Receipt footer message",
    },
    "tax_rate": {"type": "int", "default": "16", "description": "VAT rate percentage"},
    "closing_variance_threshold_cents": {
        "type": "int",
        "default": None,
        "description": "Cash variance (cents) at or above which a closing is flagged DISCREPANCY",
    },
    "default_reorder_level": {
        "type": "int",
        "default": None,
        "description": "Reorder level applied to new products when none is given",
    },
}


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None or row.value is None:
        return default
    return row.value


def get_int_setting(key: str, default: int) -> int:
    """Typed read; a missing or unparsable value falls back to default."""
    raw = get_setting(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def list_settings() -> list[dict]:
    rows = {r.key: r for r in db.session.query(Setting).order_by(Setting.key.asc()).all()}
    result = []
    for key, meta in SETTINGS_CATALOG.items():
        row = rows.get(key)
        result.append({
            "key": key,
            "type": meta["type"],
            "value": row.value if row is not None else meta["default"],
            "description": (row.description if row is not None and row.description else meta["description"]),
            "is_default": row is None,
            "updated_at": row.to_dict()["updated_at"] if row is not None else None,
        })
    return result


def _normalize(key: str, value: Any) -> str | None:
    meta = SETTINGS_CATALOG.get(key)
    if meta is None:
        raise SettingsValidationError(f"Unknown setting: {key}")
    if value is None:
        return None
    if meta["type"] == "int":
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise SettingsValidationError(f"{key} must be an integer")
        try:
            parsed = int(str(value).strip())
        except ValueError:
            raise SettingsValidationError(f"{key} must be an integer")
        if parsed < 0:
            raise SettingsValidationError(f"{key} must be >= 0")
        return str(parsed)
    return str(value).strip()


def upsert_setting(*, key: str, value: Any, actor_id: int, description: str | None = None) -> dict:
    """Create or update a setting and record SETTING_UPDATE in the audit log."""
    normalized = _normalize(key, value)

    def _op():
        try:
            row = db.session.query(Setting).filter_by(key=key).first()
            old_value = row.value if row is not None else None
            if row is None:
                row = Setting(key=key, description=description or SETTINGS_CATALOG[key]["description"])
                db.session.add(row)
            elif description is not None:
                row.description = description
            row.value = normalized
            row.updated_by_user_id = actor_id
            db.session.flush()

            audit_service.append_audit(
                user_id=actor_id,
                action="SETTING_UPDATE",
                entity_type="Setting",
                entity_id=key,
                description=f"Updated setting {key}",
                old_value={"value": old_value},
                new_value={"value": normalized},
            )
            db.session.commit()
            return row.to_dict()
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def ensure_defaults() -> int:
    """Insert catalog defaults that are not stored yet. Returns count added."""
    existing = {k for (k,) in db.session.query(Setting.key).all()}
    added = 0
    for key, meta in SETTINGS_CATALOG.items():
        if key in existing or meta["default"] is None:
            continue
        db.session.add(Setting(key=key, value=meta["default"], description=meta["description"]))
        added += 1
    if added:
        db.session.commit()
    return added
