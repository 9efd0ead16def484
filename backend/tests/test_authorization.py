"""
Authorization tests for LSMS.

Verifies:
- Unauthenticated requests return 401
- Seller role denied Owner operations (403)
- Owner role can perform privileged operations
- Role permission map stays least-privilege for sellers
"""

import pytest

from lsms.permissions import DEFAULT_ROLE_PERMISSIONS, get_all_permission_codes, has_permission


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/categories"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("POST", "/api/inventory/adjust"),
            ("GET", "/api/inventory/movements"),
            ("GET", "/api/expenses"),
            ("POST", "/api/expenses/1/decision"),
            ("GET", "/api/closing"),
            ("POST", "/api/closing"),
            ("GET", "/api/dashboard"),
            ("GET", "/api/reports"),
            ("GET", "/api/audit-logs"),
            ("GET", "/api/settings"),
            ("PUT", "/api/settings/shop_name"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# SELLER DENIED OWNER OPERATIONS (403)
# =============================================================================


class TestSellerDeniedOwnerOperations:
    """Seller role cannot perform privileged operations."""

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("GET", "/api/users", None),
            ("POST", "/api/users", {"name": "x", "email": "x@x.com", "password": "P@ssw0rd123!"}),
            ("PATCH", "/api/users/1", {"is_active": False}),
            ("POST", "/api/products", {"sku": "X", "name": "X", "cost_price_cents": 1, "selling_price_cents": 2}),
            ("PUT", "/api/products/1", {"name": "X"}),
            ("DELETE", "/api/products/1", None),
            ("POST", "/api/categories", {"name": "X"}),
            ("POST", "/api/inventory/adjust", {"product_id": 1, "type": "PURCHASE", "quantity": 1, "reason": "x"}),
            ("POST", "/api/sales/1/void", {"reason": "x"}),
            ("POST", "/api/expenses/1/decision", {"action": "approve"}),
            ("GET", "/api/reports", None),
            ("GET", "/api/audit-logs", None),
            ("GET", "/api/settings", None),
            ("PUT", "/api/settings/shop_name", {"value": "Mine"}),
        ],
    )
    def test_denied(self, client, seller_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=seller_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        data = resp.get_json()
        assert data["error"] == "Permission denied"
        assert data["required_permission"]


class TestSellerAllowedCounterOperations:
    """Seller can run the counter."""

    @pytest.mark.parametrize(
        "path",
        ["/api/products", "/api/categories", "/api/sales", "/api/inventory/movements",
         "/api/expenses", "/api/expenses/categories", "/api/closing", "/api/dashboard"],
    )
    def test_allowed(self, client, seller_headers, path):
        assert client.get(path, headers=seller_headers).status_code == 200


class TestOwnerAccess:
    @pytest.mark.parametrize(
        "path",
        ["/api/users", "/api/reports", "/api/audit-logs", "/api/settings", "/api/dashboard"],
    )
    def test_allowed(self, client, owner_headers, path):
        assert client.get(path, headers=owner_headers).status_code == 200


# =============================================================================
# ROLE MAP
# =============================================================================


def test_owner_has_every_permission():
    for code in get_all_permission_codes():
        assert has_permission("OWNER", code)


def test_seller_is_least_privilege():
    assert set(DEFAULT_ROLE_PERMISSIONS["SELLER"]) == {
        "CREATE_SALE", "VIEW_PRODUCTS", "CREATE_EXPENSE", "PERFORM_CLOSING",
    }
    assert not has_permission("SELLER", "VIEW_PROFIT")


def test_unknown_role_has_nothing():
    assert not has_permission("MANAGER", "CREATE_SALE")
    assert not has_permission(None, "CREATE_SALE")
