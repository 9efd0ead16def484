"""Login, logout, /me and session revocation."""

from lsms.models import SessionToken
from lsms.services import session_service

from conftest import TEST_PASSWORD, auth_headers


def test_login_returns_token_and_permissions(client, seller):
    resp = client.post("/api/auth/login", json={"email": "SELLER@test.local ", "password": TEST_PASSWORD})
    assert resp.status_code == 200
    data = resp.get_json()
    assert len(data["token"]) == 64
    assert data["user"]["role"] == "SELLER"
    assert "password_hash" not in data["user"]
    assert "CREATE_SALE" in data["permissions"]
    assert "VIEW_PROFIT" not in data["permissions"]


def test_login_rejects_bad_password(client, seller):
    resp = client.post("/api/auth/login", json={"email": "seller@test.local", "password": "Wrong123!"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid credentials"


def test_login_requires_both_fields(client, db_session):
    resp = client.post("/api/auth/login", json={"email": "seller@test.local"})
    assert resp.status_code == 400


def test_inactive_user_cannot_login(client, db_session, seller):
    seller.is_active = False
    db_session.commit()
    resp = client.post("/api/auth/login", json={"email": "seller@test.local", "password": TEST_PASSWORD})
    assert resp.status_code == 401


def test_me_requires_token(client, db_session):
    assert client.get("/api/auth/me").status_code == 401
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_me_returns_role_permissions(client, owner, owner_headers):
    resp = client.get("/api/auth/me", headers=owner_headers)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["role"] == "OWNER"
    assert "MANAGE_USERS" in data["permissions"]


def test_logout_revokes_token(client, seller, seller_headers):
    assert client.post("/api/auth/logout", headers=seller_headers).status_code == 200
    assert client.get("/api/auth/me", headers=seller_headers).status_code == 401
    # Second logout with the same token is rejected
    assert client.post("/api/auth/logout", headers=seller_headers).status_code == 401


def test_deactivated_user_token_stops_working(client, db_session, seller):
    headers = auth_headers(seller)
    seller.is_active = False
    db_session.commit()

    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert db_session.query(SessionToken).filter_by(user_id=seller.id, is_revoked=False).count() == 0


def test_token_is_stored_hashed(db_session, seller):
    session, token = session_service.create_session(user_id=seller.id)
    assert session.token_hash != token
    assert session.token_hash == session_service.hash_token(token)
