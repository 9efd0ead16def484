"""Audit trail reads and the health endpoint."""

from lsms.models import AuditLog
from lsms.services import audit_service


def test_append_audit_encodes_values(db_session, owner):
    entry = audit_service.append_audit(
        user_id=owner.id,
        action="TEST_ACTION",
        entity_type="Thing",
        entity_id=7,
        description="Did a thing",
        old_value={"a": 1},
        new_value={"a": 2},
    )
    db_session.commit()

    data = db_session.get(AuditLog, entry.id).to_dict()
    assert data["entity_id"] == "7"
    assert data["old_value"] == {"a": 1}
    assert data["new_value"] == {"a": 2}


def test_audit_log_route_filters(client, owner, owner_headers, whisky):
    client.put(f"/api/products/{whisky.id}", json={"name": "JW Black"}, headers=owner_headers)
    client.delete(f"/api/products/{whisky.id}", headers=owner_headers)

    logs = client.get("/api/audit-logs?entity_type=Product", headers=owner_headers).get_json()["logs"]
    assert [log["action"] for log in logs] == ["PRODUCT_ARCHIVE", "PRODUCT_UPDATE"]

    logs = client.get("/api/audit-logs?action=PRODUCT_UPDATE", headers=owner_headers).get_json()
    assert logs["count"] == 1
    assert logs["logs"][0]["user_id"] == owner.id


def test_health(client, owner, whisky):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["checks"]["database"]["details"]["products"] == 1
