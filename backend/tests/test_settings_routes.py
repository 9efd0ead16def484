"""Settings API (Owner only)."""


def test_list_and_update(client, owner_headers):
    resp = client.put(
        "/api/settings/receipt_footer",
        json={"value": "Asante!", "description": "Footer"},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["setting"]["value"] == "Asante!"

    items = {s["key"]: s for s in client.get("/api/settings", headers=owner_headers).get_json()["settings"]}
    assert items["receipt_footer"]["value"] == "Asante!"
    assert items["receipt_footer"]["is_default"] is False


def test_update_validation(client, owner_headers):
    assert client.put("/api/settings/receipt_footer", json={}, headers=owner_headers).status_code == 400
    assert client.put("/api/settings/unknown_key", json={"value": "x"}, headers=owner_headers).status_code == 400
    assert client.put("/api/settings/tax_rate", json={"value": "abc"}, headers=owner_headers).status_code == 400
