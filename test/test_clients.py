"""
Clients and bakery settings.
"""

from io import BytesIO

from PIL import Image

from conftest import create_order


def test_client_crud_and_search(client, auth):
    created = client.post(
        "/clients",
        json={"name": "Joana Prado", "phone": "11988887777", "email": "joana@example.com"},
        headers=auth,
    ).json()
    client.post("/clients", json={"name": "Pedro"}, headers=auth)

    assert [c["name"] for c in client.get("/clients?search=8888", headers=auth).json()] == ["Joana Prado"]
    assert [c["name"] for c in client.get("/clients?search=JOANA@", headers=auth).json()] == ["Joana Prado"]
    assert len(client.get("/clients", headers=auth).json()) == 2

    response = client.put(f"/clients/{created['id']}", json={"city": "Santos"}, headers=auth)
    assert response.json()["city"] == "Santos"
    assert response.json()["name"] == "Joana Prado"


def test_client_name_required(client, auth):
    assert client.post("/clients", json={"name": "  "}, headers=auth).status_code == 400


def test_client_summary_counts_sold_orders(client, auth):
    customer = client.post("/clients", json={"name": "Joana"}, headers=auth).json()
    items = [{"product_name": "Bolo", "unit_price_cents": 4000}]
    create_order(client, auth, items=items, client_id=customer["id"], status="confirmed")
    create_order(client, auth, items=items, client_id=customer["id"], status="delivered")
    create_order(client, auth, items=items, client_id=customer["id"])

    details = client.get(f"/clients/{customer['id']}", headers=auth).json()
    assert details["order_count"] == 2
    assert details["total_spent_cents"] == 8000


def test_delete_client_keeps_orders(client, auth):
    customer = client.post("/clients", json={"name": "Joana"}, headers=auth).json()
    order = create_order(client, auth, items=[{"product_name": "Bolo", "unit_price_cents": 100}], client_id=customer["id"])

    assert client.delete(f"/clients/{customer['id']}", headers=auth).json() == {"status": "deleted", "id": customer["id"]}

    kept = client.get(f"/orders/{order['id']}", headers=auth).json()
    assert kept["client_id"] is None
    assert kept["client_name"] == "Joana"


def test_bakery_settings(client, auth):
    settings = client.get("/bakery/settings", headers=auth).json()
    assert settings["bakery_name"] == "Confeitaria de Ana"
    assert settings["email"] == "owner@example.com"
    assert settings["logo_url"] is None

    response = client.put(
        "/bakery/settings",
        json={"bakery_name": "  Doces da Ana ", "pix_key": "ana@pix.com", "address_city": "Campinas"},
        headers=auth,
    )
    updated = response.json()
    assert updated["bakery_name"] == "Doces da Ana"
    assert updated["pix_key"] == "ana@pix.com"
    assert updated["email"] == "owner@example.com"


def test_bakery_logo(client, auth):
    buffer = BytesIO()
    Image.new("RGB", (64, 64), (255, 200, 200)).save(buffer, format="JPEG")

    response = client.post(
        "/bakery/logo",
        files={"file": ("logo.jpg", buffer.getvalue(), "image/jpeg")},
        headers=auth,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["logo_url"].endswith(".jpg")
    assert data["logo_size_bytes"] > 0
    assert data["logo_size_formatted"].endswith("B")

    assert client.delete("/bakery/logo", headers=auth).json()["logo_url"] is None
