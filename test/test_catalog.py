"""
Public storefront: visibility, visit counters and cart checkout.
"""

from datetime import datetime, timedelta, timezone

from sqlmodel import Session, select

from confeitaria import models
from confeitaria.db import engine

from conftest import OWNER_EMAIL, create_product

CAKE = {
    "name": "Bolo Festa",
    "price_cents": 6000,
    "sizes": [{"name": "P", "price_cents": 4000}, {"name": "G", "price_cents": 9000}],
    "variations": [{"name": "Massa", "options": [{"name": "Chocolate", "price_cents": 500}, {"name": "Baunilha"}]}],
    "addons": [{"name": "Topo", "price_cents": 1500}],
}


def _owner_id(client, auth) -> int:
    return client.get("/users/me", headers=auth).json()["id"]


def _customer(**fields) -> dict:
    return {
        "name": "Lucia",
        "phone": "11955554444",
        "address": "Rua das Flores, 10",
        "delivery_date": "2030-05-20",
        "pickup_time": "15:00",
        **fields,
    }


def test_catalog_shows_only_visible_products(client, auth):
    category = client.post("/categories", json={"name": "Bolos"}, headers=auth).json()
    create_product(client, auth, category_id=category["id"], **CAKE)
    create_product(client, auth, name="Segredo", price_cents=100, show_in_catalog=False)
    create_product(client, auth, name="Pão de mel", price_cents=700)
    client.put("/bakery/settings", json={"presentation_message": "Feito com amor"}, headers=auth)

    catalog = client.get(f"/catalog/{_owner_id(client, auth)}").json()

    assert catalog["bakery"]["bakery_name"] == "Confeitaria de Ana"
    assert catalog["bakery"]["presentation_message"] == "Feito com amor"
    assert [c["name"] for c in catalog["categories"]] == ["Bolos"]
    assert [p["name"] for p in catalog["categories"][0]["products"]] == ["Bolo Festa"]
    assert [p["name"] for p in catalog["uncategorized"]] == ["Pão de mel"]


def test_catalog_unknown_or_expired_bakery(client, auth):
    assert client.get("/catalog/9999").status_code == 404

    owner_id = _owner_id(client, auth)
    with Session(engine) as session:
        user = session.exec(select(models.User).where(models.User.email == OWNER_EMAIL)).one()
        user.expires_at = datetime.now(timezone.utc) - timedelta(days=10)
        session.add(user)
        session.commit()

    assert client.get(f"/catalog/{owner_id}").status_code == 404


def test_catalog_visits_are_counted(client, auth):
    owner_id = _owner_id(client, auth)
    for _ in range(3):
        client.get(f"/catalog/{owner_id}")

    stats = client.get("/catalog-stats", headers=auth).json()
    assert stats["today"] == 3
    assert stats["last_7_days"] == 3
    assert stats["total"] == 3
    assert stats["catalog_path"] == f"/catalog/{owner_id}"


def test_checkout_creates_quote_with_server_prices(client, auth):
    client.put("/bakery/settings", json={"phone": "11933332222", "address_city": "Campinas"}, headers=auth)
    product = create_product(client, auth, **CAKE)
    owner_id = _owner_id(client, auth)

    response = client.post(
        f"/catalog/{owner_id}/checkout",
        json={
            "customer": _customer(),
            "items": [{
                "product_id": product["id"],
                "quantity": 2,
                "size": "G",
                "variations": [{"group": "Massa", "name": "Chocolate", "price_cents": 1}],
                "addons": ["Topo"],
            }],
        },
    )
    assert response.status_code == 200
    body = response.json()

    # 9000 (size G) + 500 + 1500, whatever price the cart sent
    assert body["items"][0]["unit_price_cents"] == 11000
    assert body["total_cents"] == 22000
    assert body["status"] == "quote"
    assert "Lucia" in body["whatsapp_message"]
    assert body["whatsapp_url"].startswith("https://wa.me/5511933332222?text=")

    order = client.get(f"/orders/{body['order_id']}", headers=auth).json()
    assert order["source"] == "catalog"
    assert order["notes"] == "Endereço: Rua das Flores, 10 | Retirada: 15:00"
    assert order["delivery_date"] == "2030-05-20"

    customer = client.get(f"/clients/{body['client_id']}", headers=auth).json()
    assert customer["phone"] == "11955554444"
    assert customer["city"] == "Campinas"


def test_checkout_reuses_matching_client(client, auth):
    product = create_product(client, auth)
    owner_id = _owner_id(client, auth)
    cart = [{"product_id": product["id"]}]

    first = client.post(f"/catalog/{owner_id}/checkout", json={"customer": _customer(), "items": cart}).json()
    second = client.post(f"/catalog/{owner_id}/checkout", json={"customer": _customer(), "items": cart}).json()
    third = client.post(
        f"/catalog/{owner_id}/checkout",
        json={"customer": _customer(phone="11900000000"), "items": cart},
    ).json()

    assert first["client_id"] == second["client_id"]
    assert third["client_id"] != first["client_id"]
    assert len(client.get("/clients", headers=auth).json()) == 2


def test_checkout_does_not_touch_stock(client, auth):
    product = create_product(client, auth, track_stock=True, stock_quantity=3)
    owner_id = _owner_id(client, auth)

    client.post(
        f"/catalog/{owner_id}/checkout",
        json={"customer": _customer(), "items": [{"product_id": product["id"], "quantity": 2}]},
    )
    assert client.get(f"/products/{product['id']}", headers=auth).json()["stock_quantity"] == 3


def test_checkout_rejects_bad_carts(client, auth):
    visible = create_product(client, auth, **CAKE)
    hidden = create_product(client, auth, name="Segredo", show_in_catalog=False)
    owner_id = _owner_id(client, auth)

    def checkout(items):
        return client.post(f"/catalog/{owner_id}/checkout", json={"customer": _customer(), "items": items})

    assert checkout([]).status_code == 400
    assert checkout([{"product_id": hidden["id"]}]).status_code == 400
    assert checkout([{"product_id": 9999}]).status_code == 400
    assert checkout([{"product_id": visible["id"], "addons": ["Glitter"]}]).status_code == 400
    assert checkout([{"product_id": visible["id"], "size": "GG"}]).status_code == 400

    response = client.post(
        f"/catalog/{owner_id}/checkout",
        json={"customer": _customer(name=""), "items": [{"product_id": visible["id"]}]},
    )
    assert response.status_code == 422

    assert client.get("/orders", headers=auth).json() == []
