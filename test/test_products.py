"""
Products, categories and image uploads.
"""

from io import BytesIO

from PIL import Image

from confeitaria.settings import settings

from conftest import create_order, create_product, register


def _png(width=40, height=30) -> bytes:
    buffer = BytesIO()
    Image.new("RGBA", (width, height), (200, 100, 50, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_product_crud(client, auth):
    product = create_product(
        client, auth,
        description="Massa fofinha",
        sizes=[{"name": "P", "price_cents": 3000}],
        addons=[{"name": "Topo", "price_cents": 1500}],
    )
    assert product["sizes"] == [{"name": "P", "price_cents": 3000}]
    assert product["show_in_catalog"] is True
    assert product["image_url"] is None

    response = client.put(f"/products/{product['id']}", json={"price_cents": 5500, "track_stock": True}, headers=auth)
    assert response.json()["price_cents"] == 5500
    assert response.json()["track_stock"] is True

    assert [p["name"] for p in client.get("/products?search=fofinha", headers=auth).json()] == ["Bolo de Chocolate"]
    assert client.delete(f"/products/{product['id']}", headers=auth).status_code == 200
    assert client.get(f"/products/{product['id']}", headers=auth).status_code == 404


def test_product_validation(client, auth):
    assert client.post("/products", json={"name": " ", "price_cents": 100}, headers=auth).status_code == 400
    assert client.post("/products", json={"name": "Bolo", "price_cents": -1}, headers=auth).status_code == 422
    assert client.post("/products", json={"name": "Bolo", "price_cents": 100, "category_id": 999}, headers=auth).status_code == 400


def test_deleted_product_keeps_order_snapshot(client, auth):
    product = create_product(client, auth)
    order = create_order(client, auth, items=[{"product_id": product["id"], "quantity": 2}])

    client.delete(f"/products/{product['id']}", headers=auth)

    line = client.get(f"/orders/{order['id']}", headers=auth).json()["items"][0]
    assert line["product_id"] is None
    assert line["product_name"] == "Bolo de Chocolate"
    assert line["total_cents"] == 10000


def test_catalog_toggle_and_filter(client, auth):
    product = create_product(client, auth)
    create_product(client, auth, name="Pudim")

    client.put(f"/products/{product['id']}/catalog", json={"show_in_catalog": False}, headers=auth)

    hidden = client.get("/products?show_in_catalog=false", headers=auth).json()
    assert [p["name"] for p in hidden] == ["Bolo de Chocolate"]


def test_categories_with_subcategories(client, auth):
    cakes = client.post("/categories", json={"name": "Bolos", "sort_order": 1}, headers=auth).json()
    sweets = client.post("/categories", json={"name": "Doces"}, headers=auth).json()
    party = client.post("/subcategories", json={"category_id": cakes["id"], "name": "Festa"}, headers=auth).json()

    categories = client.get("/categories", headers=auth).json()
    assert [c["name"] for c in categories] == ["Doces", "Bolos"]
    assert [s["name"] for s in categories[1]["subcategories"]] == ["Festa"]

    # Subcategory must belong to the chosen category
    response = client.post(
        "/products",
        json={"name": "Bolo", "price_cents": 100, "category_id": sweets["id"], "subcategory_id": party["id"]},
        headers=auth,
    )
    assert response.status_code == 400

    product = create_product(client, auth, category_id=cakes["id"], subcategory_id=party["id"])
    assert client.delete(f"/categories/{cakes['id']}", headers=auth).status_code == 200

    product = client.get(f"/products/{product['id']}", headers=auth).json()
    assert product["category_id"] is None
    assert product["subcategory_id"] is None
    assert client.get("/subcategories", headers=auth).json() == []


def test_moving_subcategory_moves_its_products(client, auth):
    cakes = client.post("/categories", json={"name": "Bolos"}, headers=auth).json()
    sweets = client.post("/categories", json={"name": "Doces"}, headers=auth).json()
    party = client.post("/subcategories", json={"category_id": cakes["id"], "name": "Festa"}, headers=auth).json()
    product = create_product(client, auth, category_id=cakes["id"], subcategory_id=party["id"])

    response = client.put(f"/subcategories/{party['id']}", json={"category_id": sweets["id"]}, headers=auth)
    assert response.json()["category_id"] == sweets["id"]

    moved = client.get(f"/products/{product['id']}", headers=auth).json()
    assert moved["category_id"] == sweets["id"]
    assert moved["subcategory_id"] == party["id"]

    # The product stays editable under its new classification
    response = client.put(f"/products/{product['id']}", json={"price_cents": 100}, headers=auth)
    assert response.status_code == 200


def test_categories_are_per_tenant(client, auth):
    category = client.post("/categories", json={"name": "Bolos"}, headers=auth).json()
    other = register(client, "other@example.com", full_name="Bruno")

    assert client.put(f"/categories/{category['id']}", json={"name": "x"}, headers=other).status_code == 404
    response = client.post("/products", json={"name": "Bolo", "price_cents": 1, "category_id": category["id"]}, headers=other)
    assert response.status_code == 400


def test_product_image_upload(client, auth):
    product = create_product(client, auth)

    response = client.post(
        f"/products/{product['id']}/image",
        files={"file": ("foto.png", _png(), "image/png")},
        headers=auth,
    )
    assert response.status_code == 200
    url = response.json()["image_url"]
    assert url.startswith(f"/uploads/{product['user_id']}/products/")
    assert url.endswith(".png")

    stored = settings.uploads_dir / url.removeprefix("/uploads/")
    assert stored.exists()
    assert client.get(url).status_code == 200

    response = client.delete(f"/products/{product['id']}/image", headers=auth)
    assert response.json()["image_url"] is None
    assert not stored.exists()


def test_large_images_are_resized(client, auth):
    product = create_product(client, auth)
    response = client.post(
        f"/products/{product['id']}/image",
        files={"file": ("grande.png", _png(3000, 1500), "image/png")},
        headers=auth,
    )
    stored = settings.uploads_dir / response.json()["image_url"].removeprefix("/uploads/")
    with Image.open(stored) as image:
        assert image.size == (1920, 960)


def test_image_upload_rejects_other_types(client, auth):
    product = create_product(client, auth)
    response = client.post(
        f"/products/{product['id']}/image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth,
    )
    assert response.status_code == 400


def test_category_banner(client, auth):
    category = client.post("/categories", json={"name": "Bolos"}, headers=auth).json()
    response = client.post(
        f"/categories/{category['id']}/banner",
        files={"file": ("banner.jpg", _png(), "image/jpeg")},
        headers=auth,
    )
    assert response.status_code == 200
    assert "/banners/" in response.json()["banner_url"]
