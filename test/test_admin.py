"""
Super-admin panel: account management.
"""

from sqlmodel import Session, select

from confeitaria import models
from confeitaria.db import engine

from conftest import OWNER_EMAIL, OWNER_PASSWORD, create_order, login


def _user_id(client, admin_auth, email) -> int:
    users = client.get(f"/admin/users?search={email}", headers=admin_auth).json()
    return users[0]["id"]


def test_regular_user_is_forbidden(client, auth):
    assert client.get("/admin/users", headers=auth).status_code == 403
    assert client.post("/admin/users", json={"email": "x@example.com", "full_name": "X"}, headers=auth).status_code == 403


def test_list_users(client, auth, admin_auth):
    users = client.get("/admin/users", headers=admin_auth).json()
    assert {u["email"] for u in users} == {OWNER_EMAIL, "admin@example.com"}
    assert all("hashed_password" not in u for u in users)

    owner = next(u for u in users if u["email"] == OWNER_EMAIL)
    assert owner["subscription"]["plan"] == "trial"

    assert [u["email"] for u in client.get("/admin/users?search=owner", headers=admin_auth).json()] == [OWNER_EMAIL]


def test_create_user_with_generated_password(client, admin_auth):
    response = client.post(
        "/admin/users",
        json={"email": "Nova@Example.com", "full_name": "Nova Doceira", "plan": "annual"},
        headers=admin_auth,
    )
    assert response.status_code == 200
    created = response.json()
    assert created["email"] == "nova@example.com"
    assert created["created_via"] == "admin_panel"
    assert created["subscription"]["days_until_expiration"] == 365

    headers = login(client, "nova@example.com", created["password"])
    assert client.get("/clients", headers=headers).status_code == 200

    with Session(engine) as session:
        subscription = session.exec(
            select(models.Subscription).where(models.Subscription.user_id == created["id"])
        ).one()
        assert subscription.offer == "Created via admin"


def test_create_user_duplicate_email(client, auth, admin_auth):
    response = client.post("/admin/users", json={"email": OWNER_EMAIL, "full_name": "Outra"}, headers=admin_auth)
    assert response.status_code == 400


def test_update_user_password_revokes_sessions(client, auth, admin_auth):
    owner_id = _user_id(client, admin_auth, "owner")

    response = client.put(
        f"/admin/users/{owner_id}",
        json={"password": "reset-by-admin", "plan": "monthly", "full_name": "Ana Lima"},
        headers=admin_auth,
    )
    assert response.status_code == 200
    assert response.json()["plan"] == "monthly"
    assert response.json()["full_name"] == "Ana Lima"

    assert client.get("/users/me", headers=auth).status_code == 401
    login(client, OWNER_EMAIL, "reset-by-admin")

    with Session(engine) as session:
        assert session.get(models.Profile, owner_id).full_name == "Ana Lima"


def test_update_user_email_conflict(client, auth, admin_auth):
    owner_id = _user_id(client, admin_auth, "owner")
    response = client.put(f"/admin/users/{owner_id}", json={"email": "admin@example.com"}, headers=admin_auth)
    assert response.status_code == 400


def test_delete_user_removes_everything(client, auth, admin_auth):
    client.post("/clients", json={"name": "Maria"}, headers=auth)
    create_order(client, auth, items=[{"product_name": "Bolo", "unit_price_cents": 100}])
    client.post("/stock/items", json={"name": "Farinha", "quantity": 3}, headers=auth)
    owner_id = _user_id(client, admin_auth, "owner")

    assert client.delete(f"/admin/users/{owner_id}", headers=admin_auth).status_code == 200

    with Session(engine) as session:
        assert session.get(models.User, owner_id) is None
        assert session.get(models.BakerySettings, owner_id) is None
        assert session.exec(select(models.Order)).all() == []
        assert session.exec(select(models.OrderItem)).all() == []
        assert session.exec(select(models.Client)).all() == []

    response = client.post("/token", data={"username": OWNER_EMAIL, "password": OWNER_PASSWORD})
    assert response.status_code == 401


def test_admin_cannot_delete_self(client, admin_auth):
    admin_id = _user_id(client, admin_auth, "admin@")
    assert client.delete(f"/admin/users/{admin_id}", headers=admin_auth).status_code == 400
