"""
Shared fixtures: an in-memory SQLite database recreated for every test and a
FastAPI TestClient. The environment is set before the app is imported so the
settings pick it up.
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="confeitaria-uploads-")
os.environ["CAKTO_WEBHOOK_SECRET"] = "test-secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from confeitaria import models
from confeitaria.db import engine
from confeitaria.main import app
from confeitaria.provisioning import create_account

OWNER_EMAIL = "owner@example.com"
OWNER_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_database():
    SQLModel.metadata.create_all(engine)
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def login(client: TestClient, email: str, password: str) -> dict:
    """Log in and return Bearer headers. The cookie is dropped so users don't leak between calls."""
    response = client.post("/token", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def register(client: TestClient, email: str, password: str = OWNER_PASSWORD, full_name: str = "Ana Souza") -> dict:
    response = client.post(
        "/register",
        json={"email": email, "password": password, "full_name": full_name},
    )
    assert response.status_code == 200, response.text
    return login(client, email, password)


@pytest.fixture
def auth(client) -> dict:
    """Headers of a freshly registered trial bakery."""
    return register(client, OWNER_EMAIL)


@pytest.fixture
def admin_auth(client, session) -> dict:
    now = datetime.now(timezone.utc)
    user, password = create_account(
        session,
        email="admin@example.com",
        full_name="Admin",
        plan=models.SubscriptionPlan.monthly,
        payment_date=now,
        expires_at=now + timedelta(days=30),
        created_via="admin_panel",
        password="admin-pass",
    )
    user.role = models.UserRole.super_admin
    session.add(user)
    session.commit()
    return login(client, "admin@example.com", password)


def create_product(client: TestClient, headers: dict, **fields) -> dict:
    payload = {"name": "Bolo de Chocolate", "price_cents": 5000, **fields}
    response = client.post("/products", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def create_order(client: TestClient, headers: dict, items: list[dict], **fields) -> dict:
    payload = {"client_name": "Maria", "items": items, **fields}
    response = client.post("/orders", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()
