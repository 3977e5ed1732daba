from __future__ import annotations

import json
import logging
from io import StringIO
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.logging_config import StructuredFormatter
from app.core.security import create_access_token, hash_password
from app.db.models.catalog import Process, Product
from app.db.models.factory import Factory
from app.db.models.org import Organization, User, ROLE_BOSS, ROLE_SPECIALIST
from app.db.session import Database
from main import create_app
from services.ledger.settlement import ZERO

ORG_A = "org-a"
ORG_B = "org-b"
PASSWORD = "secret123"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite://",
        db_pool_size=1,
        db_max_overflow=0,
        jwt_secret="test-only-jwt-secret-0123456789abcdef",
        log_level="INFO",
        log_format="json",
    )


@pytest.fixture
def database(settings):
    db = Database(settings)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def world(database, settings):
    """Two tenants: org-a with a boss, a specialist, one factory, one process and two
    products; org-b with its own boss, factory and process."""
    with database.transaction() as db:
        db.add_all([
            Organization(org_id=ORG_A, name="Org A"),
            Organization(org_id=ORG_B, name="Org B"),
        ])
        boss = User(org_id=ORG_A, username="boss", real_name="Boss A",
                    password_hash=hash_password(PASSWORD), role_id=ROLE_BOSS)
        specialist = User(org_id=ORG_A, username="clerk", real_name="Clerk A",
                          password_hash=hash_password(PASSWORD), role_id=ROLE_SPECIALIST)
        boss_b = User(org_id=ORG_B, username="boss", real_name="Boss B",
                      password_hash=hash_password(PASSWORD), role_id=ROLE_BOSS)
        factory = Factory(org_id=ORG_A, name="Sunrise Knitting", code="FAC001",
                          processes=[], balance=ZERO, debt=ZERO)
        factory_b = Factory(org_id=ORG_B, name="Other Mill", code="FAC001",
                            processes=[], balance=ZERO, debt=ZERO)
        process = Process(org_id=ORG_A, name="Dyeing")
        process_b = Process(org_id=ORG_B, name="Washing")
        tee = Product(org_id=ORG_A, code="ST-001", name="Tee")
        polo = Product(org_id=ORG_A, code="ST-002", name="Polo")
        db.add_all([boss, specialist, boss_b, factory, factory_b, process, process_b, tee, polo])
        db.flush()

        return SimpleNamespace(
            org_id=ORG_A,
            boss_id=boss.id,
            specialist_id=specialist.id,
            factory_id=factory.id,
            factory_name=factory.name,
            factory_b_id=factory_b.id,
            process_id=process.id,
            process_b_id=process_b.id,
            tee_id=tee.id,
            polo_id=polo.id,
            boss_token=create_access_token(settings, boss),
            specialist_token=create_access_token(settings, specialist),
            boss_b_token=create_access_token(settings, boss_b),
        )


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def receive_body(world, *items, payment=0, method=None, total_fee=None, **extra) -> dict:
    """items: (product_id, fee, weight, quantity) tuples."""
    body = {
        "factoryId": world.factory_id,
        "processId": world.process_id,
        "items": [
            {"productId": pid, "fee": fee, "weight": weight, "quantity": qty}
            for pid, fee, weight, qty in items
        ],
        "paymentAmount": payment,
        "paymentMethod": method,
    }
    if total_fee is not None:
        body["totalFee"] = total_fee
    body.update(extra)
    return body


def send_body(world, *items, **extra) -> dict:
    body = {
        "factoryId": world.factory_id,
        "processId": world.process_id,
        "items": [
            {"productId": pid, "weight": weight, "quantity": qty}
            for pid, weight, qty in items
        ],
    }
    body.update(extra)
    return body


def factory_state(client, world, token=None) -> tuple[str, str]:
    r = client.get(f"/api/factories/{world.factory_id}", headers=auth(token or world.boss_token))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    return data["balance"], data["debt"]


@pytest.fixture
def captured_logs():
    """Service logs as parsed JSON dicts; call the fixture value to read them."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("garment")
    old_level = root.level
    root.setLevel(logging.INFO)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(old_level)
