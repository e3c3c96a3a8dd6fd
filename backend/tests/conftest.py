"""
CRM - Fixtures de test

Les tests base de données tournent sur MongoDB (MONGO_URL) quand un serveur
répond, dans une base jetable crm_test_<hex> supprimée en fin de test.
Sinon ils tournent sur mongomock-motor, en mémoire.
"""

import asyncio
import importlib
import os
import uuid

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import hash_password, generate_token, now_iso, session_expiry_iso

MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
TEST_PASSWORD = "CrmTest2026!"

# Modules qui font `from config import db`
DB_MODULES = [
    "config",
    "services.access_control",
    "services.interaction_logger",
    "services.duplicate_resolver",
    "services.contact_lifecycle",
    "services.roles",
    "services.lead_ingestion",
    "routes.auth",
    "services.users",
    "services.statuses",
    "services.contact_import",
]


class MongoHarness:
    """Base de test + boucle d'événements dédiée"""

    def __init__(self, loop, client, db):
        self.loop = loop
        self.client = client
        self.db = db
        self.role_ids = {}

    def run(self, coro):
        return self.loop.run_until_complete(coro)

    def create_user(self, role="ADMIN", profile="ADMIN", email=None, name=None, active=True):
        """Utilisateur + session. profile=None -> aucun profil attribué."""
        user = {
            "id": str(uuid.uuid4()),
            "email": email or f"{role.lower()}-{uuid.uuid4().hex[:6]}@test.local",
            "password": hash_password(TEST_PASSWORD),
            "name": name or f"Test {role.title()}",
            "role": role,
            "custom_role_id": self.role_ids.get(profile) if profile else None,
            "active": active,
            "created_at": now_iso(),
        }
        token = generate_token()
        self.run(self.db.users.insert_one(dict(user)))
        self.run(self.db.sessions.insert_one({
            "token": token,
            "user_id": user["id"],
            "created_at": now_iso(),
            "expires_at": session_expiry_iso(),
        }))
        user.pop("password")
        user["token"] = token
        user["headers"] = {"Authorization": f"Bearer {token}"}
        return user

    def api(self, method, path, **kwargs):
        """Appel HTTP sur l'app FastAPI, dans la même boucle que Motor"""
        from server import app

        async def _call():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
                return await c.request(method, path, **kwargs)

        return self.run(_call())


@pytest.fixture(scope="session")
def mongo_server():
    """MONGO_URL si un serveur répond, sinon None (base en mémoire)"""
    client = MongoClient(MONGO_URL, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
        return MONGO_URL
    except PyMongoError:
        return None
    finally:
        client.close()


@pytest.fixture
def mongo(monkeypatch, mongo_server):
    loop = asyncio.new_event_loop()
    if mongo_server:
        client = AsyncIOMotorClient(mongo_server)
    else:
        client = AsyncMongoMockClient()

    db = client[f"crm_test_{uuid.uuid4().hex[:12]}"]
    for name in DB_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "db", db)

    from server import create_indexes
    from services.roles import seed_system_roles

    harness = MongoHarness(loop, client, db)
    harness.run(create_indexes())
    harness.role_ids = harness.run(seed_system_roles())

    yield harness

    if mongo_server:
        loop.run_until_complete(client.drop_database(db.name))
        client.close()
    loop.close()
