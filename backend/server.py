"""
CRM Contacts - API Backend

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS, LOG_LEVEL

# Configuration logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("crm")

app = FastAPI(
    title="CRM Contacts",
    description="Contacts, doublons, journal d'audit et permissions",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import auth, contacts, roles, statuses, users, webhooks

app.include_router(auth.router, prefix="/api")
app.include_router(contacts.router, prefix="/api")
app.include_router(roles.router, prefix="/api")
app.include_router(statuses.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "CRM Contacts API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP ====================

async def create_indexes():
    from config import db

    await db.users.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.custom_roles.create_index("name", unique=True)
    await db.statuses.create_index("name", unique=True)
    await db.statuses.create_index("order")
    await db.contacts.create_index("id", unique=True)
    await db.contacts.create_index("phone")
    await db.contacts.create_index("updated_at")
    # Doublon = même clé d'identité; seuls les contacts complets en portent une
    await db.contacts.create_index(
        "identity_key",
        unique=True,
        partialFilterExpression={"identity_key": {"$type": "string"}}
    )
    await db.interactions.create_index("contact_id")
    await db.interactions.create_index("created_at")
    await db.lead_source_configs.create_index("source")


@app.on_event("startup")
async def startup():
    from services.roles import seed_system_roles

    await create_indexes()
    logger.info("Index MongoDB créés")

    await seed_system_roles()
    logger.info("CRM démarré")


@app.on_event("shutdown")
async def shutdown():
    from config import client
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
