"""
CRM - Création d'un compte administrateur
Run: cd backend && python3 scripts/seed_admin.py admin@example.com 'MotDePasse!' "Nom Prénom"

Le compte reçoit le rôle legacy ADMIN et le profil système Administrateur.
Si l'email existe déjà, seul le mot de passe et le profil sont mis à jour.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import client, db, hash_password, now_iso
from models.auth import UserCreate
from services.roles import seed_system_roles
from services.users import create_user


async def seed_admin(data: UserCreate):
    role_ids = await seed_system_roles()
    admin_role_id = role_ids["ADMIN"]
    email = data.email.lower().strip()

    existing = await db.users.find_one({"email": email}, {"_id": 0, "id": 1})
    if existing:
        await db.users.update_one(
            {"id": existing["id"]},
            {"$set": {
                "password": hash_password(data.password),
                "role": data.role,
                "custom_role_id": data.custom_role_id or admin_role_id,
                "active": True,
                "updated_at": now_iso(),
            }}
        )
        print(f"Admin mis à jour: {email}")
        user_id = existing["id"]
    else:
        created = await create_user(
            data.model_copy(update={"custom_role_id": data.custom_role_id or admin_role_id})
        )
        print(f"Admin créé: {email}")
        user_id = created["id"]

    client.close()
    return user_id


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python3 scripts/seed_admin.py <email> <password> [name]")
        sys.exit(1)
    asyncio.run(seed_admin(UserCreate(
        email=sys.argv[1],
        password=sys.argv[2],
        name=sys.argv[3] if len(sys.argv) > 3 else "Administrateur",
        role="ADMIN",
    )))
