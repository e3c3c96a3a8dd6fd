"""
CRM - Gestion des utilisateurs

- Un utilisateur créé sans profil reçoit le profil système de son rôle legacy
  (USER n'en a pas: aucune permission tant qu'un profil n'est pas attribué)
- Désactivation = active=False + sessions supprimées (le compte reste en base)
- Suppression définitive: les contacts gardent les identifiants d'assignation
"""

import logging
import uuid
from typing import Optional, List, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import db, hash_password, now_iso
from models.auth import UserCreate, UserUpdate
from services.errors import NotFoundError, UserValidationError
from services.permissions import DEFAULT_ROLES

logger = logging.getLogger("users")

USER_PROJECTION = {"_id": 0, "password": 0}


async def get_user_or_raise(user_id: str) -> Dict[str, Any]:
    user = await db.users.find_one({"id": user_id}, USER_PROJECTION)
    if not user:
        raise NotFoundError("Utilisateur", user_id, "Utilisateur non trouvé")
    return user


async def _profile_or_raise(custom_role_id: str) -> Dict[str, Any]:
    role = await db.custom_roles.find_one({"id": custom_role_id}, {"_id": 0, "id": 1, "name": 1})
    if not role:
        raise UserValidationError("Profil inconnu")
    return role


async def _default_profile_id(role: str) -> Optional[str]:
    preset = DEFAULT_ROLES.get(role)
    if not preset:
        return None
    profile = await db.custom_roles.find_one({"name": preset["name"], "is_system": True}, {"_id": 0, "id": 1})
    return profile["id"] if profile else None


async def _with_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    profile = None
    if user.get("custom_role_id"):
        profile = await db.custom_roles.find_one(
            {"id": user["custom_role_id"]}, {"_id": 0, "id": 1, "name": 1}
        )
    user["custom_role"] = profile
    return user


async def list_users() -> List[Dict[str, Any]]:
    """Plus récents d'abord, avec le profil {id, name}"""
    users = await db.users.find({}, USER_PROJECTION).sort("created_at", -1).to_list(1000)
    return [await _with_profile(u) for u in users]


async def get_user(user_id: str) -> Dict[str, Any]:
    return await _with_profile(await get_user_or_raise(user_id))


async def create_user(data: UserCreate, created_by: Optional[str] = None) -> Dict[str, Any]:
    if await db.users.find_one({"email": data.email}, {"_id": 0, "id": 1}):
        raise UserValidationError("Cet email est déjà utilisé")

    if data.custom_role_id:
        custom_role_id = (await _profile_or_raise(data.custom_role_id))["id"]
    else:
        custom_role_id = await _default_profile_id(data.role)

    now = now_iso()
    user = {
        "id": str(uuid.uuid4()),
        "email": data.email,
        "password": hash_password(data.password),
        "name": data.name.strip(),
        "role": data.role,
        "custom_role_id": custom_role_id,
        "active": True,
        "created_at": now,
        "updated_at": now,
        "created_by": created_by,
    }
    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise UserValidationError("Cet email est déjà utilisé")

    logger.info(f"Utilisateur créé: {user['email']} role={user['role']} by={created_by}")
    return await get_user(user["id"])


async def update_user(user_id: str, data: UserUpdate, actor_id: str) -> Dict[str, Any]:
    await get_user_or_raise(user_id)

    update: Dict[str, Any] = {}
    if data.name is not None and data.name.strip():
        update["name"] = data.name.strip()
    if data.role is not None:
        update["role"] = data.role
    if data.custom_role_id is not None:
        update["custom_role_id"] = (
            (await _profile_or_raise(data.custom_role_id))["id"] if data.custom_role_id else None
        )
    if data.active is not None:
        if not data.active and user_id == actor_id:
            raise UserValidationError("Impossible de désactiver votre propre compte")
        update["active"] = data.active

    if update:
        update["updated_at"] = now_iso()
        await db.users.update_one({"id": user_id}, {"$set": update})
        if update.get("active") is False:
            await db.sessions.delete_many({"user_id": user_id})
        logger.info(f"Utilisateur modifié: {user_id[:8]}... fields={sorted(update)} by={actor_id}")

    return await get_user(user_id)


async def delete_user(user_id: str, actor_id: str) -> None:
    await get_user_or_raise(user_id)
    if user_id == actor_id:
        raise UserValidationError("Impossible de supprimer votre propre compte")
    await db.users.delete_one({"id": user_id})
    await db.sessions.delete_many({"user_id": user_id})
    logger.info(f"Utilisateur supprimé: {user_id[:8]}... by={actor_id}")
