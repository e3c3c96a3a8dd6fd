"""
CRM - Gestion des profils (custom_roles)

Un profil attribué à au moins un utilisateur ne peut pas être supprimé.
Les profils système (is_system) sont semés depuis DEFAULT_ROLES au démarrage.
"""

import logging
import uuid
from typing import Optional, List, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import db, now_iso
from services.errors import NotFoundError, RoleValidationError, RoleInUseError
from services.permissions import DEFAULT_ROLES, unknown_permissions

logger = logging.getLogger("roles")


async def count_role_users(role_id: str) -> int:
    return await db.users.count_documents({"custom_role_id": role_id})


async def _with_count(role: Dict[str, Any]) -> Dict[str, Any]:
    role["users_count"] = await count_role_users(role["id"])
    return role


def _validate_permissions(permissions: List[str]) -> List[str]:
    unknown = unknown_permissions(permissions)
    if unknown:
        raise RoleValidationError(f"Permissions inconnues: {', '.join(unknown)}")
    # dédoublonnage en conservant l'ordre
    return list(dict.fromkeys(permissions))


async def get_role_or_raise(role_id: str) -> Dict[str, Any]:
    role = await db.custom_roles.find_one({"id": role_id}, {"_id": 0})
    if not role:
        raise NotFoundError("Profil", role_id, "Profil non trouvé")
    return role


async def list_roles() -> List[Dict[str, Any]]:
    """Profils système d'abord, puis les plus récents."""
    roles = await db.custom_roles.find({}, {"_id": 0}) \
        .sort([("is_system", -1), ("created_at", -1)]) \
        .to_list(500)
    return [await _with_count(r) for r in roles]


async def create_role(name: str, description: Optional[str], permissions: List[str]) -> Dict[str, Any]:
    name = (name or "").strip()
    if not name:
        raise RoleValidationError("Le nom du profil est requis")

    if await db.custom_roles.find_one({"name": name}):
        raise RoleValidationError("Un profil avec ce nom existe déjà")

    now = now_iso()
    role = {
        "id": str(uuid.uuid4()),
        "name": name,
        "description": (description or "").strip() or None,
        "permissions": _validate_permissions(permissions or []),
        "is_system": False,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await db.custom_roles.insert_one(role)
    except DuplicateKeyError:
        raise RoleValidationError("Un profil avec ce nom existe déjà")
    role.pop("_id", None)
    role["users_count"] = 0
    logger.info(f"Profil créé: {name} ({len(role['permissions'])} permissions)")
    return role


async def update_role(
    role_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    permissions: Optional[List[str]] = None,
) -> Dict[str, Any]:
    existing = await get_role_or_raise(role_id)
    update: Dict[str, Any] = {}

    if name is not None:
        name = name.strip()
        if not name:
            raise RoleValidationError("Le nom du profil ne peut pas être vide")
        if name != existing["name"] and await db.custom_roles.find_one({"name": name}):
            raise RoleValidationError("Un profil avec ce nom existe déjà")
        update["name"] = name
    if description is not None:
        update["description"] = description.strip() or None
    if permissions is not None:
        update["permissions"] = _validate_permissions(permissions)

    update["updated_at"] = now_iso()
    await db.custom_roles.update_one({"id": role_id}, {"$set": update})

    return await _with_count(await get_role_or_raise(role_id))


async def delete_role(role_id: str) -> None:
    await get_role_or_raise(role_id)
    users_count = await count_role_users(role_id)
    if users_count > 0:
        raise RoleInUseError(users_count)
    await db.custom_roles.delete_one({"id": role_id})
    logger.info(f"Profil supprimé: {role_id}")


async def seed_system_roles() -> Dict[str, str]:
    """
    Crée ou rafraîchit les profils système (idempotent).
    Returns: {"ADMIN": role_id, ...}
    """
    ids = {}
    for key, preset in DEFAULT_ROLES.items():
        now = now_iso()
        on_set = {"is_system": True}
        on_insert = {
            "id": str(uuid.uuid4()),
            "name": preset["name"],
            "description": preset["description"],
            "created_at": now,
            "updated_at": now,
        }
        # ADMIN suit toujours le catalogue complet; les autres profils
        # système gardent les retouches faites depuis l'interface
        if key == "ADMIN":
            on_set["permissions"] = list(preset["permissions"])
        else:
            on_insert["permissions"] = list(preset["permissions"])

        await db.custom_roles.update_one(
            {"name": preset["name"]},
            {"$set": on_set, "$setOnInsert": on_insert},
            upsert=True,
        )
        role = await db.custom_roles.find_one({"name": preset["name"]}, {"_id": 0, "id": 1})
        ids[key] = role["id"]
    logger.info(f"Profils système synchronisés: {', '.join(ids)}")
    return ids
