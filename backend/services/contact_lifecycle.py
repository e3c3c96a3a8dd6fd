"""
CRM - Cycle de vie des contacts

Orchestration création / mise à jour / suppression:
- création: détection de doublon AVANT insertion, repli sur la fiche existante
- mise à jour: écriture puis journalisation des vrais changements
- le journal passe par safe_log (un échec d'audit ne bloque jamais la mutation)
"""

import logging
import re
import uuid
from typing import Optional, Dict, Any, Tuple, List

from pymongo.errors import DuplicateKeyError

from config import db, now_iso
from models.contact import TRACKED_FIELDS, ASSIGNMENT_FIELDS
from models.interaction import InteractionType
from services.errors import NotFoundError, ContactValidationError
from services.duplicate_resolver import resolve_duplicate, build_identity_key
from services.interaction_logger import (
    create_interaction,
    format_datetime_fr,
    log_contact_update,
    log_status_change,
    log_assignment_change,
    safe_log,
)

logger = logging.getLogger("contact_lifecycle")

CONTACT_FIELDS = TRACKED_FIELDS + [
    "is_company",
    "status_id",
    "assigned_commercial_id",
    "assigned_telepro_id",
    "parent_company_id",
]


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _prepare(data: Dict[str, Any]) -> Dict[str, Any]:
    """Ne garde que les champs connus, chaînes vides -> None, téléphone obligatoire."""
    prepared = {field: _blank_to_none(data.get(field)) for field in CONTACT_FIELDS}
    prepared["is_company"] = bool(data.get("is_company", False))
    if not prepared.get("phone"):
        raise ContactValidationError("Le téléphone est obligatoire")
    return prepared


async def _insert_contact(doc: Dict[str, Any]) -> None:
    await db.contacts.insert_one(doc)
    doc.pop("_id", None)


async def _user_name(user_id: Optional[str]) -> Optional[str]:
    if not user_id:
        return None
    user = await db.users.find_one({"id": user_id}, {"_id": 0, "name": 1, "email": 1})
    if not user:
        return None
    return user.get("name") or user.get("email")


async def _status_name(status_id: Optional[str]) -> Optional[str]:
    if not status_id:
        return None
    status = await db.statuses.find_one({"id": status_id}, {"_id": 0, "name": 1})
    return status.get("name") if status else None


async def get_contact_or_raise(contact_id: str) -> Dict[str, Any]:
    contact = await db.contacts.find_one({"id": contact_id}, {"_id": 0})
    if not contact:
        raise NotFoundError("Contact", contact_id, "Contact non trouvé")
    return contact


# ==================== CREATE ====================

async def create_contact(
    data: Dict[str, Any], user_id: str, imported: bool = False
) -> Tuple[Dict[str, Any], bool]:
    """
    Crée un contact, ou replie la soumission sur un doublon existant.
    imported: note "Contact importé" au lieu de "Contact créé".

    Returns:
        (contact, duplicate): duplicate=True si aucune fiche n'a été créée.
    """
    prepared = _prepare(data)
    first, last, email = prepared["first_name"], prepared["last_name"], prepared["email"]
    origin = prepared.get("origin")

    existing_id = await resolve_duplicate(first, last, email, origin, user_id)
    if existing_id:
        return await get_contact_or_raise(existing_id), True

    now = now_iso()
    doc = {
        "id": str(uuid.uuid4()),
        **prepared,
        "created_by_id": user_id,
        "identity_key": build_identity_key(first, last, email),
        "created_at": now,
        "updated_at": now,
    }
    if not doc.get("assigned_commercial_id") and not doc.get("assigned_telepro_id"):
        doc["assigned_commercial_id"] = user_id
    if doc["identity_key"] is None:
        # absent du document: l'index unique partiel ne porte que sur les chaînes
        doc.pop("identity_key")

    try:
        await _insert_contact(doc)
    except DuplicateKeyError:
        # Même identité insérée par une requête concurrente: on replie sur elle
        logger.warning("[DUPLICATE_RACE] identity collision on create, folding")
        existing_id = await resolve_duplicate(first, last, email, origin, user_id)
        if not existing_id:
            raise
        return await get_contact_or_raise(existing_id), True

    await safe_log(create_interaction(
        contact_id=doc["id"],
        type=InteractionType.NOTE,
        title="Contact importé" if imported else "Contact créé",
        content=(
            f"Contact importé depuis un fichier le {format_datetime_fr(now)}" if imported
            else f"Contact créé le {format_datetime_fr(now)}"
        ),
        user_id=user_id,
        date=now,
    ))

    logger.info(f"Contact créé: {doc['id'][:8]}... origin={origin or '-'}")
    return doc, False


# ==================== UPDATE ====================

async def update_contact(contact_id: str, data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    existing = await get_contact_or_raise(contact_id)
    prepared = _prepare(data)

    update = dict(prepared)
    update["updated_at"] = now_iso()
    identity_key = build_identity_key(prepared["first_name"], prepared["last_name"], prepared["email"])

    if identity_key:
        try:
            await db.contacts.update_one(
                {"id": contact_id},
                {"$set": {**update, "identity_key": identity_key}}
            )
        except DuplicateKeyError:
            raise ContactValidationError(
                "Un autre contact avec ce prénom, ce nom et cet email existe déjà"
            )
    else:
        await db.contacts.update_one(
            {"id": contact_id},
            {"$set": update, "$unset": {"identity_key": ""}}
        )

    changes = {
        field: {"old": existing.get(field), "new": prepared.get(field)}
        for field in TRACKED_FIELDS
        if existing.get(field) != prepared.get(field)
    }
    if changes:
        await safe_log(log_contact_update(contact_id, changes, user_id))

    old_status, new_status = existing.get("status_id"), prepared.get("status_id")
    if old_status != new_status:
        await safe_log(log_status_change(
            contact_id, old_status, new_status, user_id,
            await _status_name(old_status), await _status_name(new_status),
        ))

    for field, assignment_type in ASSIGNMENT_FIELDS.items():
        old_user, new_user = existing.get(field), prepared.get(field)
        if (old_user or None) != (new_user or None):
            await safe_log(log_assignment_change(
                contact_id, assignment_type, old_user, new_user, user_id,
                await _user_name(old_user), await _user_name(new_user),
            ))

    return await get_contact_or_raise(contact_id)


# ==================== DELETE ====================

async def delete_contact(contact_id: str, user_id: str) -> None:
    """Supprime la fiche. Les interactions restent (journal d'audit)."""
    await get_contact_or_raise(contact_id)
    await db.contacts.delete_one({"id": contact_id})
    logger.info(f"Contact supprimé: {contact_id[:8]}... by={user_id}")


# ==================== READ ====================

async def get_contact(contact_id: str) -> Dict[str, Any]:
    """Fiche + interactions (plus récentes d'abord)."""
    contact = await get_contact_or_raise(contact_id)
    contact["interactions"] = await list_interactions(contact_id)
    return contact


async def list_interactions(contact_id: str, limit: int = 500) -> List[Dict[str, Any]]:
    return await db.interactions.find({"contact_id": contact_id}, {"_id": 0}) \
        .sort("created_at", -1) \
        .to_list(limit)


async def list_contacts(
    search: Optional[str] = None,
    status_id: Optional[str] = None,
    assigned_user_id: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    scope: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Liste paginée triée par updated_at décroissant (les doublons repliés remontent).
    scope: filtre de visibilité supplémentaire calculé par l'appelant.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), 200)

    query: Dict[str, Any] = {}
    clauses = []
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        clauses.append({"$or": [
            {"first_name": pattern},
            {"last_name": pattern},
            {"email": pattern},
            {"phone": pattern},
        ]})
    if status_id:
        query["status_id"] = status_id
    if assigned_user_id:
        clauses.append({"$or": [
            {"assigned_commercial_id": assigned_user_id},
            {"assigned_telepro_id": assigned_user_id},
        ]})
    if scope:
        clauses.append(scope)
    if clauses:
        query["$and"] = clauses

    contacts = await db.contacts.find(query, {"_id": 0, "identity_key": 0}) \
        .sort("updated_at", -1) \
        .skip((page - 1) * limit) \
        .limit(limit) \
        .to_list(limit)
    total = await db.contacts.count_documents(query)

    return {
        "contacts": contacts,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }
