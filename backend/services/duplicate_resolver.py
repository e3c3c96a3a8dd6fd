"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SERVICE DE DÉTECTION DES DOUBLONS DE CONTACTS                               ║
║                                                                              ║
║  Règles de détection:                                                        ║
║  - Critères: même prénom + même nom + même email (trim + minuscules)         ║
║  - Les TROIS champs sont requis, sinon pas de détection                      ║
║  - Correspondance exacte, pas de fuzzy                                       ║
║                                                                              ║
║  Comportement si doublon:                                                    ║
║  - Statut "Doublon" (créé à la volée si absent)                              ║
║  - updated_at remonté (le contact revient en tête de liste)                  ║
║  - Note "Contact enregistré à nouveau" avec le numéro d'occurrence           ║
║  - Aucune nouvelle fiche n'est créée                                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Optional, Tuple, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import db, now_iso, bump_iso
from models.interaction import InteractionType
from services.interaction_logger import (
    create_interaction,
    format_datetime_fr,
    ordinal_fr,
    REREGISTRATION_TITLE,
)

logger = logging.getLogger("duplicate_resolver")

DUPLICATE_STATUS_NAME = "Doublon"
DUPLICATE_STATUS_COLOR = "#EF4444"
DEFAULT_FIRST_STATUS_ORDER = 100


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip().lower()
    return value or None


def normalize_identity(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str]
) -> Optional[Tuple[str, str, str]]:
    """(prénom, nom, email) normalisés, ou None si un des trois est vide."""
    first, last, mail = _clean(first_name), _clean(last_name), _clean(email)
    if not first or not last or not mail:
        return None
    return first, last, mail


def build_identity_key(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str]
) -> Optional[str]:
    identity = normalize_identity(first_name, last_name, email)
    if identity is None:
        return None
    return "|".join(identity)


async def get_or_create_duplicate_status() -> Dict[str, Any]:
    """
    Retourne le statut "Doublon", en le créant si besoin.
    Ordre = max(order) + 1, ou 100 s'il n'existe aucun statut.
    """
    status = await db.statuses.find_one({"name": DUPLICATE_STATUS_NAME}, {"_id": 0})
    if status:
        return status

    last = await db.statuses.find({}, {"_id": 0, "order": 1}) \
        .sort("order", -1) \
        .limit(1) \
        .to_list(1)
    order = last[0]["order"] + 1 if last and last[0].get("order") is not None else DEFAULT_FIRST_STATUS_ORDER

    status = {
        "id": str(uuid.uuid4()),
        "name": DUPLICATE_STATUS_NAME,
        "color": DUPLICATE_STATUS_COLOR,
        "order": order,
        "created_at": now_iso(),
    }
    try:
        await db.statuses.insert_one(status)
    except DuplicateKeyError:
        # Créé entre-temps par une autre requête (index unique sur name)
        return await db.statuses.find_one({"name": DUPLICATE_STATUS_NAME}, {"_id": 0})

    status.pop("_id", None)
    logger.info(f"Statut '{DUPLICATE_STATUS_NAME}' créé (order={order})")
    return status


async def count_reregistrations(contact_id: str) -> int:
    return await db.interactions.count_documents({
        "contact_id": contact_id,
        "type": InteractionType.NOTE.value,
        "title": REREGISTRATION_TITLE,
    })


async def find_contact_by_identity(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str]
) -> Optional[Dict[str, Any]]:
    key = build_identity_key(first_name, last_name, email)
    if key is None:
        return None
    return await db.contacts.find_one({"identity_key": key}, {"_id": 0})


async def resolve_duplicate(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str],
    origin: Optional[str],
    acting_user_id: str
) -> Optional[str]:
    """
    Replie une nouvelle soumission sur le contact existant de même identité.

    Args:
        first_name, last_name, email: identité soumise (non normalisée)
        origin: provenance de la soumission (affichée dans la note)
        acting_user_id: utilisateur à qui la note est attribuée

    Returns:
        L'id du contact existant, ou None si aucun doublon (aucune écriture).

    Les erreurs de persistance remontent à l'appelant.
    """
    existing = await find_contact_by_identity(first_name, last_name, email)
    if not existing:
        return None

    contact_id = existing["id"]

    duplicate_status = await get_or_create_duplicate_status()

    occurrence = await count_reregistrations(contact_id) + 2

    await db.contacts.update_one(
        {"id": contact_id},
        {"$set": {
            "status_id": duplicate_status["id"],
            "updated_at": bump_iso(existing.get("updated_at")),
        }}
    )

    now = now_iso()
    origin_part = f" depuis {origin}" if origin else ""
    await create_interaction(
        contact_id=contact_id,
        type=InteractionType.NOTE,
        title=REREGISTRATION_TITLE,
        content=(
            f"Ce contact a été enregistré une {ordinal_fr(occurrence)} fois"
            f"{origin_part} le {format_datetime_fr(now)}."
        ),
        user_id=acting_user_id,
        date=now,
        metadata={"origin": origin or None, "occurrence": occurrence},
    )

    logger.info(
        f"[DUPLICATE_FOLD] contact={contact_id[:8]}... occurrence={occurrence} "
        f"origin={origin or '-'}"
    )
    return contact_id
