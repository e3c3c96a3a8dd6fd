"""
CRM - Statuts de contact

Nom unique (index unique sur statuses.name). Supprimer un statut retire
status_id des contacts qui le portaient; "Doublon" sera recréé au besoin.
"""

import logging
import uuid
from typing import Optional, List, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import db, now_iso
from services.errors import NotFoundError, StatusValidationError

logger = logging.getLogger("statuses")


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise StatusValidationError("Le nom du statut est requis")
    return name


async def list_statuses() -> List[Dict[str, Any]]:
    return await db.statuses.find({}, {"_id": 0}).sort("order", 1).to_list(200)


async def get_status_or_raise(status_id: str) -> Dict[str, Any]:
    status = await db.statuses.find_one({"id": status_id}, {"_id": 0})
    if not status:
        raise NotFoundError("Statut", status_id, "Statut non trouvé")
    return status


async def _next_order() -> int:
    last = await db.statuses.find({}, {"_id": 0, "order": 1}) \
        .sort("order", -1) \
        .limit(1) \
        .to_list(1)
    return last[0]["order"] + 1 if last and last[0].get("order") is not None else 0


async def create_status(name: str, color: str, order: Optional[int] = None) -> Dict[str, Any]:
    name = _clean_name(name)
    if not color:
        raise StatusValidationError("La couleur est requise")

    status = {
        "id": str(uuid.uuid4()),
        "name": name,
        "color": color,
        "order": order if order is not None else await _next_order(),
        "created_at": now_iso(),
    }
    try:
        await db.statuses.insert_one(status)
    except DuplicateKeyError:
        raise StatusValidationError("Un statut avec ce nom existe déjà")
    status.pop("_id", None)
    logger.info(f"Statut créé: {name} (order={status['order']})")
    return status


async def update_status(
    status_id: str,
    name: Optional[str] = None,
    color: Optional[str] = None,
    order: Optional[int] = None,
) -> Dict[str, Any]:
    await get_status_or_raise(status_id)

    update: Dict[str, Any] = {}
    if name is not None:
        update["name"] = _clean_name(name)
    if color:
        update["color"] = color
    if order is not None:
        update["order"] = order

    if update:
        update["updated_at"] = now_iso()
        try:
            await db.statuses.update_one({"id": status_id}, {"$set": update})
        except DuplicateKeyError:
            raise StatusValidationError("Un statut avec ce nom existe déjà")

    return await get_status_or_raise(status_id)


async def delete_status(status_id: str) -> int:
    """Returns: nombre de contacts dont le statut a été retiré"""
    status = await get_status_or_raise(status_id)
    result = await db.contacts.update_many({"status_id": status_id}, {"$set": {"status_id": None}})
    await db.statuses.delete_one({"id": status_id})
    logger.info(f"Statut supprimé: {status['name']} contacts={result.modified_count}")
    return result.modified_count
