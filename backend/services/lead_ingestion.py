"""
CRM - Ingestion des leads externes (Google Ads, Meta Lead Ads)

Flow commun:
1. Extraire prénom / nom / email / téléphone du payload
2. Téléphone obligatoire (sinon lead ignoré)
3. Doublon (prénom + nom + email) -> repli sur la fiche existante
4. Sinon contact existant au même téléphone -> compléter les champs vides
5. Sinon création du contact
6. Note "Lead <source>" sur la fiche (fail-open)
"""

import logging
from typing import Optional, Dict, Any, List, Tuple

import httpx
from pymongo.errors import DuplicateKeyError

from config import db, now_iso
from models.interaction import InteractionType
from services.contact_lifecycle import create_contact
from services.duplicate_resolver import resolve_duplicate, build_identity_key
from services.interaction_logger import create_interaction, safe_log

logger = logging.getLogger("lead_ingestion")

META_GRAPH_URL = "https://graph.facebook.com/v18.0"

SOURCE_GOOGLE_ADS = "google_ads"
SOURCE_META = "meta"


# ==================== PARSING ====================

def _split_full_name(full_name: str) -> Tuple[Optional[str], Optional[str]]:
    parts = full_name.split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], parts[0]
    return " ".join(parts[:-1]), parts[-1]


def _lead(first_name, last_name, full_name, email, phone, external_id=None) -> Dict[str, Any]:
    if (not first_name or not last_name) and full_name:
        split_first, split_last = _split_full_name(full_name)
        first_name = first_name or split_first
        last_name = last_name or split_last
    return {
        "first_name": first_name or None,
        "last_name": last_name or None,
        "email": email.strip().lower() if email else None,
        "phone": phone.strip() if phone else None,
        "external_id": external_id,
    }


def parse_google_ads_lead(notification: Dict[str, Any]) -> Dict[str, Any]:
    """userColumnData: [{"columnName": "FIRST_NAME", "stringValue": "Jean"}, ...]"""
    columns = {
        c.get("columnName"): c.get("stringValue")
        for c in notification.get("userColumnData") or []
        if c.get("columnName")
    }
    return _lead(
        first_name=columns.get("FIRST_NAME"),
        last_name=columns.get("LAST_NAME"),
        full_name=columns.get("FULL_NAME") or columns.get("NAME"),
        email=columns.get("EMAIL"),
        phone=columns.get("PHONE_NUMBER") or columns.get("PHONE"),
        external_id=notification.get("leadResourceName"),
    )


def parse_meta_lead(field_data: List[Dict[str, Any]], lead_id: Optional[str] = None) -> Dict[str, Any]:
    """field_data: [{"name": "email", "values": ["jean@x.com"]}, ...]"""
    fields = {}
    for item in field_data or []:
        values = item.get("values") or []
        if item.get("name") and values:
            fields[item["name"]] = values[0]
    return _lead(
        first_name=fields.get("first_name"),
        last_name=fields.get("last_name"),
        full_name=fields.get("full_name") or fields.get("name"),
        email=fields.get("email"),
        phone=fields.get("phone_number") or fields.get("phone"),
        external_id=lead_id,
    )


async def fetch_meta_lead(lead_id: str, access_token: str) -> List[Dict[str, Any]]:
    """Récupère field_data d'un lead depuis l'API Graph."""
    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.get(
            f"{META_GRAPH_URL}/{lead_id}",
            params={"access_token": access_token},
        )
        response.raise_for_status()
        return response.json().get("field_data", [])


# ==================== CONFIG ====================

async def get_active_configs(source: str) -> List[Dict[str, Any]]:
    return await db.lead_source_configs.find(
        {"source": source, "active": True}, {"_id": 0}
    ).to_list(100)


async def resolve_lead_owner(config: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """
    Utilisateur par défaut de la config, sinon le plus ancien ADMIN.
    L'assignation dépend du rôle legacy: TELEPRO -> télépro, sinon commercial.
    """
    owner = None
    default_id = config.get("default_assigned_user_id")
    if default_id:
        owner = await db.users.find_one({"id": default_id}, {"_id": 0, "id": 1, "role": 1})
    if not owner:
        admins = await db.users.find({"role": "ADMIN"}, {"_id": 0, "id": 1, "role": 1}) \
            .sort("created_at", 1) \
            .limit(1) \
            .to_list(1)
        owner = admins[0] if admins else None
    if not owner:
        return {"created_by_id": None, "assigned_commercial_id": None, "assigned_telepro_id": None}

    is_telepro = owner.get("role") == "TELEPRO"
    return {
        "created_by_id": owner["id"],
        "assigned_commercial_id": None if is_telepro else owner["id"],
        "assigned_telepro_id": owner["id"] if is_telepro else None,
    }


# ==================== INGESTION ====================

IDENTITY_FIELDS = ("first_name", "last_name", "email")


async def _complete_contact(contact: Dict[str, Any], lead: Dict[str, Any], values: Dict[str, Any]) -> None:
    """
    Complète uniquement les champs vides d'une fiche existante (même téléphone).
    Si l'identité complétée appartient déjà à une autre fiche, les champs
    d'identité restent tels quels et seul le reste est complété.
    """
    update = {}
    for field in IDENTITY_FIELDS:
        if not contact.get(field) and lead.get(field):
            update[field] = lead[field]
    for field in ("origin", "status_id", "assigned_commercial_id", "assigned_telepro_id"):
        if not contact.get(field) and values.get(field):
            update[field] = values[field]
    if not update:
        return

    merged = {**contact, **update}
    key = build_identity_key(merged.get("first_name"), merged.get("last_name"), merged.get("email"))
    if key:
        update["identity_key"] = key
    update["updated_at"] = now_iso()
    try:
        await db.contacts.update_one({"id": contact["id"]}, {"$set": update})
        return
    except DuplicateKeyError:
        logger.warning(
            f"[IDENTITY_CONFLICT] contact={contact['id'][:8]}... identité {key} déjà prise, "
            f"champs d'identité non complétés"
        )

    update = {k: v for k, v in update.items() if k not in IDENTITY_FIELDS and k != "identity_key"}
    if set(update) != {"updated_at"}:
        await db.contacts.update_one({"id": contact["id"]}, {"$set": update})


async def ingest_lead(
    lead: Dict[str, Any],
    config: Dict[str, Any],
    origin: str,
    note_title: str,
    note_content: str,
) -> Optional[Dict[str, Any]]:
    """
    Returns:
        {"contact_id", "created", "duplicate"} ou None si le lead est ignoré.
    """
    if not lead.get("phone"):
        logger.warning(f"[LEAD_SKIPPED] {origin}: lead sans téléphone ({lead.get('external_id')})")
        return None

    owner = await resolve_lead_owner(config)
    acting_user = owner["created_by_id"]
    if not acting_user:
        logger.warning(f"[LEAD_SKIPPED] {origin}: aucun utilisateur par défaut")
        return None

    values = {
        "origin": origin,
        "status_id": config.get("default_status_id"),
        "assigned_commercial_id": owner["assigned_commercial_id"],
        "assigned_telepro_id": owner["assigned_telepro_id"],
    }

    created = False
    duplicate = False
    contact_id = await resolve_duplicate(
        lead.get("first_name"), lead.get("last_name"), lead.get("email"), origin, acting_user
    )
    if contact_id:
        duplicate = True
    else:
        by_phone = await db.contacts.find_one({"phone": lead["phone"]}, {"_id": 0})
        if by_phone:
            await _complete_contact(by_phone, lead, values)
            contact_id = by_phone["id"]
        else:
            contact, duplicate = await create_contact({**lead, **values}, acting_user)
            contact_id = contact["id"]
            created = not duplicate

    metadata = {"source": config.get("source"), "origin": origin}
    if lead.get("external_id"):
        metadata["external_id"] = lead["external_id"]
    await safe_log(create_interaction(
        contact_id=contact_id,
        type=InteractionType.NOTE,
        title=note_title,
        content=note_content,
        user_id=acting_user,
        date=now_iso(),
        metadata=metadata,
    ))

    logger.info(
        f"[LEAD_INGESTED] {origin} contact={contact_id[:8]}... "
        f"created={created} duplicate={duplicate}"
    )
    return {"contact_id": contact_id, "created": created, "duplicate": duplicate}
