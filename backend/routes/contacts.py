"""
CRM - Routes Contacts

CRUD + journal d'interactions.
Visibilité:
- contacts.view_all: tout
- contacts.view_own: contacts attribués ou créés par l'utilisateur
- contacts.view_unassigned: contacts sans commercial ni télépro
"""

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form
from pathlib import Path
from typing import Optional, Dict, Any
import csv
import json

from models.contact import ContactCreate, ContactUpdate
from models.interaction import InteractionCreate, MANUAL_INTERACTION_TYPES
from routes.auth import get_authorization, require_permission, require_any_permission, http_error
from services.access_control import AuthorizationContext
from services.errors import CRMError
from services import contact_lifecycle, contact_import
from services.interaction_logger import create_interaction

router = APIRouter(prefix="/contacts", tags=["Contacts"])

VIEW_PERMISSIONS = ["contacts.view_all", "contacts.view_own", "contacts.view_unassigned"]
EDIT_PERMISSIONS = ["contacts.edit_all", "contacts.edit_own"]


# ==================== VISIBILITÉ ====================

def _owned_by(user_id: str) -> Dict[str, Any]:
    return {"$or": [
        {"assigned_commercial_id": user_id},
        {"assigned_telepro_id": user_id},
        {"created_by_id": user_id},
    ]}


def visibility_scope(ctx: AuthorizationContext) -> Optional[Dict[str, Any]]:
    """Filtre Mongo des contacts visibles. None = aucun filtre."""
    if ctx.can("contacts.view_all"):
        return None
    clauses = []
    if ctx.can("contacts.view_own"):
        clauses.extend(_owned_by(ctx.user_id)["$or"])
    if ctx.can("contacts.view_unassigned"):
        clauses.append({"assigned_commercial_id": None, "assigned_telepro_id": None})
    return {"$or": clauses}


def _is_owner(ctx: AuthorizationContext, contact: Dict[str, Any]) -> bool:
    return ctx.user_id in (
        contact.get("assigned_commercial_id"),
        contact.get("assigned_telepro_id"),
        contact.get("created_by_id"),
    )


def can_view(ctx: AuthorizationContext, contact: Dict[str, Any]) -> bool:
    if ctx.can("contacts.view_all"):
        return True
    if ctx.can("contacts.view_own") and _is_owner(ctx, contact):
        return True
    unassigned = not contact.get("assigned_commercial_id") and not contact.get("assigned_telepro_id")
    return ctx.can("contacts.view_unassigned") and unassigned


def can_edit(ctx: AuthorizationContext, contact: Dict[str, Any]) -> bool:
    if ctx.can("contacts.edit_all"):
        return True
    return ctx.can("contacts.edit_own") and _is_owner(ctx, contact)


async def _load_visible(contact_id: str, ctx: AuthorizationContext) -> Dict[str, Any]:
    try:
        contact = await contact_lifecycle.get_contact_or_raise(contact_id)
    except CRMError as e:
        raise http_error(e)
    # invisible = inexistant pour l'appelant
    if not can_view(ctx, contact):
        raise HTTPException(status_code=404, detail="Contact non trouvé")
    return contact


async def _load_editable(contact_id: str, ctx: AuthorizationContext) -> Dict[str, Any]:
    contact = await _load_visible(contact_id, ctx)
    if not can_edit(ctx, contact):
        raise HTTPException(status_code=403, detail="Permission requise: contacts.edit_all")
    return contact


# ==================== ROUTES ====================

@router.get("")
async def list_contacts(
    search: Optional[str] = Query(None),
    status_id: Optional[str] = Query(None),
    assigned_user_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthorizationContext = Depends(require_any_permission(VIEW_PERMISSIONS))
):
    """Liste paginée, les plus récemment modifiés d'abord"""
    return await contact_lifecycle.list_contacts(
        search=search,
        status_id=status_id,
        assigned_user_id=assigned_user_id,
        page=page,
        limit=limit,
        scope=visibility_scope(ctx),
    )


@router.post("")
async def create_contact(
    data: ContactCreate,
    ctx: AuthorizationContext = Depends(require_permission("contacts.create"))
):
    """
    Crée un contact. Si prénom + nom + email correspondent à une fiche
    existante, aucune fiche n'est créée: duplicate=True et la fiche existante
    est retournée.
    """
    try:
        contact, duplicate = await contact_lifecycle.create_contact(data.model_dump(), ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    contact.pop("identity_key", None)
    return {"success": True, "duplicate": duplicate, "contact": contact}


@router.post("/import")
async def import_contacts(
    file: UploadFile = File(...),
    mapping: str = Form(...),
    ctx: AuthorizationContext = Depends(require_permission("contacts.import"))
):
    """
    Import CSV (délimiteur ; ou ,). mapping: JSON {champ: colonne}, ex.
    {"phone": "Téléphone", "first_name": "Prénom", "status": "Statut"}.
    Les doublons sont repliés sur la fiche existante.
    """
    if Path(file.filename or "").suffix.lower() != ".csv":
        raise HTTPException(status_code=400, detail="Format de fichier non supporté. Utilisez un fichier CSV")
    try:
        column_mapping = json.loads(mapping)
    except ValueError:
        raise HTTPException(status_code=400, detail="Mapping des colonnes invalide")

    content = await file.read()
    try:
        rows = contact_import.parse_csv(content.decode("utf-8-sig"))
    except (UnicodeDecodeError, csv.Error):
        raise HTTPException(status_code=400, detail="Fichier CSV illisible (encodage UTF-8 attendu)")
    if not rows:
        raise HTTPException(status_code=400, detail="Le fichier est vide")

    try:
        return await contact_import.import_contacts(rows, column_mapping, ctx.user_id)
    except CRMError as e:
        raise http_error(e)


@router.get("/{contact_id}")
async def get_contact(
    contact_id: str,
    ctx: AuthorizationContext = Depends(require_any_permission(VIEW_PERMISSIONS))
):
    await _load_visible(contact_id, ctx)
    contact = await contact_lifecycle.get_contact(contact_id)
    contact.pop("identity_key", None)
    return {"contact": contact}


@router.put("/{contact_id}")
async def update_contact(
    contact_id: str,
    data: ContactUpdate,
    ctx: AuthorizationContext = Depends(require_any_permission(EDIT_PERMISSIONS))
):
    await _load_editable(contact_id, ctx)
    if not ctx.can("contacts.assign"):
        # sans droit d'assignation, les attributions restent inchangées
        current = await contact_lifecycle.get_contact_or_raise(contact_id)
        data.assigned_commercial_id = current.get("assigned_commercial_id")
        data.assigned_telepro_id = current.get("assigned_telepro_id")
    try:
        contact = await contact_lifecycle.update_contact(contact_id, data.model_dump(), ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    contact.pop("identity_key", None)
    return {"success": True, "contact": contact}


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    ctx: AuthorizationContext = Depends(require_permission("contacts.delete"))
):
    await _load_visible(contact_id, ctx)
    try:
        await contact_lifecycle.delete_contact(contact_id, ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True}


# ==================== INTERACTIONS ====================

@router.get("/{contact_id}/interactions")
async def list_contact_interactions(
    contact_id: str,
    ctx: AuthorizationContext = Depends(get_authorization)
):
    await _load_visible(contact_id, ctx)
    interactions = await contact_lifecycle.list_interactions(contact_id)
    return {"interactions": interactions, "count": len(interactions)}


@router.post("/{contact_id}/interactions")
async def add_contact_interaction(
    contact_id: str,
    data: InteractionCreate,
    ctx: AuthorizationContext = Depends(require_any_permission(EDIT_PERMISSIONS))
):
    """Saisie manuelle (appel, SMS, email, rendez-vous, note)"""
    if data.type not in MANUAL_INTERACTION_TYPES:
        raise HTTPException(status_code=400, detail=f"Type d'interaction non saisissable: {data.type.value}")
    await _load_editable(contact_id, ctx)
    try:
        interaction = await create_interaction(
            contact_id=contact_id,
            type=data.type,
            title=data.title,
            content=data.content,
            user_id=ctx.user_id,
            date=data.date,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "interaction": interaction}
