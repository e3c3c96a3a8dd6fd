"""
CRM - Routes Statuts
Lecture: tout utilisateur connecté. Écriture: settings.status.manage.
"""

from fastapi import APIRouter, Depends

from models.status import StatusCreate, StatusUpdate
from routes.auth import get_current_user, require_permission, http_error
from services.access_control import AuthorizationContext
from services.errors import CRMError
from services import statuses as statuses_service

router = APIRouter(prefix="/statuses", tags=["Statuses"])


@router.get("")
async def list_statuses(user: dict = Depends(get_current_user)):
    """Statuts de contact, triés par ordre d'affichage"""
    statuses = await statuses_service.list_statuses()
    return {"statuses": statuses, "count": len(statuses)}


@router.post("")
async def create_status(
    data: StatusCreate,
    ctx: AuthorizationContext = Depends(require_permission("settings.status.manage"))
):
    try:
        status = await statuses_service.create_status(data.name, data.color, data.order)
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "status": status}


@router.put("/{status_id}")
async def update_status(
    status_id: str,
    data: StatusUpdate,
    ctx: AuthorizationContext = Depends(require_permission("settings.status.manage"))
):
    try:
        status = await statuses_service.update_status(
            status_id, name=data.name, color=data.color, order=data.order
        )
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "status": status}


@router.delete("/{status_id}")
async def delete_status(
    status_id: str,
    ctx: AuthorizationContext = Depends(require_permission("settings.status.manage"))
):
    try:
        cleared = await statuses_service.delete_status(status_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "contacts_cleared": cleared}
