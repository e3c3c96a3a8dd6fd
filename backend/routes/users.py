"""
CRM - Routes Utilisateurs
users.view / users.create / users.edit / users.deactivate / users.delete.
La suppression définitive exige en plus le rôle legacy ADMIN.
"""

from fastapi import APIRouter, Depends, HTTPException

from models.auth import UserCreate, UserUpdate
from routes.auth import require_permission, require_legacy_role, http_error
from services.access_control import AuthorizationContext
from services.errors import CRMError
from services import users as users_service

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
async def list_users(ctx: AuthorizationContext = Depends(require_permission("users.view"))):
    users = await users_service.list_users()
    return {"users": users, "count": len(users)}


@router.get("/{user_id}")
async def get_user(user_id: str, ctx: AuthorizationContext = Depends(require_permission("users.view"))):
    try:
        return await users_service.get_user(user_id)
    except CRMError as e:
        raise http_error(e)


@router.post("")
async def create_user(
    data: UserCreate,
    ctx: AuthorizationContext = Depends(require_permission("users.create"))
):
    try:
        user = await users_service.create_user(data, created_by=ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "user": user}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    ctx: AuthorizationContext = Depends(require_permission("users.edit"))
):
    """Changer `active` demande aussi users.deactivate"""
    if data.active is not None and not ctx.can("users.deactivate"):
        raise HTTPException(status_code=403, detail="Permission requise: users.deactivate")
    try:
        user = await users_service.update_user(user_id, data, actor_id=ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "user": user}


@router.delete("/{user_id}", dependencies=[Depends(require_legacy_role("ADMIN"))])
async def delete_user(
    user_id: str,
    ctx: AuthorizationContext = Depends(require_permission("users.delete"))
):
    try:
        await users_service.delete_user(user_id, actor_id=ctx.user_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True}
