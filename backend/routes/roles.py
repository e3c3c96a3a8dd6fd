"""
CRM - Routes Profils (custom_roles)
Toutes les routes exigent users.manage_roles.
"""

from fastapi import APIRouter, Depends

from models.role import RoleCreate, RoleUpdate
from routes.auth import require_permission, http_error
from services.access_control import AuthorizationContext
from services.errors import CRMError
from services.permissions import PERMISSIONS, PERMISSION_CATEGORIES, PERMISSIONS_BY_CATEGORY
from services import roles as roles_service

router = APIRouter(prefix="/roles", tags=["Roles"])


@router.get("/permissions")
async def list_permissions(ctx: AuthorizationContext = Depends(require_permission("users.manage_roles"))):
    """Catalogue complet, groupé par catégorie"""
    categories = [
        {"key": key, "label": label, "permissions": PERMISSIONS_BY_CATEGORY.get(key, [])}
        for key, label in PERMISSION_CATEGORIES.items()
    ]
    return {"categories": categories, "count": len(PERMISSIONS)}


@router.get("")
async def list_roles(ctx: AuthorizationContext = Depends(require_permission("users.manage_roles"))):
    roles = await roles_service.list_roles()
    return {"roles": roles, "count": len(roles)}


@router.post("")
async def create_role(
    data: RoleCreate,
    ctx: AuthorizationContext = Depends(require_permission("users.manage_roles"))
):
    try:
        role = await roles_service.create_role(data.name, data.description, data.permissions)
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "role": role}


@router.put("/{role_id}")
async def update_role(
    role_id: str,
    data: RoleUpdate,
    ctx: AuthorizationContext = Depends(require_permission("users.manage_roles"))
):
    try:
        role = await roles_service.update_role(
            role_id, name=data.name, description=data.description, permissions=data.permissions
        )
    except CRMError as e:
        raise http_error(e)
    return {"success": True, "role": role}


@router.delete("/{role_id}")
async def delete_role(
    role_id: str,
    ctx: AuthorizationContext = Depends(require_permission("users.manage_roles"))
):
    """Refusé (400) tant qu'un utilisateur porte ce profil"""
    try:
        await roles_service.delete_role(role_id)
    except CRMError as e:
        raise http_error(e)
    return {"success": True}
