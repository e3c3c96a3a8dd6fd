"""
CRM - Routes Auth
Login / Logout / Session + dépendances de permission FastAPI.
Les droits sont relus en base à chaque requête (aucun cache de session).
"""

from typing import List

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from models.auth import UserLogin
from config import db, hash_password, generate_token, now_iso, session_expiry_iso
from services.access_control import AuthorizationContext, resolve_authorization
from services.errors import CRMError

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

def http_error(exc: CRMError) -> HTTPException:
    """Erreur métier -> HTTPException (même code, message en detail)"""
    return HTTPException(status_code=exc.status_code, detail=exc.message)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Non authentifié")

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expirée")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Utilisateur non trouvé")

    if not user.get("active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    return user


async def get_authorization(user: dict = Depends(get_current_user)) -> AuthorizationContext:
    """Droits effectifs (profil + rôle legacy) de l'utilisateur connecté."""
    ctx = await resolve_authorization(user["id"], session_role=user.get("role"))
    if ctx is None:
        raise HTTPException(status_code=401, detail="Non authentifié")
    return ctx


def require_permission(permission_code: str):
    """
    FastAPI dependency factory.
    Usage: auth: AuthorizationContext = Depends(require_permission("contacts.create"))
    """

    async def _check(ctx: AuthorizationContext = Depends(get_authorization)):
        if not ctx.can(permission_code):
            logger.warning(
                f"[PERMISSION_DENIED] user={ctx.user_id} "
                f"code={permission_code} profile={ctx.profile_name}"
            )
            raise HTTPException(status_code=403, detail=f"Permission requise: {permission_code}")
        return ctx

    return _check


def require_any_permission(permission_codes: List[str]):
    """Au moins une des permissions (OU)."""

    async def _check(ctx: AuthorizationContext = Depends(get_authorization)):
        if not ctx.can_any(permission_codes):
            logger.warning(
                f"[PERMISSION_DENIED] user={ctx.user_id} "
                f"codes={','.join(permission_codes)} profile={ctx.profile_name}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {' ou '.join(permission_codes)}"
            )
        return ctx

    return _check


def require_legacy_role(required_role: str):
    """Contrôle hiérarchique legacy (ADMIN=1 … USER=6)."""

    async def _check(ctx: AuthorizationContext = Depends(get_authorization)):
        if not ctx.has_role(required_role):
            raise HTTPException(status_code=403, detail="Permissions insuffisantes")
        return ctx

    return _check


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin):
    """Connexion utilisateur."""
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    if not user.get("active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    token = generate_token()
    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": session_expiry_iso()
    })

    ctx = await resolve_authorization(user["id"])

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "name": user.get("name", ""),
            "role": user.get("role", "USER"),
            "custom_role_id": user.get("custom_role_id"),
            "permissions": sorted(ctx.permissions) if ctx else [],
        }
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(
    user: dict = Depends(get_current_user),
    ctx: AuthorizationContext = Depends(get_authorization)
):
    """Retourne user + permissions effectives."""
    user["permissions"] = sorted(ctx.permissions)
    user["profile_name"] = ctx.profile_name
    return user
