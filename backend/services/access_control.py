"""
CRM - Access-Control Gate

Résolution des droits effectifs d'un utilisateur, relue en base à chaque appel
(aucun cache, aucune permission figée dans la session).

Deux modèles coexistent:
- permissions fines: custom_role.permissions (source de vérité)
- hiérarchie legacy: users.role (ADMIN=1 … USER=6), pour quelques endpoints
Tout échec de résolution = aucune permission (fail-closed).
"""

import logging
from typing import Optional, Iterable, List, FrozenSet, Dict, Any

from config import db
from services.errors import NotAuthenticatedError, ForbiddenError
from services.permissions import has_role, role_rank

logger = logging.getLogger("access_control")


class AuthorizationContext:
    """Droits résolus pour une requête: permissions du profil + rang legacy"""

    def __init__(
        self,
        user_id: str,
        legacy_role: Optional[str] = None,
        permissions: Iterable[str] = (),
        profile_id: Optional[str] = None,
        profile_name: Optional[str] = None,
    ):
        self.user_id = user_id
        self.legacy_role = legacy_role.upper() if legacy_role else None
        self.permissions: FrozenSet[str] = frozenset(permissions)
        self.profile_id = profile_id
        self.profile_name = profile_name

    @property
    def has_profile(self) -> bool:
        return self.profile_id is not None

    @property
    def rank(self) -> Optional[int]:
        return role_rank(self.legacy_role)

    def can(self, code: str) -> bool:
        return code in self.permissions

    def can_all(self, codes: Iterable[str]) -> bool:
        return all(c in self.permissions for c in codes)

    def can_any(self, codes: Iterable[str]) -> bool:
        return any(c in self.permissions for c in codes)

    def has_role(self, required_role: str) -> bool:
        return has_role(self.legacy_role, required_role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.legacy_role,
            "profile_id": self.profile_id,
            "profile_name": self.profile_name,
            "permissions": sorted(self.permissions),
        }


async def resolve_authorization(
    user_id: Optional[str],
    session_role: Optional[str] = None
) -> Optional[AuthorizationContext]:
    """
    Charge l'utilisateur et son profil.
    None si pas d'utilisateur; permissions vides si pas de profil (ou profil supprimé).
    """
    if not user_id:
        return None

    user = await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
    if not user:
        return None

    legacy_role = user.get("role") or session_role
    role_id = user.get("custom_role_id")
    if not role_id:
        return AuthorizationContext(user_id=user_id, legacy_role=legacy_role)

    profile = await db.custom_roles.find_one({"id": role_id}, {"_id": 0})
    if not profile:
        logger.warning(f"[PROFILE_MISSING] user={user_id} custom_role_id={role_id}")
        return AuthorizationContext(user_id=user_id, legacy_role=legacy_role)

    return AuthorizationContext(
        user_id=user_id,
        legacy_role=legacy_role,
        permissions=profile.get("permissions") or [],
        profile_id=profile["id"],
        profile_name=profile.get("name"),
    )


async def check_permission(user_id: Optional[str], code: str) -> bool:
    """True si le profil de l'utilisateur contient le code. Sinon False (jamais d'exception métier)."""
    ctx = await resolve_authorization(user_id)
    if ctx is None:
        return False
    return ctx.can(code)


async def check_permissions(
    user_id: Optional[str],
    codes: List[str],
    require_all: bool = True
) -> bool:
    """require_all=True: toutes les permissions (ET). False: au moins une (OU)."""
    ctx = await resolve_authorization(user_id)
    if ctx is None:
        return False
    return ctx.can_all(codes) if require_all else ctx.can_any(codes)


async def get_user_permissions(user_id: Optional[str]) -> List[str]:
    ctx = await resolve_authorization(user_id)
    if ctx is None:
        return []
    return sorted(ctx.permissions)


async def is_admin(user_id: Optional[str]) -> bool:
    """Admin = profil autorisé à gérer les profils et permissions."""
    return await check_permission(user_id, "users.manage_roles")


async def require_role(
    user_id: Optional[str],
    required_role: str,
    session_role: Optional[str] = None
) -> AuthorizationContext:
    """
    Contrôle hiérarchique legacy.
    NotAuthenticatedError sans utilisateur, ForbiddenError si rang insuffisant.
    """
    ctx = await resolve_authorization(user_id, session_role=session_role)
    if ctx is None:
        raise NotAuthenticatedError()
    if not ctx.has_role(required_role):
        logger.warning(
            f"[ROLE_DENIED] user={user_id} role={ctx.legacy_role} required={required_role}"
        )
        raise ForbiddenError()
    return ctx
