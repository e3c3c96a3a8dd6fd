"""
CRM - Modeles Auth & Utilisateurs
Permissions = profil (custom_role). Rôle legacy = hiérarchie grossière uniquement.
"""

from pydantic import BaseModel, validator
from typing import Optional

from services.permissions import ROLE_HIERARCHY


VALID_ROLES = list(ROLE_HIERARCHY)


def _check_role(v):
    if v.upper() not in VALID_ROLES:
        raise ValueError(f"Role invalide: {v}. Valides: {VALID_ROLES}")
    return v.upper()


class UserLogin(BaseModel):
    email: str
    password: str


class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    role: str = "USER"
    custom_role_id: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        return _check_role(v)

    @validator("email")
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Email invalide")
        return v

    @validator("password")
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError("Le mot de passe doit contenir au moins 8 caractères")
        return v


class UserUpdate(BaseModel):
    """custom_role_id vide ("") = retirer le profil"""
    name: Optional[str] = None
    role: Optional[str] = None
    custom_role_id: Optional[str] = None
    active: Optional[bool] = None

    @validator("role")
    def validate_role(cls, v):
        return _check_role(v) if v is not None else v
