"""
CRM - Modèles Profils (CustomRole)
Un profil = un ensemble nommé de codes de permission.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List


class RoleCreate(BaseModel):
    name: str
    description: Optional[str] = None
    permissions: List[str] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Le nom du profil est requis")
        return v.strip()


class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Le nom du profil ne peut pas être vide")
        return v.strip() if v else v
