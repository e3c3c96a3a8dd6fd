"""
CRM - Modèles Statuts
"""

from pydantic import BaseModel, field_validator
from typing import Optional


class StatusCreate(BaseModel):
    name: str
    color: str
    order: Optional[int] = None

    @field_validator("name", "color")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Le nom et la couleur sont requis")
        return v.strip()


class StatusUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    order: Optional[int] = None
