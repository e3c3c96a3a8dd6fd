"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Modèle Contact                                                        ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  1. Le téléphone est OBLIGATOIRE (création et mise à jour)                   ║
║  2. Doublon = même prénom + nom + email (normalisés), les trois requis       ║
║  3. updated_at est remonté à chaque doublon replié sur la fiche              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, field_validator


# Champs métier suivis dans le journal (CONTACT_UPDATE)
TRACKED_FIELDS = [
    "civility",
    "first_name",
    "last_name",
    "company_name",
    "phone",
    "secondary_phone",
    "email",
    "address",
    "city",
    "postal_code",
    "origin",
]

ASSIGNMENT_FIELDS = {
    "assigned_commercial_id": "COMMERCIAL",
    "assigned_telepro_id": "TELEPRO",
}


class ContactBase(BaseModel):
    civility: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    is_company: bool = False
    phone: str
    secondary_phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    origin: Optional[str] = None
    status_id: Optional[str] = None
    assigned_commercial_id: Optional[str] = None
    assigned_telepro_id: Optional[str] = None
    parent_company_id: Optional[str] = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        if not v or not v.strip():
            raise ValueError("Le téléphone est obligatoire")
        return v.strip()


class ContactCreate(ContactBase):
    pass


class ContactUpdate(ContactBase):
    pass
