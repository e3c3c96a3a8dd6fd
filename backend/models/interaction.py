"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Modèle Interaction (journal d'audit d'un contact)                     ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  1. Une interaction est créée, JAMAIS modifiée ni supprimée par le cœur      ║
║  2. content est obligatoire (texte lisible, en français)                     ║
║  3. date = moment métier de l'événement (≠ created_at)                       ║
║  4. metadata a une forme fixe par type d'interaction                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, Dict, Any, Type
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class InteractionType(str, Enum):
    CALL = "CALL"
    SMS = "SMS"
    EMAIL = "EMAIL"
    MEETING = "MEETING"
    NOTE = "NOTE"
    STATUS_CHANGE = "STATUS_CHANGE"
    CONTACT_UPDATE = "CONTACT_UPDATE"
    ASSIGNMENT_CHANGE = "ASSIGNMENT_CHANGE"
    APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
    APPOINTMENT_DELETED = "APPOINTMENT_DELETED"
    APPOINTMENT_CHANGED = "APPOINTMENT_CHANGED"


# Types qu'un utilisateur peut saisir à la main depuis la fiche contact
MANUAL_INTERACTION_TYPES = [
    InteractionType.CALL,
    InteractionType.SMS,
    InteractionType.EMAIL,
    InteractionType.MEETING,
    InteractionType.NOTE,
]


# ==================== METADATA (une forme par type) ====================

class _Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StatusChangeMetadata(_Metadata):
    old_status_id: Optional[str] = None
    new_status_id: Optional[str] = None
    old_status_name: Optional[str] = None
    new_status_name: Optional[str] = None


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None


class ContactUpdateMetadata(_Metadata):
    changes: Dict[str, FieldChange]


class AssignmentChangeMetadata(_Metadata):
    assignment_type: str
    old_user_id: Optional[str] = None
    new_user_id: Optional[str] = None
    old_user_name: Optional[str] = None
    new_user_name: Optional[str] = None


class AppointmentMetadata(_Metadata):
    task_id: str
    scheduled_at: str
    previous_scheduled_at: Optional[str] = None
    is_google_meet: Optional[bool] = None


class NoteMetadata(_Metadata):
    """Notes système: fichiers, doublons, leads entrants"""
    file_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    origin: Optional[str] = None
    occurrence: Optional[int] = None
    source: Optional[str] = None
    external_id: Optional[str] = None


METADATA_MODELS: Dict[InteractionType, Type[BaseModel]] = {
    InteractionType.STATUS_CHANGE: StatusChangeMetadata,
    InteractionType.CONTACT_UPDATE: ContactUpdateMetadata,
    InteractionType.ASSIGNMENT_CHANGE: AssignmentChangeMetadata,
    InteractionType.APPOINTMENT_CREATED: AppointmentMetadata,
    InteractionType.APPOINTMENT_DELETED: AppointmentMetadata,
    InteractionType.APPOINTMENT_CHANGED: AppointmentMetadata,
    InteractionType.NOTE: NoteMetadata,
}


def validate_metadata(interaction_type: InteractionType, metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Valide le payload metadata contre la forme attendue pour le type.
    Les types sans forme déclarée (CALL, SMS, EMAIL, MEETING) n'acceptent pas de metadata.
    Lève ValueError (pydantic.ValidationError) si le payload ne correspond pas.
    """
    if metadata is None:
        return None
    model = METADATA_MODELS.get(InteractionType(interaction_type))
    if model is None:
        raise ValueError(f"Pas de metadata attendue pour le type {interaction_type}")
    dumped = model.model_validate(metadata).model_dump()
    return {k: v for k, v in dumped.items() if v is not None}


# ==================== API ====================

class InteractionCreate(BaseModel):
    """Saisie manuelle d'une interaction depuis la fiche contact"""
    type: InteractionType = InteractionType.NOTE
    title: Optional[str] = None
    content: str = Field(min_length=1)
    date: Optional[str] = None
