"""
CRM - Journal des interactions (audit trail des contacts)

Chaque fonction log_* construit une interaction bien formée et l'enregistre.
Les gardes "no-op" (aucun changement réel) retournent None sans rien écrire.

Les appels qui suivent une mutation métier passent par safe_log():
un échec du journal ne doit JAMAIS faire échouer la mutation principale.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union, Awaitable

import pytz

from config import db, now_iso
from models.interaction import InteractionType, validate_metadata

logger = logging.getLogger("interaction_logger")

PARIS_TZ = pytz.timezone("Europe/Paris")

MOIS_FR = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]

FIELD_LABELS = {
    "first_name": "Prénom",
    "last_name": "Nom",
    "company_name": "Entreprise",
    "phone": "Téléphone",
    "secondary_phone": "Téléphone secondaire",
    "email": "Email",
    "address": "Adresse",
    "city": "Ville",
    "postal_code": "Code postal",
    "civility": "Civilité",
    "origin": "Origine",
}

ASSIGNMENT_LABELS = {
    "COMMERCIAL": "Commercial",
    "TELEPRO": "Télépro",
}

UNASSIGNED = "__unassigned__"

REREGISTRATION_TITLE = "Contact enregistré à nouveau"


# ==================== FORMATAGE ====================

def _as_datetime(value: Union[datetime, str]) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _as_iso(value: Union[datetime, str, None]) -> Optional[str]:
    if value is None:
        return None
    return _as_datetime(value).isoformat()


def format_datetime_fr(value: Union[datetime, str]) -> str:
    """15 janvier 2025 à 14:30 (heure de Paris)"""
    local = _as_datetime(value).astimezone(PARIS_TZ)
    return f"{local.day} {MOIS_FR[local.month - 1]} {local.year} à {local:%H:%M}"


def ordinal_fr(n: int) -> str:
    return f"{n}ère" if n == 1 else f"{n}ème"


def format_file_size(size: int) -> str:
    """Taille lisible en base 1024: 0 Bytes, 1.5 KB, 2 MB, 1.25 GB"""
    if not size or size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[index]}"


def _display(value: Any, empty: str) -> str:
    return str(value) if value is not None else empty


# ==================== ÉCRITURE ====================

async def create_interaction(
    contact_id: str,
    type: InteractionType,
    content: str,
    user_id: str,
    title: Optional[str] = None,
    date: Union[datetime, str, None] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Enregistre une interaction (append-only) et la retourne sans _id.

    Lève ValueError si content est vide ou si metadata ne correspond pas
    à la forme déclarée pour le type.
    """
    interaction_type = InteractionType(type)
    if not content or not content.strip():
        raise ValueError("Le contenu de l'interaction est obligatoire")

    doc = {
        "id": str(uuid.uuid4()),
        "contact_id": contact_id,
        "type": interaction_type.value,
        "title": title or None,
        "content": content,
        "date": _as_iso(date),
        "user_id": user_id,
        "metadata": validate_metadata(interaction_type, metadata),
        "created_at": now_iso(),
    }
    await db.interactions.insert_one(doc)
    doc.pop("_id", None)
    return doc


async def log_status_change(
    contact_id: str,
    old_status_id: Optional[str],
    new_status_id: Optional[str],
    user_id: str,
    old_status_name: Optional[str] = None,
    new_status_name: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    if (old_status_id or None) == (new_status_id or None):
        return None

    old_label = old_status_name or "Aucun"
    new_label = new_status_name or "Aucun"
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.STATUS_CHANGE,
        title="Changement de statut",
        content=f'Statut modifié de "{old_label}" à "{new_label}"',
        user_id=user_id,
        metadata={
            "old_status_id": old_status_id,
            "new_status_id": new_status_id,
            "old_status_name": old_status_name,
            "new_status_name": new_status_name,
        },
    )


async def log_contact_update(
    contact_id: str,
    changes: Dict[str, Dict[str, Any]],
    user_id: str,
) -> Optional[Dict[str, Any]]:
    """
    changes: {"field": {"old": ..., "new": ...}}
    Les paires identiques après conversion en texte sont ignorées.
    Aucun changement réel -> None, rien n'est écrit.
    """
    lines = []
    kept = {}
    for field, change in changes.items():
        old_text = _display(change.get("old"), "Aucun")
        new_text = _display(change.get("new"), "Aucun")
        if old_text == new_text:
            continue
        label = FIELD_LABELS.get(field, field)
        lines.append(f'{label}: "{old_text}" → "{new_text}"')
        kept[field] = {"old": change.get("old"), "new": change.get("new")}

    if not lines:
        return None

    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.CONTACT_UPDATE,
        title="Modification de la fiche contact",
        content="\n".join(lines),
        user_id=user_id,
        metadata={"changes": kept},
    )


def _normalize_assignee(user_id: Optional[str]) -> str:
    return user_id if user_id else UNASSIGNED


async def log_assignment_change(
    contact_id: str,
    assignment_type: str,
    old_user_id: Optional[str],
    new_user_id: Optional[str],
    user_id: str,
    old_user_name: Optional[str] = None,
    new_user_name: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """assignment_type: COMMERCIAL | TELEPRO. None, "" et absent valent "non attribué"."""
    if assignment_type not in ASSIGNMENT_LABELS:
        raise ValueError(f"Type d'assignation invalide: {assignment_type}")

    if _normalize_assignee(old_user_id) == _normalize_assignee(new_user_id):
        return None

    role_label = ASSIGNMENT_LABELS[assignment_type]
    old_label = old_user_name or "Non attribué"
    new_label = new_user_name or "Non attribué"
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.ASSIGNMENT_CHANGE,
        title=f"Changement d'assignation {role_label}",
        content=f'{role_label} modifié de "{old_label}" à "{new_label}"',
        user_id=user_id,
        metadata={
            "assignment_type": assignment_type,
            "old_user_id": old_user_id or None,
            "new_user_id": new_user_id or None,
            "old_user_name": old_user_name,
            "new_user_name": new_user_name,
        },
    )


# ---- Rendez-vous ----
# title = titre du rendez-vous lui-même, date = heure prévue (tri chronologique)

async def log_appointment_created(
    contact_id: str,
    task_id: str,
    scheduled_at: Union[datetime, str],
    title: Optional[str],
    user_id: str,
) -> Dict[str, Any]:
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.APPOINTMENT_CREATED,
        title=title or "Rendez-vous",
        content=f"Rendez-vous programmé le {format_datetime_fr(scheduled_at)}",
        user_id=user_id,
        date=scheduled_at,
        metadata={"task_id": task_id, "scheduled_at": _as_iso(scheduled_at)},
    )


async def log_appointment_cancelled(
    contact_id: str,
    task_id: str,
    scheduled_at: Union[datetime, str],
    title: Optional[str],
    user_id: str,
    is_google_meet: bool = False,
) -> Dict[str, Any]:
    kind = "Google Meet" if is_google_meet else "Rendez-vous"
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.APPOINTMENT_DELETED,
        title=title or kind,
        content=f"{kind} prévu le {format_datetime_fr(scheduled_at)} a été annulé.",
        user_id=user_id,
        date=scheduled_at,
        metadata={
            "task_id": task_id,
            "scheduled_at": _as_iso(scheduled_at),
            "is_google_meet": is_google_meet,
        },
    )


async def log_appointment_changed(
    contact_id: str,
    task_id: str,
    old_scheduled_at: Union[datetime, str, None],
    new_scheduled_at: Union[datetime, str],
    title: Optional[str],
    user_id: str,
    is_google_meet: bool = False,
) -> Dict[str, Any]:
    kind = "Google Meet" if is_google_meet else "Rendez-vous"
    new_iso = _as_iso(new_scheduled_at)
    old_iso = _as_iso(old_scheduled_at)

    if old_iso and old_iso != new_iso:
        content = (
            f"{kind} déplacé du {format_datetime_fr(old_iso)} "
            f"au {format_datetime_fr(new_iso)}"
        )
    else:
        content = f"{kind} du {format_datetime_fr(new_iso)} modifié"

    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.APPOINTMENT_CHANGED,
        title=title or kind,
        content=content,
        user_id=user_id,
        date=new_scheduled_at,
        metadata={
            "task_id": task_id,
            "scheduled_at": new_iso,
            "previous_scheduled_at": old_iso,
            "is_google_meet": is_google_meet,
        },
    )


# ---- Fichiers ----

async def log_file_uploaded(
    contact_id: str, file_id: str, file_name: str, file_size: int, user_id: str
) -> Dict[str, Any]:
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.NOTE,
        title="Fichier ajouté",
        content=f'Fichier "{file_name}" ajouté ({format_file_size(file_size)})',
        user_id=user_id,
        date=now_iso(),
        metadata={"file_id": file_id, "file_name": file_name, "file_size": file_size},
    )


async def log_file_replaced(
    contact_id: str, file_id: str, file_name: str, file_size: int, user_id: str
) -> Dict[str, Any]:
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.NOTE,
        title="Fichier remplacé",
        content=f'Fichier "{file_name}" remplacé par une nouvelle version ({format_file_size(file_size)})',
        user_id=user_id,
        date=now_iso(),
        metadata={"file_id": file_id, "file_name": file_name, "file_size": file_size},
    )


async def log_file_deleted(
    contact_id: str, file_name: str, file_size: int, user_id: str
) -> Dict[str, Any]:
    return await create_interaction(
        contact_id=contact_id,
        type=InteractionType.NOTE,
        title="Fichier supprimé",
        content=f'Fichier "{file_name}" supprimé ({format_file_size(file_size)})',
        user_id=user_id,
        date=now_iso(),
        metadata={"file_name": file_name, "file_size": file_size},
    )


# ==================== FIRE-AND-FORGET ====================

class AuditOutcome:
    """Résultat d'un appel au journal protégé par safe_log"""

    def __init__(
        self,
        logged: bool,
        interaction: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ):
        self.logged = logged
        self.interaction = interaction
        self.error = error

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logged": self.logged,
            "interaction_id": self.interaction.get("id") if self.interaction else None,
            "error": self.error,
        }


async def safe_log(call: Awaitable[Optional[Dict[str, Any]]]) -> AuditOutcome:
    """
    FAIL-OPEN: cette fonction ne lève JAMAIS.
    Toute erreur du journal est loggée et retournée dans AuditOutcome.
    """
    try:
        interaction = await call
    except Exception as e:
        logger.error(f"[AUDIT_FAIL] {type(e).__name__}: {e}")
        return AuditOutcome(logged=False, error=f"{type(e).__name__}: {e}")
    return AuditOutcome(logged=interaction is not None, interaction=interaction)
