"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Import de contacts (CSV)                                              ║
║                                                                              ║
║  Pour chaque ligne, dans l'ordre:                                            ║
║  1. Téléphone absent -> ligne ignorée                                        ║
║  2. Doublon (prénom + nom + email) -> repli sur la fiche existante           ║
║  3. Téléphone déjà connu -> ligne écartée                                    ║
║  4. Sinon création (note "Contact importé")                                  ║
║                                                                              ║
║  Statut: colonne mappée (par nom), sinon "Nouveau" s'il existe               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import csv
import io
import logging
import re
from typing import Optional, Dict, Any, List

from config import db
from services.contact_lifecycle import create_contact
from services.duplicate_resolver import resolve_duplicate
from services.errors import CRMError, ContactValidationError

logger = logging.getLogger("contact_import")

IMPORT_ORIGIN = "Import CSV"
DEFAULT_STATUS_NAME = "Nouveau"
MAX_REPORTED_ERRORS = 10

# champ contact -> nom de colonne dans le fichier
MAPPABLE_FIELDS = [
    "phone",
    "civility",
    "first_name",
    "last_name",
    "company_name",
    "secondary_phone",
    "email",
    "address",
    "city",
    "postal_code",
    "origin",
    "status",
    "assigned_commercial_id",
    "assigned_telepro_id",
]

_PHONE_NOISE = re.compile(r"[\s\-.()]")


def normalize_phone(phone: str) -> str:
    return _PHONE_NOISE.sub("", phone)


def parse_csv(content: str) -> List[Dict[str, str]]:
    """Lignes du fichier, en-tête en première ligne. Délimiteur ; ou ,"""
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        return []
    delimiter = ";" if ";" in lines[0] else ","
    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    reader.fieldnames = [(name or "").strip() for name in reader.fieldnames]
    return [
        {key: (value or "").strip() for key, value in row.items() if key is not None}
        for row in reader
    ]


def column_value(row: Dict[str, str], column: Optional[str]) -> Optional[str]:
    """Valeur d'une colonne, en tolérant la casse du nom de colonne"""
    if not column:
        return None
    for variant in (column, column.strip(), column.lower(), column.upper()):
        value = row.get(variant)
        if value:
            return value.strip()
    return None


def validate_mapping(mapping: Dict[str, Any]) -> Dict[str, str]:
    if not isinstance(mapping, dict):
        raise ContactValidationError("Mapping des colonnes invalide")
    unknown = [field for field in mapping if field not in MAPPABLE_FIELDS]
    if unknown:
        raise ContactValidationError(f"Champs inconnus dans le mapping: {', '.join(unknown)}")
    if not mapping.get("phone"):
        raise ContactValidationError("La colonne du téléphone doit être mappée")
    return {field: column for field, column in mapping.items() if isinstance(column, str) and column}


async def _status_id_by_name(name: Optional[str], cache: Dict[str, Optional[str]]) -> Optional[str]:
    if not name:
        return None
    if name not in cache:
        status = await db.statuses.find_one({"name": name}, {"_id": 0, "id": 1})
        cache[name] = status["id"] if status else None
    return cache[name]


async def import_contacts(rows: List[Dict[str, str]], mapping: Dict[str, str], user_id: str) -> Dict[str, Any]:
    """
    Importe les lignes déjà parsées.

    Returns:
        {"success", "imported", "skipped", "duplicates", "errors", "details"}
    """
    mapping = validate_mapping(mapping)
    status_cache: Dict[str, Optional[str]] = {}
    default_status_id = await _status_id_by_name(DEFAULT_STATUS_NAME, status_cache)

    created: List[str] = []
    folded: List[str] = []
    skipped_rows: List[int] = []
    duplicates: List[str] = []
    errors: List[str] = []

    for index, row in enumerate(rows):
        row_number = index + 2  # ligne 1 = en-tête
        phone = column_value(row, mapping.get("phone"))
        phone = normalize_phone(phone) if phone else None
        if not phone:
            skipped_rows.append(row_number)
            continue

        data = {field: column_value(row, column) for field, column in mapping.items() if field != "status"}
        data["phone"] = phone
        data["origin"] = data.get("origin") or IMPORT_ORIGIN
        data["status_id"] = (
            await _status_id_by_name(column_value(row, mapping.get("status")), status_cache)
            or default_status_id
        )

        try:
            existing_id = await resolve_duplicate(
                data.get("first_name"), data.get("last_name"), data.get("email"), data["origin"], user_id
            )
            if existing_id:
                folded.append(existing_id)
                duplicates.append(
                    f"Contact {data.get('first_name')} {data.get('last_name')} "
                    f"({data.get('email')}) - doublon détecté"
                )
                continue

            if await db.contacts.find_one({"phone": phone}, {"_id": 0, "id": 1}):
                duplicates.append(f"Téléphone {phone} déjà existant")
                continue

            contact, duplicate = await create_contact(data, user_id, imported=True)
        except CRMError as e:
            errors.append(f"Ligne {row_number}: {e.message}")
            continue

        if duplicate:
            folded.append(contact["id"])
            duplicates.append(f"Ligne {row_number}: doublon détecté")
        else:
            created.append(contact["id"])

    logger.info(
        f"[CONTACT_IMPORT] user={user_id} rows={len(rows)} created={len(created)} "
        f"duplicates={len(duplicates)} skipped={len(skipped_rows)} errors={len(errors)}"
    )
    return {
        "success": True,
        "imported": len(created),
        "skipped": len(skipped_rows),
        "duplicates": len(duplicates),
        "errors": len(errors),
        "details": {
            "created": created,
            "folded_into": folded,
            "skipped_rows": skipped_rows,
            "duplicates": duplicates,
            "errors": errors[:MAX_REPORTED_ERRORS],
        },
    }
