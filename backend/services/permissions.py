"""
CRM - Permission System
Catalogue des codes de permission + profils par défaut + hiérarchie legacy.
Les permissions du profil (custom_role) font autorité. Les rôles legacy ne
servent qu'au contrôle hiérarchique grossier (has_role).
"""

import logging
from typing import Dict, List, Optional, Iterable

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# CATEGORIES (présentation UI uniquement)
# ════════════════════════════════════════════════════════════════════════

PERMISSION_CATEGORIES = {
    "ANALYTICS": "Analytics",
    "CONTACTS": "Contacts",
    "TASKS": "Tâches",
    "TEMPLATES": "Templates",
    "INTEGRATIONS": "Intégrations",
    "USERS": "Utilisateurs",
    "SETTINGS": "Paramètres",
    "GENERAL": "Général",
}


def _perm(code: str, name: str, description: str, category: str) -> Dict[str, str]:
    return {
        "code": code,
        "name": name,
        "description": description,
        "category": category,
        "category_label": PERMISSION_CATEGORIES[category],
    }


# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSIONS
# ════════════════════════════════════════════════════════════════════════

PERMISSIONS: List[Dict[str, str]] = [
    _perm("analytics.view", "Voir les analytics",
          "Permet de voir les statistiques et analytics", "ANALYTICS"),
    _perm("analytics.export", "Exporter les analytics",
          "Autorise l'exportation des données analytics", "ANALYTICS"),

    _perm("contacts.view_all", "Voir tous les contacts",
          "Permet de voir tous les contacts de toutes les entreprises", "CONTACTS"),
    _perm("contacts.view_own", "Voir ses contacts",
          "Permet de voir uniquement les contacts qui lui sont assignés", "CONTACTS"),
    _perm("contacts.view_unassigned", "Voir les contacts non attribués",
          "Permet de voir les contacts qui n'ont pas encore été assignés", "CONTACTS"),
    _perm("contacts.create", "Créer un contact",
          "Autorise la création de nouveaux contacts", "CONTACTS"),
    _perm("contacts.edit_own", "Modifier ses contacts",
          "Autorise la modification des contacts qui lui sont assignés", "CONTACTS"),
    _perm("contacts.edit_all", "Modifier tous les contacts",
          "Autorise la modification de tous les contacts", "CONTACTS"),
    _perm("contacts.delete", "Supprimer un contact",
          "Autorise la suppression de contacts", "CONTACTS"),
    _perm("contacts.assign", "Assigner des contacts",
          "Permet d'assigner des contacts à d'autres utilisateurs", "CONTACTS"),
    _perm("contacts.import", "Importer des contacts",
          "Autorise l'importation de contacts via CSV/Excel", "CONTACTS"),
    _perm("contacts.export", "Exporter des contacts",
          "Autorise l'exportation de contacts", "CONTACTS"),
    _perm("contacts.upload_files", "Upload de fichiers",
          "Permet de télécharger des fichiers pour les contacts", "CONTACTS"),
    _perm("contacts.view_files", "Voir les fichiers",
          "Permet de voir les fichiers associés aux contacts", "CONTACTS"),

    _perm("tasks.view_all", "Voir toutes les tâches",
          "Permet de voir toutes les tâches de tous les utilisateurs", "TASKS"),
    _perm("tasks.view_own", "Voir ses tâches",
          "Permet de voir uniquement ses propres tâches", "TASKS"),
    _perm("tasks.create", "Créer une tâche",
          "Autorise la création de nouvelles tâches", "TASKS"),
    _perm("tasks.edit_own", "Modifier ses tâches",
          "Autorise la modification de ses propres tâches", "TASKS"),
    _perm("tasks.edit_all", "Modifier toutes les tâches",
          "Autorise la modification de toutes les tâches", "TASKS"),
    _perm("tasks.delete", "Supprimer une tâche",
          "Autorise la suppression de tâches", "TASKS"),
    _perm("tasks.assign", "Assigner des tâches",
          "Permet d'assigner des tâches à d'autres utilisateurs", "TASKS"),

    _perm("templates.view", "Voir les templates",
          "Permet de voir les templates disponibles", "TEMPLATES"),
    _perm("templates.create", "Créer un template",
          "Autorise la création de nouveaux templates", "TEMPLATES"),
    _perm("templates.edit", "Modifier un template",
          "Autorise la modification de templates", "TEMPLATES"),
    _perm("templates.delete", "Supprimer un template",
          "Autorise la suppression de templates", "TEMPLATES"),

    _perm("integrations.view", "Voir les intégrations",
          "Permet de voir les intégrations configurées", "INTEGRATIONS"),
    _perm("integrations.create", "Créer une intégration",
          "Autorise la création de nouvelles intégrations", "INTEGRATIONS"),
    _perm("integrations.edit", "Modifier une intégration",
          "Autorise la modification d'intégrations", "INTEGRATIONS"),
    _perm("integrations.delete", "Supprimer une intégration",
          "Autorise la suppression d'intégrations", "INTEGRATIONS"),
    _perm("integrations.google.connect", "Connecter Google",
          "Permet de connecter son compte Google", "INTEGRATIONS"),
    _perm("integrations.meta.manage", "Gérer les leads Meta",
          "Permet de configurer les intégrations Meta (Facebook)", "INTEGRATIONS"),
    _perm("integrations.google_ads.manage", "Gérer les leads Google Ads",
          "Permet de configurer les intégrations Google Ads", "INTEGRATIONS"),
    _perm("integrations.google_sheets.manage", "Gérer les Google Sheets",
          "Permet de configurer les synchronisations Google Sheets", "INTEGRATIONS"),

    _perm("users.view", "Voir les utilisateurs",
          "Permet de voir la liste des utilisateurs", "USERS"),
    _perm("users.create", "Créer un utilisateur",
          "Autorise la création de nouveaux utilisateurs", "USERS"),
    _perm("users.edit", "Modifier un utilisateur",
          "Autorise la modification d'utilisateurs", "USERS"),
    _perm("users.deactivate", "Désactiver un utilisateur",
          "Autorise la désactivation d'utilisateurs", "USERS"),
    _perm("users.delete", "Supprimer un utilisateur",
          "Autorise la suppression définitive d'utilisateurs", "USERS"),
    _perm("users.manage_roles", "Gérer les rôles",
          "Permet de gérer les profils et permissions", "USERS"),

    _perm("settings.view", "Voir les paramètres",
          "Permet de voir les paramètres du système", "SETTINGS"),
    _perm("settings.company.edit", "Modifier les infos de l'entreprise",
          "Autorise la modification des informations de l'entreprise", "SETTINGS"),
    _perm("settings.smtp.edit", "Configurer SMTP",
          "Permet de configurer les paramètres SMTP", "SETTINGS"),
    _perm("settings.status.manage", "Gérer les statuts",
          "Permet de créer, modifier et supprimer des statuts", "SETTINGS"),

    _perm("general.view_all_companies", "Voir les contacts de toutes les sociétés",
          "Permet de voir tous les contacts de toutes les entreprises", "GENERAL"),
]

ALL_PERMISSION_CODES: List[str] = [p["code"] for p in PERMISSIONS]
_KNOWN_CODES = frozenset(ALL_PERMISSION_CODES)

PERMISSIONS_BY_CATEGORY: Dict[str, List[Dict[str, str]]] = {}
for _p in PERMISSIONS:
    PERMISSIONS_BY_CATEGORY.setdefault(_p["category"], []).append(_p)


def is_known_permission(code: str) -> bool:
    return code in _KNOWN_CODES


def unknown_permissions(codes: Iterable[str]) -> List[str]:
    """Codes absents du catalogue, dans l'ordre reçu"""
    return [c for c in codes if c not in _KNOWN_CODES]


# ════════════════════════════════════════════════════════════════════════
# DEFAULT ROLES (profils système)
# ADMIN = fermeture de tout le catalogue, recalculée à l'import
# ════════════════════════════════════════════════════════════════════════

DEFAULT_ROLES: Dict[str, Dict] = {
    "ADMIN": {
        "name": "Administrateur",
        "description": "Accès complet à toutes les fonctionnalités du système",
        "permissions": list(ALL_PERMISSION_CODES),
    },
    "MANAGER": {
        "name": "Manager",
        "description": "Gestion d'équipe et accès étendu aux leads",
        "permissions": [
            "analytics.view",
            "contacts.view_all", "contacts.create", "contacts.edit_all",
            "contacts.assign", "contacts.import", "contacts.export",
            "contacts.view_files", "contacts.upload_files",
            "tasks.view_all", "tasks.create", "tasks.edit_all", "tasks.assign",
            "templates.view", "templates.create", "templates.edit", "templates.delete",
            "integrations.view",
            "users.view",
            "settings.view",
        ],
    },
    "COMMERCIAL": {
        "name": "Commercial",
        "description": "Accès de base pour la gestion des leads personnels",
        "permissions": [
            "contacts.view_own", "contacts.view_unassigned", "contacts.create",
            "contacts.edit_own", "contacts.view_files", "contacts.upload_files",
            "tasks.view_own", "tasks.create", "tasks.edit_own",
            "templates.view", "templates.create", "templates.edit",
            "integrations.view", "integrations.google.connect",
        ],
    },
    "TELEPRO": {
        "name": "Télépro",
        "description": "Accès limité pour la qualification de leads",
        "permissions": [
            "contacts.view_own", "contacts.view_unassigned", "contacts.create",
            "contacts.edit_own", "contacts.view_files",
            "tasks.view_own", "tasks.create", "tasks.edit_own",
            "templates.view",
        ],
    },
    "COMPTABLE": {
        "name": "Comptable",
        "description": "Accès limité aux informations financières et reporting",
        "permissions": [
            "analytics.view", "analytics.export",
            "contacts.view_all", "contacts.export",
            "tasks.view_all",
            "templates.view",
            "settings.view",
        ],
    },
}


def has_permission(role_permissions: Optional[Iterable[str]], required: str) -> bool:
    """Vérifie qu'un ensemble de permissions contient le code requis."""
    if not role_permissions:
        return False
    return required in role_permissions


def get_role_permissions(role: Optional[str]) -> List[str]:
    """Permissions du profil par défaut correspondant au rôle (liste vide si inconnu)."""
    if not role:
        return []
    preset = DEFAULT_ROLES.get(role.upper())
    return list(preset["permissions"]) if preset else []


# ════════════════════════════════════════════════════════════════════════
# LEGACY ROLE HIERARCHY (plus petit = plus de privilèges)
# ════════════════════════════════════════════════════════════════════════

ROLE_HIERARCHY: Dict[str, int] = {
    "ADMIN": 1,
    "MANAGER": 2,
    "COMMERCIAL": 3,
    "TELEPRO": 4,
    "COMPTABLE": 5,
    "USER": 6,
}


def role_rank(role: Optional[str]) -> Optional[int]:
    if not role:
        return None
    return ROLE_HIERARCHY.get(role.upper())


def has_role(user_role: Optional[str], required_role: str) -> bool:
    """Accès si le rang du rôle utilisateur est <= au rang requis."""
    user_rank = role_rank(user_role)
    required_rank = role_rank(required_role)
    if user_rank is None or required_rank is None:
        return False
    return user_rank <= required_rank
