"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Models Package                                                        ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import ContactCreate, InteractionType, RoleCreate, etc.         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    VALID_ROLES,
    UserLogin,
    UserCreate,
    UserUpdate,
)

# Contact
from .contact import (
    TRACKED_FIELDS,
    ASSIGNMENT_FIELDS,
    ContactCreate,
    ContactUpdate,
)

# Interaction (journal d'audit)
from .interaction import (
    InteractionType,
    MANUAL_INTERACTION_TYPES,
    METADATA_MODELS,
    validate_metadata,
    InteractionCreate,
)

# Profils
from .role import (
    RoleCreate,
    RoleUpdate,
)

# Statuts
from .status import (
    StatusCreate,
    StatusUpdate,
)

__all__ = [
    # Auth
    "VALID_ROLES",
    "UserLogin",
    "UserCreate",
    "UserUpdate",
    # Contact
    "TRACKED_FIELDS",
    "ASSIGNMENT_FIELDS",
    "ContactCreate",
    "ContactUpdate",
    # Interaction
    "InteractionType",
    "MANUAL_INTERACTION_TYPES",
    "METADATA_MODELS",
    "validate_metadata",
    "InteractionCreate",
    # Profils
    "RoleCreate",
    "RoleUpdate",
    # Statuts
    "StatusCreate",
    "StatusUpdate",
]
