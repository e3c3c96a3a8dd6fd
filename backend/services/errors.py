"""
CRM - Erreurs métier typées

Les services lèvent ces exceptions, les routes les traduisent en HTTPException.
"""


class CRMError(Exception):
    """Base des erreurs métier du CRM"""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotAuthenticatedError(CRMError):
    status_code = 401

    def __init__(self, message: str = "Non authentifié"):
        super().__init__(message)


class ForbiddenError(CRMError):
    status_code = 403

    def __init__(self, message: str = "Permissions insuffisantes"):
        super().__init__(message)


class NotFoundError(CRMError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str = None, message: str = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message or f"{entity_type} non trouvé")


class ContactValidationError(CRMError):
    """Données de contact invalides (ex: téléphone manquant)"""
    pass


class RoleValidationError(CRMError):
    """Payload de profil invalide (nom vide, doublon, permission inconnue)"""
    pass


class RoleInUseError(CRMError):
    """Suppression d'un profil encore attribué à des utilisateurs"""

    def __init__(self, users_count: int):
        self.users_count = users_count
        super().__init__(
            f"Ce profil ne peut pas être supprimé car {users_count} utilisateur(s) l'utilisent"
        )


class UserValidationError(CRMError):
    """Payload utilisateur invalide (email déjà pris, profil inconnu)"""
    pass


class StatusValidationError(CRMError):
    """Statut invalide (nom vide ou déjà pris)"""
    pass
