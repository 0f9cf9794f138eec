"""
Erreurs applicatives.

Chaque erreur porte son code HTTP et un code stable ; les handlers
enregistrés dans main.py les traduisent en enveloppe JSON
{"success": false, "error": ..., "code": ...}.
"""
from typing import Dict, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    message: str = "Erreur interne du serveur"
    headers: Optional[Dict[str, str]] = None

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthenticated"
    message = "Non authentifié"
    headers = {"WWW-Authenticate": "Bearer"}


class ProfileNotFound(AppError):
    status_code = 404
    code = "profile_not_found"
    message = "Profil utilisateur non trouvé"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    message = "Accès refusé"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    message = "Ressource introuvable"


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    message = "Données invalides"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidTransition(AppError):
    status_code = 409
    code = "invalid_transition"
    message = "Transition de statut interdite"


class EvaluationLocked(AppError):
    status_code = 409
    code = "evaluation_locked"
    message = "Évaluation finalisée : modification impossible"


class StoreError(AppError):
    """Échec de la base de données ; le détail reste dans les logs."""
    status_code = 500
    code = "store_error"
    message = "Erreur interne du serveur"


class StorageError(AppError):
    status_code = 500
    code = "storage_error"
    message = "Erreur de stockage"


class BlobNotFound(StorageError):
    status_code = 404
    code = "blob_not_found"
    message = "Fichier non trouvé dans le stockage"

    def __init__(self, path: str):
        super().__init__()
        self.path = path
