# api/stages/audit.py
from typing import Optional

from sqlalchemy.orm import Session

from .models import AuditLog


def log_action(
    db: Session,
    *,
    entity_type: str,
    entity_id: Optional[str],
    user_id: Optional[str],
    action: str,
    detail: Optional[str] = None,
) -> AuditLog:
    """
    Enregistre une entrée dans le journal d'audit.
    L'appelant commit avec le reste de la transaction.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        action=action,
        detail=detail,
    )
    db.add(log)
    return log
