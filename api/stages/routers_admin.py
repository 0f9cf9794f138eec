from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import get_password_hash, require_admin
from .config import settings
from .database import get_db
from .errors import NotFound, ValidationError
from .models import Account, AuditLog, User
from .policy import Action, Principal, Resource, ensure_can
from .provisioning import provision_user
from .schemas import (
    AuditEntryOut,
    StagiaireOut,
    UserCreate,
    UserOut,
    UserUpdate,
    envelope,
)
from .tutor_assignment import TutorAssignmentStrategy, get_assignment_strategy

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("Utilisateur introuvable.")
    return user


# ---------- Gestion des utilisateurs (Admin only) ----------


@router.get("/users")
def list_users_admin(
    role: Optional[str] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """
    Liste des utilisateurs, du plus récent au plus ancien.
    Réservé aux administrateurs actifs.
    """
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    users = query.order_by(User.created_at.desc()).all()
    data = [UserOut.model_validate(u) for u in users]
    return envelope(data, total=len(data))


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user_admin(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
    strategy: TutorAssignmentStrategy = Depends(get_assignment_strategy),
):
    """
    Création d'un utilisateur par un administrateur.
    Pour un stagiaire, l'affectation (entreprise, tuteur) est créée dans la
    foulée ; si elle échoue, le compte est conservé et un avertissement est
    renvoyé.
    """
    result = provision_user(db, payload, admin, settings, strategy)
    return envelope(
        UserOut.model_validate(result.user),
        assignment=StagiaireOut.model_validate(result.stagiaire) if result.stagiaire else None,
        warnings=result.warnings,
        message="Utilisateur créé avec succès",
    )


@router.get("/users/{user_id}")
def get_user_admin(
    user_id: str,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """Récupère un utilisateur par son id (pour la page d'édition)."""
    return envelope(UserOut.model_validate(_get_user_or_404(db, user_id)))


@router.put("/users/{user_id}")
def update_user_admin(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """
    Mise à jour d'un utilisateur (profil, rôle, activation, mot de passe).
    - role / is_active : interdit sur son propre compte
    - password : si fourni, on régénère le hash du compte
    Les comptes ne sont jamais supprimés, seulement désactivés.
    """
    user = _get_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    for required in ("name", "role", "is_active", "password"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} ne peut pas être vide", field=required)

    if admin.id == user.id:
        if "role" in changes and changes["role"] != user.role:
            raise ValidationError("Vous ne pouvez pas modifier votre propre rôle.", field="role")
        if changes.get("is_active") is False:
            raise ValidationError(
                "Vous ne pouvez pas désactiver votre propre compte.", field="is_active"
            )

    password = changes.pop("password", None)
    if password is not None:
        account = db.get(Account, user.id)
        if account is None:
            raise NotFound("Compte introuvable.")
        account.password_hash = get_password_hash(password)

    summary = []
    for field, value in changes.items():
        if getattr(user, field) != value:
            summary.append(f"{field}: {getattr(user, field)} -> {value}")
        setattr(user, field, value)

    log_action(
        db,
        entity_type="user",
        entity_id=user.id,
        user_id=admin.id,
        action="update",
        detail="; ".join(summary + (["mot de passe"] if password else [])) or None,
    )
    db.commit()
    db.refresh(user)
    return envelope(UserOut.model_validate(user))


# ---------- Journal d'audit (Admin only) ----------


@router.get("/audit-logs")
def list_audit_logs_admin(
    email: Optional[str] = Query(default=None),
    action: Optional[str] = Query(default=None),
    entity_type: Optional[str] = Query(default=None),
    entity_id: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    """
    Consultation du journal d'audit : qui a fait quoi, sur quoi, et quand.
    Filtres possibles :
      - email : filtre sur l'e-mail de l'auteur
      - action : "create" / "update" / "transition" / "delete" / "bootstrap"
      - entity_type / entity_id : la ressource concernée
    Réservé aux administrateurs.
    """
    ensure_can(admin, Action.READ, Resource.AUDIT)

    stmt = select(AuditLog, User.email).outerjoin(User, AuditLog.user_id == User.id)

    conds = []
    if email:
        conds.append(User.email.ilike(f"%{email}%"))
    if action:
        conds.append(AuditLog.action == action)
    if entity_type:
        conds.append(AuditLog.entity_type == entity_type)
    if entity_id:
        conds.append(AuditLog.entity_id == entity_id)

    if conds:
        stmt = stmt.where(and_(*conds))

    stmt = (
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * size)
        .limit(size)
    )

    entries: List[AuditEntryOut] = []
    for log, user_email in db.execute(stmt).all():
        entries.append(
            AuditEntryOut(
                id=log.id,
                action=log.action,
                entity_type=log.entity_type,
                entity_id=log.entity_id,
                user_email=user_email,
                detail=log.detail,
                created_at=log.created_at,
            )
        )

    return envelope(entries, page=page, size=size)
