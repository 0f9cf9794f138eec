"""
Création des comptes et des affectations de stage, et amorçage du premier
administrateur.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import get_password_hash
from .config import Settings
from .errors import ValidationError
from .models import Account, Stagiaire, User
from .policy import Action, Principal, Resource, Role, ensure_can
from .schemas import UserCreate
from .tutor_assignment import TutorAssignmentStrategy, default_strategy, tutor_loads

logger = logging.getLogger(__name__)

# APP_ENV où l'amorçage est autorisé
BOOTSTRAP_ENVS = frozenset({"local", "test"})


@dataclass
class ProvisionResult:
    user: User
    stagiaire: Optional[Stagiaire] = None
    warnings: List[str] = field(default_factory=list)


def create_assignment(
    db: Session,
    user: User,
    settings: Settings,
    strategy: TutorAssignmentStrategy = default_strategy,
    today: Optional[date] = None,
) -> Stagiaire:
    start = today or date.today()
    stagiaire = Stagiaire(
        user_id=user.id,
        company_name=settings.DEFAULT_COMPANY_NAME,
        position=settings.DEFAULT_POSITION,
        tutor_id=strategy.choose(tutor_loads(db)),
        status="active",
        start_date=start,
        end_date=start + timedelta(days=settings.DEFAULT_INTERNSHIP_DAYS),
    )
    db.add(stagiaire)
    db.commit()
    db.refresh(stagiaire)
    return stagiaire


def provision_user(
    db: Session,
    payload: UserCreate,
    actor: Principal,
    settings: Settings,
    strategy: TutorAssignmentStrategy = default_strategy,
) -> ProvisionResult:
    """
    1) compte + profil, dans un même commit
    2) pour un stagiaire, l'affectation dans un second commit.
    Un échec de l'étape 2 n'annule pas l'étape 1 : l'utilisateur est gardé
    sans affectation et un avertissement est renvoyé.
    """
    ensure_can(actor, Action.MANAGE, Resource.USERS)

    email = payload.email.lower()
    if db.query(Account).filter(Account.email == email).first():
        raise ValidationError("Un utilisateur avec cet email existe déjà", field="email")

    account = Account(email=email, password_hash=get_password_hash(payload.password))
    db.add(account)
    db.flush()

    user = User(
        id=account.id,
        email=email,
        name=payload.name,
        role=payload.role,
        is_active=payload.is_active,
        phone=payload.phone,
        department=payload.department,
        position=payload.position,
        address=payload.address,
    )
    db.add(user)
    log_action(
        db,
        entity_type="user",
        entity_id=user.id,
        user_id=actor.id,
        action="create",
        detail=f"Création du compte {email} ({payload.role})",
    )
    db.commit()
    db.refresh(user)

    result = ProvisionResult(user=user)
    if payload.role != Role.INTERN.value:
        return result

    try:
        result.stagiaire = create_assignment(db, user, settings, strategy)
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            "Affectation non créée pour le stagiaire %s", user.id, exc_info=True
        )
        result.warnings.append("Affectation de stage non créée")
    return result


def ensure_bootstrap_admin(db: Session, settings: Settings) -> Optional[User]:
    """
    Crée (ou réactive) l'administrateur initial décrit par BOOTSTRAP_ADMIN_*.
    Uniquement au démarrage, uniquement en local / test ; jamais accessible
    depuis une session HTTP.
    """
    if not settings.BOOTSTRAP_ADMIN_ENABLED:
        return None

    env = (settings.APP_ENV or "").strip().lower()
    if env not in BOOTSTRAP_ENVS:
        raise RuntimeError(
            f"BOOTSTRAP_ADMIN_ENABLED est actif mais APP_ENV vaut '{env}' "
            "(autorisé : local, test)."
        )
    if not settings.BOOTSTRAP_ADMIN_EMAIL or not settings.BOOTSTRAP_ADMIN_PASSWORD:
        raise ValueError("BOOTSTRAP_ADMIN_EMAIL et BOOTSTRAP_ADMIN_PASSWORD sont requis")

    email = settings.BOOTSTRAP_ADMIN_EMAIL.lower()
    account = db.query(Account).filter(Account.email == email).first()
    if account is None:
        account = Account(
            email=email,
            password_hash=get_password_hash(settings.BOOTSTRAP_ADMIN_PASSWORD),
        )
        db.add(account)
        db.flush()

    user = db.get(User, account.id)
    if user is None:
        user = User(id=account.id, email=email, name=settings.BOOTSTRAP_ADMIN_NAME, role=Role.ADMIN.value)
        db.add(user)
        detail = "Administrateur initial créé"
    elif user.role == Role.ADMIN.value and user.is_active:
        logger.info("Amorçage admin : %s déjà administrateur", email)
        return user
    else:
        detail = f"Promotion en administrateur (rôle précédent : {user.role})"

    user.role = Role.ADMIN.value
    user.is_active = True
    log_action(
        db,
        entity_type="user",
        entity_id=user.id,
        user_id=None,
        action="bootstrap",
        detail=f"{detail} (APP_ENV={env})",
    )
    db.commit()
    db.refresh(user)
    logger.warning("Amorçage admin appliqué pour %s", email)
    return user
