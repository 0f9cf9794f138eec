import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .errors import Forbidden, ProfileNotFound, Unauthenticated
from .models import Account, User, UserSession
from .policy import Action, Principal, Resource, ensure_can
from .utils import as_aware, utcnow

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error=False pour pouvoir tomber en fallback cookie si pas d'en-tête
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

ALGORITHM = "HS256"
SESSION_COOKIE = "session_id"


@dataclass(frozen=True)
class Identity:
    """Résultat de l'authentification, avant lecture du profil."""
    id: str
    email: str
    role_hint: Optional[str] = None


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_session(db: Session, account: Account) -> UserSession:
    """Référence de session opaque, stockée en base."""
    session = UserSession(
        id=secrets.token_urlsafe(32),
        account_id=account.id,
        expires_at=utcnow() + timedelta(minutes=settings.SESSION_EXPIRE_MINUTES),
    )
    db.add(session)
    return session


def _normalize_bearer(value: Optional[str]) -> Optional[str]:
    """Supprime le préfixe 'Bearer ' si présent."""
    if not value:
        return value
    if value.startswith("Bearer "):
        return value[7:]
    return value


def _identity_from_token(token: str) -> Optional[Identity]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email:
        return None
    return Identity(id=str(sub), email=email, role_hint=payload.get("role"))


def _identity_from_session(db: Session, session_id: str) -> Optional[Identity]:
    session = db.get(UserSession, session_id)
    if session is None or as_aware(session.expires_at) <= utcnow():
        return None
    account = session.account
    if account is None:
        return None
    return Identity(id=account.id, email=account.email)


def resolve_identity(
    db: Session, token: Optional[str], session_id: Optional[str]
) -> Identity:
    """
    Authentifie l'appelant à partir :
      1) de l'en-tête Authorization: Bearer <jwt>, si présent et valide
      2) sinon, du cookie de session opaque
    Jamais d'accès anonyme : sans identité valide, Unauthenticated.
    """
    token = _normalize_bearer(token)
    if token:
        identity = _identity_from_token(token)
        if identity is not None:
            return identity

    if session_id:
        identity = _identity_from_session(db, session_id)
        if identity is not None:
            return identity

    raise Unauthenticated()


def load_profile(db: Session, identity: Identity) -> Principal:
    """
    Le rôle vient toujours du profil en base ; le rôle du jeton
    n'est qu'une indication et n'est jamais utilisé ici.
    """
    user = db.get(User, identity.id)
    if user is None:
        raise ProfileNotFound()
    return Principal(id=user.id, email=user.email, role=user.role, active=bool(user.is_active))


def get_identity(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Identity:
    return resolve_identity(db, token, request.cookies.get(SESSION_COOKIE))


def get_current_principal(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> Principal:
    """Principal authentifié, avec profil, et actif."""
    principal = load_profile(db, identity)
    if not principal.active:
        raise Forbidden("Compte désactivé")
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    ensure_can(principal, Action.MANAGE, Resource.USERS)
    return principal
