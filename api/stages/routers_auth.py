from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response, status
# OAuth2PasswordRequestForm.username = email
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import (
    SESSION_COOKIE,
    create_access_token,
    create_session,
    get_current_principal,
    get_identity,
    get_password_hash,
    verify_password,
)
from .config import settings
from .database import get_db
from .errors import NotFound, Unauthenticated, ValidationError
from .models import Account, User, UserSession
from .policy import Principal
from .schemas import MeOut, PasswordChange, ProfileUpdate, TokenOut, UserOut, envelope

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenOut)
def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """
    Authentifie l'utilisateur :
    - vérifie email/mdp
    - génère un JWT (sub = id du compte, email, rôle à titre indicatif)
    - ouvre une session opaque et la place dans un cookie HttpOnly
    """
    account = db.query(Account).filter(Account.email == form_data.username.lower()).first()
    if not account or not verify_password(form_data.password, account.password_hash):
        raise Unauthenticated("Email ou mot de passe incorrect")

    profile = db.get(User, account.id)
    claims = {"sub": account.id, "email": account.email}
    if profile is not None:
        claims["role"] = profile.role

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(claims, expires_delta=expires)

    session = create_session(db, account)
    db.commit()

    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.id,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        path="/",
    )
    return TokenOut(access_token=token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    identity=Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Déconnexion : supprime la session côté serveur et le cookie."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        session = db.get(UserSession, session_id)
        if session is not None and session.account_id == identity.id:
            db.delete(session)
            db.commit()
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@router.get("/me")
def me(principal: Principal = Depends(get_current_principal)):
    """Ping d'auth côté front pour vérifier la session et le rôle."""
    return envelope(
        MeOut(id=principal.id, email=principal.email, role=principal.role, active=principal.active)
    )


@router.put("/me")
def update_my_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Page "Paramètres" : chacun modifie son nom et ses coordonnées.
    Le rôle et l'activation ne passent que par /admin/users.
    """
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise ValidationError("name ne peut pas être vide", field="name")

    user = db.get(User, principal.id)
    for field, value in changes.items():
        setattr(user, field, value)

    log_action(
        db,
        entity_type="user",
        entity_id=user.id,
        user_id=principal.id,
        action="update",
        detail="Profil modifié par l'utilisateur",
    )
    db.commit()
    db.refresh(user)
    return envelope(UserOut.model_validate(user))


@router.put("/me/password")
def change_my_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Changement de mot de passe : l'ancien est vérifié avant le nouveau hash."""
    account = db.get(Account, principal.id)
    if account is None:
        raise NotFound("Compte introuvable.")
    if not verify_password(payload.current_password, account.password_hash):
        raise ValidationError("Mot de passe actuel incorrect", field="current_password")

    account.password_hash = get_password_hash(payload.new_password)
    log_action(
        db,
        entity_type="user",
        entity_id=account.id,
        user_id=principal.id,
        action="password_change",
    )
    db.commit()
    return envelope(None, message="Mot de passe modifié avec succès")
