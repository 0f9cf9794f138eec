import os
import tempfile

# La configuration est lue à l'import : on force SQLite en mémoire avant
# de charger l'application.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["UPLOAD_DIR"] = tempfile.gettempdir()
os.environ["BOOTSTRAP_ADMIN_ENABLED"] = "false"

import uuid
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stages.auth import create_access_token, get_password_hash
from stages.database import Base, get_db
from stages.main import app
from stages.models import Account, Stagiaire, User
from stages.storage import LocalBlobStore, get_blob_store

PASSWORD = "secret123"
_PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"))


@pytest.fixture()
def client(session_factory, blob_store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    # pas de "with" : les événements de démarrage ne sont pas déclenchés
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make_user(role="intern", email=None, name=None, is_active=True, with_profile=True):
        email = email or f"{role}-{uuid.uuid4().hex[:8]}@example.com"
        account = Account(email=email, password_hash=_PASSWORD_HASH)
        db.add(account)
        db.flush()
        if not with_profile:
            db.commit()
            return account
        user = User(
            id=account.id,
            email=email,
            name=name or email.split("@")[0],
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture()
def make_assignment(db):
    def _make_assignment(intern, tutor=None, status="active"):
        stagiaire = Stagiaire(
            user_id=intern.id,
            company_name="Bridge Technologies Solutions",
            position="Stagiaire",
            tutor_id=tutor.id if tutor is not None else None,
            status=status,
            start_date=date(2024, 1, 8),
            end_date=date(2024, 1, 8) + timedelta(days=180),
        )
        db.add(stagiaire)
        db.commit()
        return stagiaire

    return _make_assignment


@pytest.fixture()
def auth():
    """En-tête Bearer pour un utilisateur ; claims supplémentaires possibles."""

    def _auth(user, **claims) -> dict:
        data = {"sub": user.id, "email": user.email}
        data.update(claims)
        return {"Authorization": f"Bearer {create_access_token(data)}"}

    return _auth
