# api/stages/models.py
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base
from .utils import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """
    Identité d'authentification (e-mail + mot de passe).
    Un compte peut exister sans profil applicatif (provisioning en cours).
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserSession(Base):
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    account = relationship("Account")


class User(Base):
    """
    Profil applicatif : seule source de vérité pour le rôle et l'état actif.
    Jamais supprimé, seulement désactivé.
    """
    __tablename__ = "users"

    id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # admin / rh / tutor / intern
    is_active = Column(Boolean, nullable=False, default=True)
    phone = Column(String(50), nullable=True)
    department = Column(String(120), nullable=True)
    position = Column(String(120), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Stagiaire(Base):
    """Affectation de stage : lie un stagiaire à une entreprise et à un tuteur."""
    __tablename__ = "stagiaires"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    company_name = Column(String(255), nullable=False)
    position = Column(String(255), nullable=False)
    tutor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="active")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    tutor = relationship("User", foreign_keys=[tutor_id])


class Demande(Base):
    __tablename__ = "demandes"

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(String(30), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    stagiaire_id = Column(String(36), ForeignKey("stagiaires.id"), nullable=False, index=True)
    tutor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    response_comment = Column(Text, nullable=True)
    responder_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    stagiaire = relationship("Stagiaire")


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    doc_type = Column(String(50), nullable=False, default="document")
    mime_type = Column(String(120), nullable=True)
    size_bytes = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(512), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    demande_id = Column(String(36), ForeignKey("demandes.id"), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("User")


class DemandeDocument(Base):
    """
    Pièce exigée par une demande. document_id reste vide tant que
    le stagiaire n'a rien fourni pour cette ligne.
    """
    __tablename__ = "demande_documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    demande_id = Column(String(36), ForeignKey("demandes.id"), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=True, index=True)
    required_document_type = Column(String(50), nullable=False)
    mandatory = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    document = relationship("Document")


class Evaluation(Base):
    __tablename__ = "evaluations"

    id = Column(String(36), primary_key=True, default=_uuid)
    stagiaire_id = Column(String(36), ForeignKey("stagiaires.id"), nullable=False, index=True)
    evaluator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    type = Column(String(20), nullable=False, default="mid_term")

    # Notes sur 20
    technical = Column(Float, nullable=False, default=10)
    interpersonal = Column(Float, nullable=False, default=10)
    autonomy = Column(Float, nullable=False, default=10)
    punctuality = Column(Float, nullable=False, default=10)
    motivation = Column(Float, nullable=False, default=10)
    overall_score = Column(Float, nullable=False, default=10)

    comments = Column(Text, nullable=True)
    strengths = Column(Text, nullable=True)
    improvement_areas = Column(Text, nullable=True)
    next_objectives = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="draft", index=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    stagiaire = relationship("Stagiaire")


class AuditLog(Base):
    """
    Journal d'audit des actions sensibles.
    On garde :
      - qui (user_id)
      - sur quoi (entity_type / entity_id)
      - quelle action (create / update / transition / delete / bootstrap)
      - quand (created_at)
      - un petit texte facultatif (detail)
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(36), nullable=True, index=True)
    entity_type = Column(String(30), nullable=False, index=True)
    entity_id = Column(String(36), nullable=True, index=True)
    action = Column(String(30), nullable=False)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
