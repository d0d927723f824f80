"""
SQLAlchemy ORM models for the LawMint database.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum
import uuid

from lawmint.database import Base
from lawmint.utils.helpers import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


# Enums
class UserRole(str, enum.Enum):
    """Roles a firm member can hold."""

    ADMIN = "admin"
    LAWYER = "lawyer"
    PARALEGAL = "paralegal"


class TemplateScope(str, enum.Enum):
    """Global templates are visible to every firm; firm templates only to their firm."""

    GLOBAL = "global"
    FIRM = "firm"


class Visibility(str, enum.Enum):
    """Per-document access policy."""

    PRIVATE = "private"
    SHARED = "shared"
    FIRM_WIDE = "firm-wide"


class DocumentStatus(str, enum.Enum):
    """Lifecycle status of a demand letter."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    FINAL = "final"
    APPROVED = "approved"
    ARCHIVED = "archived"


# Models
class Firm(Base):
    """A tenant organization.  Every user belongs to at most one firm."""

    __tablename__ = "firms"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    firm_code = Column(String(32), nullable=False, unique=True, index=True)
    created_by = Column(String(36), nullable=False)
    # Firm-level LLM key; falls back to settings.LLM_API_KEY when unset
    llm_api_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    members = relationship("User", back_populates="firm")


class User(Base):
    """User account.  ``firm_id`` and ``role`` stay empty until the user creates or joins a firm."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    firm_id = Column(String(36), ForeignKey("firms.id", ondelete="SET NULL"), nullable=True, index=True)
    role = Column(String(20), nullable=True)  # UserRole value
    joined_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    firm = relationship("Firm", back_populates="members")


class Template(Base):
    """Reusable demand-letter skeleton with its extracted text."""

    __tablename__ = "templates"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    scope = Column(String(20), nullable=False, default=TemplateScope.FIRM.value, index=True)
    firm_id = Column(String(36), ForeignKey("firms.id", ondelete="CASCADE"), nullable=True, index=True)
    content = Column(Text, nullable=False, default="")
    original_file_name = Column(String(255), nullable=False)
    file_type = Column(String(10), nullable=False)  # pdf | docx
    uploaded_by = Column(String(36), nullable=False)  # user id or "system"
    size = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(512), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Document(Base):
    """A demand letter being drafted by a firm."""

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    firm_id = Column(String(36), ForeignKey("firms.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    template_id = Column(String(36), nullable=True)
    visibility = Column(String(20), nullable=False, default=Visibility.PRIVATE.value, index=True)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)

    # Editing metadata
    last_edited_by = Column(String(36), nullable=True)
    word_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships (eager so permission checks never lazy-load)
    shares = relationship(
        "DocumentShare",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    source_documents = relationship(
        "SourceDocument",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SourceDocument.uploaded_at",
    )


class DocumentShare(Base):
    """Explicit per-user grant on a document with ``shared`` visibility."""

    __tablename__ = "document_shares"
    __table_args__ = (UniqueConstraint("document_id", "user_id", name="uq_document_share"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    can_view = Column(Boolean, nullable=False, default=True)
    can_edit = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    document = relationship("Document", back_populates="shares")


class SourceDocument(Base):
    """Uploaded PDF/DOCX whose extracted text feeds generation."""

    __tablename__ = "source_documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    firm_id = Column(String(36), ForeignKey("firms.id", ondelete="CASCADE"), nullable=False, index=True)
    # Null until the source is attached to a document
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=True, index=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(10), nullable=False)
    storage_path = Column(String(512), nullable=False)
    extracted_text = Column(Text, nullable=False, default="")
    size = Column(Integer, nullable=False, default=0)
    uploaded_by = Column(String(36), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    document = relationship("Document", back_populates="source_documents")


class CollaborationUpdate(Base):
    """One opaque CRDT update.  ``id`` doubles as the monotonic sequence number."""

    __tablename__ = "collaboration_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    update = Column(Text, nullable=False)  # base64
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Presence(Base):
    """Heartbeat row for a user currently editing a document."""

    __tablename__ = "presence"

    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, default="")
    color = Column(String(7), nullable=False)
    cursor_position = Column(Integer, nullable=True)
    last_active = Column(DateTime, default=utcnow, nullable=False, index=True)
