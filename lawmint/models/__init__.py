"""Database and schema models for LawMint."""
from lawmint.models.database_models import (
    User,
    Firm,
    Template,
    Document,
    DocumentShare,
    SourceDocument,
    CollaborationUpdate,
    Presence,
    UserRole,
    TemplateScope,
    Visibility,
    DocumentStatus,
)
from lawmint.models.schemas import (
    UserResponse,
    TokenResponse,
    FirmResponse,
    TemplateResponse,
    DocumentResponse,
    SourceDocumentResponse,
    PresenceResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "Firm",
    "Template",
    "Document",
    "DocumentShare",
    "SourceDocument",
    "CollaborationUpdate",
    "Presence",
    "UserRole",
    "TemplateScope",
    "Visibility",
    "DocumentStatus",
    # Pydantic schemas
    "UserResponse",
    "TokenResponse",
    "FirmResponse",
    "TemplateResponse",
    "DocumentResponse",
    "SourceDocumentResponse",
    "PresenceResponse",
    "HealthCheckResponse",
]
