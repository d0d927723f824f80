"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


# Enums (matching database enums)
class RoleSchema(str, Enum):
    """Roles accepted in API payloads."""

    ADMIN = "admin"
    LAWYER = "lawyer"
    PARALEGAL = "paralegal"


class JoinRoleSchema(str, Enum):
    """Roles a user may pick when joining or being reassigned (never admin)."""

    LAWYER = "lawyer"
    PARALEGAL = "paralegal"


class VisibilitySchema(str, Enum):
    """Document visibility for API payloads."""

    PRIVATE = "private"
    SHARED = "shared"
    FIRM_WIDE = "firm-wide"


class DocumentStatusSchema(str, Enum):
    """Document status for API payloads."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    FINAL = "final"
    APPROVED = "approved"
    ARCHIVED = "archived"


# Auth Schemas
class SignupRequest(BaseModel):
    """Schema for account creation.  Field rules are checked in the router."""

    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    """Schema for login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    email: str
    name: str
    firm_id: Optional[str] = None
    role: Optional[str] = None
    joined_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    """Bearer token plus the profile it was issued for."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Firm Schemas
class FirmCreateRequest(BaseModel):
    """Schema for creating a firm; the caller becomes its admin."""

    name: str
    user_full_name: Optional[str] = None


class FirmCreateResponse(BaseModel):
    firm_id: str
    firm_code: str
    message: str


class FirmJoinRequest(BaseModel):
    """Schema for joining a firm with its invite code."""

    firm_code: str
    role: str
    user_full_name: Optional[str] = None


class FirmJoinResponse(BaseModel):
    firm_id: str
    message: str


class FirmResponse(BaseModel):
    """Firm details."""

    id: str
    name: str
    firm_code: str
    created_by: str
    member_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberInfo(BaseModel):
    name: str
    email: str
    role: Optional[str] = None
    joined_at: Optional[datetime] = None


class FirmMembersResponse(BaseModel):
    """Members keyed by user id."""

    members: Dict[str, MemberInfo]


class RoleUpdateRequest(BaseModel):
    role: str


class FirmSettingsResponse(BaseModel):
    """Firm settings; the API key itself is never returned."""

    has_api_key: bool
    api_key_preview: str = ""


class ApiKeyUpdateRequest(BaseModel):
    api_key: str = ""


# Template Schemas
class TemplateResponse(BaseModel):
    """Schema for template details."""

    id: str
    name: str
    scope: str
    firm_id: Optional[str] = None
    content: str
    original_file_name: str
    file_type: str
    uploaded_by: str
    size: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateListResponse(BaseModel):
    count: int
    templates: List[TemplateResponse]


class DownloadUrlResponse(BaseModel):
    """Expiring download link for a stored blob."""

    download_url: str
    file_name: str
    expires_at: datetime


# Source Document Schemas
class SourceDocumentResponse(BaseModel):
    """Uploaded source file and its extracted text."""

    id: str
    firm_id: str
    document_id: Optional[str] = None
    file_name: str
    file_type: str
    extracted_text: str
    size: int = 0
    uploaded_by: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SourceUploadResponse(BaseModel):
    extracted_texts: List[str]
    source_documents: List[SourceDocumentResponse]


# Document Schemas
class ShareInfo(BaseModel):
    user_id: str
    can_view: bool = True
    can_edit: bool = True

    model_config = ConfigDict(from_attributes=True)


class DocumentCreateRequest(BaseModel):
    """Schema for creating a demand letter."""

    title: str = Field(..., min_length=1, max_length=255)
    firm_id: str
    template_id: Optional[str] = None
    source_document_ids: List[str] = Field(default_factory=list)
    visibility: VisibilitySchema = VisibilitySchema.PRIVATE
    content: str = ""


class DocumentUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: Optional[str] = None
    content: Optional[str] = None
    status: Optional[DocumentStatusSchema] = None
    notes: Optional[str] = None


class DocumentResponse(BaseModel):
    """Schema for document details."""

    id: str
    firm_id: str
    owner_id: str
    title: str
    content: str
    template_id: Optional[str] = None
    visibility: str
    status: str
    last_edited_by: Optional[str] = None
    word_count: int = 0
    version: int = 1
    notes: str = ""
    shared_with: List[ShareInfo] = Field(default_factory=list)
    source_documents: List[SourceDocumentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentEnvelope(BaseModel):
    document: DocumentResponse


class DocumentCreateResponse(BaseModel):
    document_id: str
    document: DocumentResponse


class DocumentListResponse(BaseModel):
    count: int
    documents: List[DocumentResponse]


class ShareRequest(BaseModel):
    """Change a document's visibility and, for ``shared``, who it is shared with."""

    visibility: VisibilitySchema
    shared_with: List[str] = Field(default_factory=list)
    can_edit: bool = True


class GenerationStep(BaseModel):
    """One step of the upload → generate → persist orchestration."""

    name: str
    status: str
    detail: Optional[str] = None


class GenerateDocumentResponse(BaseModel):
    document_id: str
    content: str
    model: str
    steps: List[GenerationStep]


# AI Schemas
class AIGenerateRequest(BaseModel):
    """Schema for demand-letter generation."""

    template_id: Optional[str] = None
    template_content: Optional[str] = None
    source_texts: List[str] = Field(default_factory=list)
    custom_instructions: Optional[str] = None


class AIRefineRequest(BaseModel):
    """Schema for refining an existing draft."""

    content: str = ""
    refinement_instructions: str = ""


class AIContentResponse(BaseModel):
    content: str
    model: str


class AIStatusResponse(BaseModel):
    model: str
    has_api_key: bool


# Export Schemas
class ExportRequest(BaseModel):
    document_id: str
    content: Optional[str] = None
    title: Optional[str] = None


# Collaboration Schemas
class UpdatePushRequest(BaseModel):
    """Base64-encoded CRDT update."""

    update: str


class UpdateResponse(BaseModel):
    seq: int
    user_id: str
    update: str
    created_at: datetime


class UpdateListResponse(BaseModel):
    document_id: str
    latest_seq: int
    updates: List[UpdateResponse]


class PresenceHeartbeatRequest(BaseModel):
    cursor_position: Optional[int] = None


class PresenceUser(BaseModel):
    user_id: str
    name: str
    email: str = ""
    color: str
    cursor_position: Optional[int] = None
    last_active: datetime

    model_config = ConfigDict(from_attributes=True)


class PresenceResponse(BaseModel):
    document_id: str
    active_users: List[PresenceUser]
    activity_status: str


# Health Schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    llm: str
    timestamp: datetime
    version: str = "1.0.0"
