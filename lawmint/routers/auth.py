"""
Account, firm and membership endpoints.

POST  /signup                                — create account, returns a token
POST  /login                                 — exchange credentials for a token
GET   /me                                    — current profile
POST  /firms                                 — create a firm; caller becomes admin
POST  /firms/join                            — join a firm by invite code
GET   /users/{uid}                           — profile (self, or same-firm as admin)
GET   /firms/{firm_id}                       — firm details
GET   /firms/{firm_id}/members               — members keyed by user id
PATCH /firms/{firm_id}/members/{uid}/role    — change a member's role (admin)
GET   /firms/{firm_id}/settings              — API key status (admin)
PUT   /firms/{firm_id}/settings/api-key      — set or clear the firm's API key (admin)
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.database import get_db
from lawmint.dependencies.auth import (
    create_access_token,
    get_current_user,
    get_firm_admin,
    get_password_hash,
    require_permission,
    verify_password,
)
from lawmint.models.database_models import Firm, User, UserRole
from lawmint.models.schemas import (
    ApiKeyUpdateRequest,
    FirmCreateRequest,
    FirmCreateResponse,
    FirmJoinRequest,
    FirmJoinResponse,
    FirmMembersResponse,
    FirmResponse,
    FirmSettingsResponse,
    LoginRequest,
    MemberInfo,
    RoleUpdateRequest,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from lawmint.utils.helpers import (
    generate_firm_code,
    is_valid_firm_code,
    mask_secret,
    normalize_string,
    utcnow,
    validate_email,
    validate_firm_name,
    validate_name,
    validate_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FIRM_CODE_ATTEMPTS = 10
_JOINABLE_ROLES = {UserRole.LAWYER.value, UserRole.PARALEGAL.value}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _get_firm_or_404(db: AsyncSession, firm_id: str) -> Firm:
    result = await db.execute(select(Firm).where(Firm.id == firm_id))
    firm = result.scalar_one_or_none()
    if firm is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Firm not found")
    return firm


def _require_member(user: User, firm_id: str) -> None:
    if user.firm_id != firm_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User does not belong to this firm",
        )


def _apply_full_name(user: User, full_name: str | None) -> None:
    if full_name and validate_name(full_name):
        user.name = normalize_string(full_name)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Create an account.  The user has no firm until they create or join one."""
    email = body.email.strip().lower()
    if not validate_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")

    password_errors = validate_password(body.password)
    if password_errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password does not meet requirements: " + "; ".join(password_errors),
        )

    if not validate_name(body.name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name must be between 2 and 100 characters",
        )

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered")

    user = User(
        email=email,
        name=normalize_string(body.name),
        hashed_password=get_password_hash(body.password),
    )
    db.add(user)
    await db.flush()

    logger.info("Created user %s (%s)", user.id, email)
    return TokenResponse(
        access_token=create_access_token(user.id),
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    result = await db.execute(select(User).where(User.email == body.email.strip().lower()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(
        access_token=create_access_token(user.id),
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.get("/users/{uid}", response_model=UserResponse)
async def get_user(
    uid: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Own profile, or any profile in the same firm when the caller is an admin."""
    if uid == current_user.id:
        return UserResponse.model_validate(current_user)

    result = await db.execute(select(User).where(User.id == uid))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    is_firm_admin = (
        current_user.role == UserRole.ADMIN.value
        and current_user.firm_id is not None
        and current_user.firm_id == user.firm_id
    )
    if not is_firm_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this user")
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# Firms
# ---------------------------------------------------------------------------

@router.post("/firms", response_model=FirmCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_firm(
    body: FirmCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FirmCreateResponse:
    """Create a firm with a fresh invite code; the caller becomes its admin."""
    if current_user.firm_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already belongs to a firm")

    if not validate_firm_name(body.name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Firm name must be between 2 and 100 characters",
        )

    firm_code = None
    for _ in range(MAX_FIRM_CODE_ATTEMPTS):
        candidate = generate_firm_code()
        result = await db.execute(select(Firm.id).where(Firm.firm_code == candidate))
        if result.scalar_one_or_none() is None:
            firm_code = candidate
            break
    if firm_code is None:
        logger.error("Could not generate a unique firm code after %d attempts", MAX_FIRM_CODE_ATTEMPTS)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not generate a unique firm code",
        )

    firm = Firm(
        name=normalize_string(body.name),
        firm_code=firm_code,
        created_by=current_user.id,
    )
    db.add(firm)
    await db.flush()

    current_user.firm_id = firm.id
    current_user.role = UserRole.ADMIN.value
    current_user.joined_at = utcnow()
    _apply_full_name(current_user, body.user_full_name)
    await db.flush()

    logger.info("Firm %s (%s) created by %s", firm.id, firm_code, current_user.id)
    return FirmCreateResponse(
        firm_id=firm.id,
        firm_code=firm_code,
        message="Firm created successfully",
    )


@router.post("/firms/join", response_model=FirmJoinResponse, status_code=status.HTTP_201_CREATED)
async def join_firm(
    body: FirmJoinRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FirmJoinResponse:
    if body.role not in _JOINABLE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be 'lawyer' or 'paralegal'",
        )
    if current_user.firm_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already belongs to a firm")

    code = body.firm_code.strip().upper()
    firm = None
    if is_valid_firm_code(code):
        result = await db.execute(select(Firm).where(Firm.firm_code == code))
        firm = result.scalar_one_or_none()
    if firm is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid firm code")

    current_user.firm_id = firm.id
    current_user.role = body.role
    current_user.joined_at = utcnow()
    _apply_full_name(current_user, body.user_full_name)
    await db.flush()

    logger.info("User %s joined firm %s as %s", current_user.id, firm.id, body.role)
    return FirmJoinResponse(firm_id=firm.id, message=f"Joined {firm.name} successfully")


@router.get("/firms/{firm_id}", response_model=FirmResponse)
async def get_firm(
    firm_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FirmResponse:
    firm = await _get_firm_or_404(db, firm_id)
    _require_member(current_user, firm_id)

    count_result = await db.execute(select(func.count(User.id)).where(User.firm_id == firm_id))
    return FirmResponse(
        id=firm.id,
        name=firm.name,
        firm_code=firm.firm_code,
        created_by=firm.created_by,
        member_count=count_result.scalar() or 0,
        created_at=firm.created_at,
        updated_at=firm.updated_at,
    )


@router.get("/firms/{firm_id}/members", response_model=FirmMembersResponse)
async def list_members(
    firm_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FirmMembersResponse:
    await _get_firm_or_404(db, firm_id)
    _require_member(current_user, firm_id)

    result = await db.execute(
        select(User).where(User.firm_id == firm_id).order_by(User.joined_at, User.email)
    )
    members = {
        u.id: MemberInfo(name=u.name, email=u.email, role=u.role, joined_at=u.joined_at)
        for u in result.scalars().all()
    }
    return FirmMembersResponse(members=members)


@router.patch("/firms/{firm_id}/members/{uid}/role", response_model=UserResponse)
async def update_member_role(
    firm_id: str,
    uid: str,
    body: RoleUpdateRequest,
    current_user: User = Depends(require_permission("manage_users")),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Reassign a member between lawyer and paralegal."""
    _require_member(current_user, firm_id)
    if body.role not in _JOINABLE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be 'lawyer' or 'paralegal'",
        )
    if uid == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot change their own role",
        )

    result = await db.execute(select(User).where(User.id == uid, User.firm_id == firm_id))
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found in this firm")

    member.role = body.role
    await db.flush()
    logger.info("User %s role changed to %s by %s", uid, body.role, current_user.id)
    return UserResponse.model_validate(member)


# ---------------------------------------------------------------------------
# Firm settings
# ---------------------------------------------------------------------------

@router.get("/firms/{firm_id}/settings", response_model=FirmSettingsResponse)
async def get_firm_settings(
    firm_id: str,
    current_user: User = Depends(get_firm_admin),
    db: AsyncSession = Depends(get_db),
) -> FirmSettingsResponse:
    _require_member(current_user, firm_id)
    firm = await _get_firm_or_404(db, firm_id)
    return FirmSettingsResponse(
        has_api_key=bool(firm.llm_api_key),
        api_key_preview=mask_secret(firm.llm_api_key or ""),
    )


@router.put("/firms/{firm_id}/settings/api-key", response_model=FirmSettingsResponse)
async def set_firm_api_key(
    firm_id: str,
    body: ApiKeyUpdateRequest,
    current_user: User = Depends(get_firm_admin),
    db: AsyncSession = Depends(get_db),
) -> FirmSettingsResponse:
    """Store the firm's LLM API key; an empty string clears it."""
    _require_member(current_user, firm_id)
    firm = await _get_firm_or_404(db, firm_id)
    firm.llm_api_key = body.api_key.strip() or None
    await db.flush()
    logger.info(
        "Firm %s API key %s by %s",
        firm_id,
        "updated" if firm.llm_api_key else "cleared",
        current_user.id,
    )
    return FirmSettingsResponse(
        has_api_key=bool(firm.llm_api_key),
        api_key_preview=mask_secret(firm.llm_api_key or ""),
    )
