"""
Role and document access rules.

Every authorization decision in the API goes through this module so the
role matrix lives in exactly one place.
"""
from typing import Dict, FrozenSet, Optional

from lawmint.models.database_models import Document, UserRole, Visibility

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    UserRole.ADMIN.value: frozenset({
        "manage_firm",
        "upload_templates",
        "create_documents",
        "delete_documents",
        "manage_users",
        "export",
        "collaborate",
    }),
    UserRole.LAWYER.value: frozenset({
        "upload_templates",
        "create_documents",
        "delete_documents",
        "export",
        "collaborate",
    }),
    UserRole.PARALEGAL.value: frozenset({
        "collaborate",
    }),
}

ALL_PERMISSIONS: FrozenSet[str] = frozenset().union(*ROLE_PERMISSIONS.values())


def has_permission(role: Optional[str], permission: str) -> bool:
    """Return True if *role* grants *permission*.  Unknown roles grant nothing."""
    if permission not in ALL_PERMISSIONS:
        raise ValueError(f"Unknown permission: {permission}")
    return permission in ROLE_PERMISSIONS.get(role or "", frozenset())


def _share_for(document: Document, user_id: str):
    for share in document.shares:
        if share.user_id == user_id:
            return share
    return None


def can_view_document(document: Document, user_id: str, user_firm_id: Optional[str]) -> bool:
    """Owner, same-firm users on firm-wide documents, or explicit viewers on shared ones."""
    if document.owner_id == user_id:
        return True
    if document.visibility == Visibility.FIRM_WIDE.value:
        return user_firm_id is not None and user_firm_id == document.firm_id
    if document.visibility == Visibility.SHARED.value:
        share = _share_for(document, user_id)
        return share is not None and share.can_view
    return False


def can_edit_document(document: Document, user_id: str, user_firm_id: Optional[str]) -> bool:
    """Owner, same-firm users on firm-wide documents, or explicit editors on shared ones."""
    if document.owner_id == user_id:
        return True
    if document.visibility == Visibility.FIRM_WIDE.value:
        return user_firm_id is not None and user_firm_id == document.firm_id
    if document.visibility == Visibility.SHARED.value:
        share = _share_for(document, user_id)
        return share is not None and share.can_edit
    return False


def can_manage_document(document: Document, user_id: str) -> bool:
    """Deleting and re-sharing are reserved for the owner."""
    return document.owner_id == user_id
