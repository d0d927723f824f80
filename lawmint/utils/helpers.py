"""
Common utility functions and helpers.
"""
from datetime import datetime, timezone
from typing import List
import random
import re
import string
import unicodedata


FIRM_CODE_PREFIX = "LAWMINT"
FIRM_CODE_LENGTH = 5
_FIRM_CODE_ALPHABET = string.ascii_uppercase + string.digits
_FIRM_CODE_RE = re.compile(rf"^{FIRM_CODE_PREFIX}-[A-Z0-9]{{{FIRM_CODE_LENGTH}}}$")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PASSWORD_MIN_LENGTH = 8
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the format stored in the DB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_email(email: str) -> bool:
    """Return True if *email* looks like ``local@domain.tld``."""
    return bool(EMAIL_PATTERN.match(email or ""))


def validate_password(password: str) -> List[str]:
    """
    Check password strength.

    Returns:
        List of human-readable problems; empty when the password is acceptable.
    """
    errors: List[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return errors


def validate_name(name: str) -> bool:
    """User names are 2-100 characters once trimmed."""
    return NAME_MIN_LENGTH <= len((name or "").strip()) <= NAME_MAX_LENGTH


def validate_firm_name(name: str) -> bool:
    """Firm names follow the same 2-100 character rule as user names."""
    return validate_name(name)


# ---------------------------------------------------------------------------
# Firm codes
# ---------------------------------------------------------------------------

def generate_firm_code() -> str:
    """
    Generate a firm invite code in the format ``LAWMINT-XXXXX``.

    XXXXX is five random uppercase alphanumeric characters.  Uniqueness is
    checked by the caller against the firms table.
    """
    suffix = "".join(random.choice(_FIRM_CODE_ALPHABET) for _ in range(FIRM_CODE_LENGTH))
    return f"{FIRM_CODE_PREFIX}-{suffix}"


def is_valid_firm_code(code: str) -> bool:
    """Return True if *code* has the ``LAWMINT-XXXXX`` shape."""
    return bool(_FIRM_CODE_RE.match(code or ""))


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

def normalize_string(text: str) -> str:
    """Trim and collapse internal whitespace."""
    return re.sub(r"\s+", " ", (text or "").strip())


def slugify(text: str) -> str:
    """
    Convert a string to a URL/filename friendly slug.

    Args:
        text: Raw text, e.g. a document title

    Returns:
        Lower-case slug using ``-`` as separator
    """
    text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "-", text)
    return text.strip("-")


def word_count(text: str) -> int:
    """Number of whitespace-separated words; 0 for empty text."""
    return len((text or "").split())


def sanitize_filename(name: str) -> str:
    """
    Strip directory components and unsafe characters from an uploaded name.

    The extension is preserved so the file type can still be detected.
    """
    base = re.split(r"[\\/]", name or "")[-1].strip()
    base = re.sub(r"[^\w.\- ]", "_", base)
    base = base.lstrip(".")
    return base or "upload"


def mask_secret(secret: str, visible: int = 4) -> str:
    """Return ``****abcd`` style preview of a secret."""
    if not secret:
        return ""
    if len(secret) <= visible:
        return "*" * len(secret)
    return "*" * 4 + secret[-visible:]
