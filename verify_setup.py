"""
Setup verification script for LawMint backend.
Checks dependencies, configuration, storage, database and LLM provider.
"""
import asyncio
import sys
import os
import shutil
from typing import List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 11:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    else:
        print_status(f"Python version {version.major}.{version.minor} (requires 3.11+)", False)
        return False


async def check_dependencies() -> bool:
    """Check if required packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "asyncpg",
        "httpx",
        "aiofiles",
        "multipart",
        "fitz",
        "docx",
        "pytesseract",
        "PIL",
        "jose",
        "passlib",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists and the secret key has been changed."""
    if not os.path.exists(".env"):
        print_status(".env file missing (settings fall back to defaults)", False)
        return False
    print_status(".env file exists", True)

    from lawmint.config import settings

    changed = settings.SECRET_KEY != "change-me-in-production"
    print_status(f"SECRET_KEY {'set' if changed else 'still the development default'}", changed)
    return changed


async def check_storage_dir() -> bool:
    """Check the blob storage directory is writable."""
    from lawmint.config import settings

    path = settings.STORAGE_DIR
    if not os.path.exists(path):
        print_status(f"Storage directory {path} missing (will be created on startup)", False)
        return False
    writable = os.access(path, os.W_OK)
    print_status(f"Storage directory {path} {'writable' if writable else 'not writable'}", writable)
    return writable


async def check_tesseract() -> bool:
    """OCR is only needed for scanned PDFs, but warn when the binary is missing."""
    from lawmint.config import settings

    found = os.path.exists(settings.TESSERACT_CMD) or shutil.which("tesseract") is not None
    print_status(f"Tesseract OCR: {'Found' if found else 'Missing (scanned PDFs will yield no text)'}", found)
    return found


async def check_llm() -> bool:
    """Check the LLM provider answers with the configured key."""
    from lawmint.config import settings
    from lawmint.services.llm_client import LLMClient

    status = await LLMClient().check_health()
    if status == "unconfigured":
        print_status("LLM_API_KEY not set (firms must add their own key)", False)
        return False
    ok = status == "ok"
    print_status(f"LLM provider at {settings.LLM_BASE_URL}: {status}", ok)
    return ok


async def check_database() -> bool:
    """Check if the configured database is reachable."""
    try:
        from sqlalchemy import text

        from lawmint.database import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await engine.dispose()

        print_status("Database connection successful", True)
        return True

    except Exception as e:
        print_status(f"Database connection failed: {str(e)}", False)
        print(f"  {YELLOW}Check DATABASE_URL in .env{RESET}")
        return False


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}LawMint Backend - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment File", check_env_file),
        ("Storage Directory", check_storage_dir),
        ("Tesseract OCR", check_tesseract),
        ("Database", check_database),
        ("LLM Provider", check_llm),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print(f"  uvicorn lawmint.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
