import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database (Vercel/Render Postgres when DATABASE_URL is set, SQLite otherwise)
DATABASE_URL = os.getenv("DATABASE_URL")
SQLITE_URL = os.getenv("SQLITE_URL", "sqlite:///./job_invoicer.db")

# Storage
BLOB_READ_WRITE_TOKEN = os.getenv("BLOB_READ_WRITE_TOKEN")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Signing links
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")
SIGNING_TOKEN_TTL_DAYS = int(os.getenv("SIGNING_TOKEN_TTL_DAYS", "7"))
ENFORCE_TOKEN_EXPIRY = _env_flag("ENFORCE_TOKEN_EXPIRY", True)
STRICT_SIGNING_ORDER = _env_flag("STRICT_SIGNING_ORDER", False)

# Staff identity until the auth layer passes a real user through
DEFAULT_UPLOADER = os.getenv("DEFAULT_UPLOADER", "temp-user-123")

# Email
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_FROM = os.getenv("SMTP_FROM") or SMTP_USER


def signing_link(token: str) -> str:
    return f"{BASE_URL}/sign/{token}"


def signing_document_link(token: str) -> str:
    return f"{signing_link(token)}/document"
