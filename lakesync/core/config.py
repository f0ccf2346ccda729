import os
import secrets
from dotenv import load_dotenv
from typing import List

# Load environment variables from .env file
load_dotenv()

# Server settings
PROJECT_NAME: str = "lakesync"
PORT: int = int(os.getenv("PORT", 3010))
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Validate required production settings
if ENVIRONMENT == "production":
    required_vars = ['DATABASE_URL', 'SECRET_KEY']
    missing_vars = [var for var in required_vars if not os.getenv(var)]
    if missing_vars:
        raise ValueError(f"Missing required environment variables for production: {missing_vars}")

# CORS settings
if ENVIRONMENT == "production":
    ALLOW_ORIGINS: List[str] = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "").split(",") if o.strip()]
else:
    ALLOW_ORIGINS = [
        "http://localhost:3000",  # Local development
        "*"
    ]

# Database URL
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lakesync.db")

# Storage collaborator root (content-addressed blobs + vault ciphertext)
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")

# Bearer token verification - tokens are issued by the external auth service
SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Sync journal
JOURNAL_PAGE_SIZE: int = int(os.getenv("JOURNAL_PAGE_SIZE", 100))

# Versioning policy
# A delta is only kept if it is smaller than DELTA_SAVINGS_RATIO * len(new content)
DELTA_SAVINGS_RATIO: float = float(os.getenv("DELTA_SAVINGS_RATIO", 0.6))
# Every N-th version is a full snapshot so reconstruction depth stays bounded
CHECKPOINT_INTERVAL: int = int(os.getenv("CHECKPOINT_INTERVAL", 10))
MAX_DELTA_SOURCE_BYTES: int = int(os.getenv("MAX_DELTA_SOURCE_BYTES", 4 * 1024 * 1024))
# Changed regions up to this size (per side) are refined byte by byte
DELTA_REFINE_LIMIT: int = int(os.getenv("DELTA_REFINE_LIMIT", 8192))

# Stored content younger than this is never swept, an open transaction may still claim it
ORPHAN_SWEEP_GRACE_SECONDS: int = int(os.getenv("ORPHAN_SWEEP_GRACE_SECONDS", 3600))

# Background jobs
BACKGROUND_MAX_ATTEMPTS: int = int(os.getenv("BACKGROUND_MAX_ATTEMPTS", 3))

# Upload limits
MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", 100 * 1024 * 1024))

# Mime types that support the user-facing diff view
TEXT_MIME_PREFIXES = ("text/", "application/json", "application/javascript", "application/xml")

# Vault envelope / upload validation (client-side crypto parameters, opaque to us)
VAULT_MIN_CIPHER_LENGTH = 16
VAULT_MIN_ENVELOPE_IV_LENGTH = 8
VAULT_MIN_SALT_LENGTH = 8
VAULT_MIN_FILE_IV_LENGTH = 16
VAULT_FOLDER_NAME = "Vault"
