"""Centralized constants for the TaxByte identity core."""

# Sessions
DEFAULT_SESSION_TTL_SECONDS = 24 * 60 * 60
DEFAULT_REMEMBER_ME_TTL_SECONDS = 30 * 24 * 60 * 60
PASSWORD_RESET_TTL_SECONDS = 60 * 60
EMAIL_VERIFICATION_TTL_SECONDS = 24 * 60 * 60

# Password policy
DEFAULT_PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

# Login throttling
DEFAULT_LOGIN_MAX_ATTEMPTS = 5
DEFAULT_LOGIN_WINDOW_SECONDS = 300

# Argon2id parameters (19 MiB, 2 passes, 1 lane)
ARGON2_MEMORY_COST_KIB = 19456
ARGON2_TIME_COST = 2
ARGON2_PARALLELISM = 1
ARGON2_HASH_LENGTH = 32
ARGON2_SALT_LENGTH = 16

# Local storage
STORAGE_LOCK_TIMEOUT_SECONDS = 30

# Random tokens
TOKEN_BYTES = 32
MIN_TOKEN_BYTES = 32

# AES-256-GCM envelope
ENCRYPTION_KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

# OAuth
OAUTH_STATE_TTL_SECONDS = 600
OAUTH_REFRESH_LOOKAHEAD_SECONDS = 300
OAUTH_DEFAULT_EXPIRES_IN_SECONDS = 3600
OAUTH_HTTP_TIMEOUT_SECONDS = 10
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Company roles allowed to manage the Drive connection
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
MANAGING_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN})
