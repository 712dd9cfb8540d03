"""Security configuration constants for the LapGrade API.

Centralizes the keys redacted from structured logs and the error response
fields each environment is allowed to expose.
"""

# Keys redacted from structured log payloads (substring, case-insensitive)
SENSITIVE_KEYS: set[str] = {
    # Provider / service credentials
    "api_key",
    "apikey",
    "secret",
    "token",
    "authorization",
    "bearer",
    "password",
    "database_url",
    # Headers
    "set-cookie",
    "cookie",
    "x-api-key",
    "x-auth-token",
}

# In production, error responses should only contain these fields to
# prevent information leakage
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
    "code",
}

# Development error response fields (additional fields allowed in development)
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Return True if a log key should be redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
