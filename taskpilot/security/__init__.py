from taskpilot.security.passwords import hash_password, verify_password
from taskpilot.security.redaction import redact_sensitive_text
from taskpilot.security.tokens import (
    AccessTokenClaims,
    IssuedToken,
    TokenError,
    decode_access_token,
    decode_for_refresh,
    issue_access_token,
)

__all__ = [
    "AccessTokenClaims",
    "IssuedToken",
    "TokenError",
    "decode_access_token",
    "decode_for_refresh",
    "hash_password",
    "issue_access_token",
    "redact_sensitive_text",
    "verify_password",
]
