"""
Rollcall Security

Token issuance/verification and password hashing used by the token
middleware and the user module.
"""

from .passwords import hash_password, hash_password_async, verify_password, verify_password_async
from .tokens import ACCESS_TYPE, REFRESH_TYPE, TokenError, TokenService, new_session_id

__all__ = [
    "TokenService",
    "TokenError",
    "ACCESS_TYPE",
    "REFRESH_TYPE",
    "new_session_id",
    "hash_password",
    "hash_password_async",
    "verify_password",
    "verify_password_async",
]
