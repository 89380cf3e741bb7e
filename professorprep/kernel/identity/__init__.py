"""
Identity - bearer token verification (tokens are issued by the auth provider).
"""

from professorprep.kernel.identity.jwt import (
    AccessTokenPayload,
    create_access_token,
    verify_access_token,
)

__all__ = [
    "AccessTokenPayload",
    "create_access_token",
    "verify_access_token",
]
