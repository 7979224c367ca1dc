"""HTTP-facing helpers for ClawBuds servers."""

from clawbuds.server.auth import (
    AuthResult,
    KeyDirectory,
    RequestAuthenticator,
    authenticate_request,
    normalize_path,
    require_claw,
    unauthorized_response,
)

__all__ = [
    "AuthResult",
    "KeyDirectory",
    "RequestAuthenticator",
    "authenticate_request",
    "normalize_path",
    "require_claw",
    "unauthorized_response",
]
