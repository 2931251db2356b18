"""
Security utilities.

Provides JWT issuing/verification for session tokens and PII masking for logs.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Set

import jwt

from core.config import settings
from core.utils.datetime import now

logger = logging.getLogger("security")


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity carried by a verified session token."""

    user_id: str
    email: str
    name: Optional[str] = None


def create_access_token(
    user_id: str,
    email: str,
    name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Issue a signed session token.

    Args:
        user_id: Subject identifier
        email: Caller email, used for assignment matching and audit
        name: Optional display name
        expires_delta: Token lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT
    """
    issued_at = now()
    expires_at = issued_at + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "iat": issued_at,
        "exp": expires_at,
    }
    if name:
        payload["name"] = name
    return jwt.encode(
        payload,
        secret or settings.jwt_secret_key,
        algorithm=algorithm or settings.jwt_algorithm,
    )


def decode_access_token(
    token: str,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> AuthenticatedUser:
    """
    Verify a session token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired
        jwt.InvalidTokenError: If the token is malformed or lacks claims
    """
    payload = jwt.decode(
        token,
        secret or settings.jwt_secret_key,
        algorithms=[algorithm or settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
    email = payload.get("email")
    if not email:
        raise jwt.InvalidTokenError("Token missing email claim")
    return AuthenticatedUser(
        user_id=str(payload["sub"]),
        email=email,
        name=payload.get("name"),
    )


# PII fields that should be masked in logs
PII_FIELDS: Set[str] = {
    "email", "recipient_email", "candidate_email", "interviewer_email",
    "phone", "phone_number", "national_id", "birthday",
    "first_name", "last_name", "first_name_en", "last_name_en",
    "full_name", "name", "candidate_name", "house_no", "street",
    "expected_salary", "current_salary",
}


def mask_pii(data: Any, depth: int = 0) -> Any:
    """
    Recursively mask PII fields in data structures.

    Args:
        data: Data to mask (dict, list, or primitive)
        depth: Current recursion depth (max 10)

    Returns:
        Data with PII fields masked
    """
    if depth > 10:
        return "[MAX_DEPTH]"

    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if key.lower() in PII_FIELDS:
                if isinstance(value, str) and len(value) > 0:
                    # Partial masking: show first char and length indicator
                    masked[key] = f"{value[0]}***[{len(value)}]"
                else:
                    masked[key] = "[MASKED]"
            else:
                masked[key] = mask_pii(value, depth + 1)
        return masked
    elif isinstance(data, list):
        return [mask_pii(item, depth + 1) for item in data[:5]]
    else:
        return data
