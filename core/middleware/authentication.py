"""
Bearer token authentication.

Every request outside the public surface must carry ``Authorization: Bearer
<jwt>``. The decoded identity is placed on ``scope["user"]``; roles are
resolved later, per route, by the authorization dependencies.
"""

import logging
from typing import Callable, Optional

import jwt
from fastapi import status
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers

from core.middleware.error_handling import error_envelope
from core.security import AuthenticatedUser, decode_access_token

logger = logging.getLogger(__name__)

# Paths open to any method
PUBLIC_PATHS = frozenset({"/", "/health", "/ready", "/docs", "/redoc", "/openapi.json"})
PUBLIC_PREFIXES = ("/docs/", "/redoc/")

# The application form is the only anonymous write
PUBLIC_ROUTES = frozenset({("POST", "/api/v1/applications")})


class AuthenticationError(Exception):
    """The request carries no usable identity."""

    code = "TOKEN_INVALID"
    message = "Invalid authentication token."


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"
    message = "Authentication token has expired. Please sign in again."


class TokenInvalidError(AuthenticationError):
    pass


def is_public(method: str, path: str) -> bool:
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return True
    return (method, path.rstrip("/")) in PUBLIC_ROUTES


def bearer_token(headers: Headers) -> Optional[str]:
    scheme, _, token = headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(headers: Headers, secret: str, algorithm: str) -> AuthenticatedUser:
    """
    Identity carried by the request's Bearer token.

    Raises:
        TokenExpiredError: The token's ``exp`` has passed
        TokenInvalidError: No token, bad signature or missing claims
    """
    token = bearer_token(headers)
    if token is None:
        raise TokenInvalidError("No authentication token provided")
    try:
        return decode_access_token(token, secret, algorithm)
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(str(e))


class AuthenticationMiddleware:
    """ASGI middleware rejecting unauthenticated requests with a 401 envelope."""

    def __init__(self, app: Callable, jwt_secret: str, jwt_algorithm: str = "HS256"):
        self.app = app
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http" or is_public(scope["method"], scope["path"]):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        try:
            scope["user"] = authenticate(headers, self.jwt_secret, self.jwt_algorithm)
        except AuthenticationError as e:
            logger.warning(f"Rejected {scope['method']} {scope['path']}: {e}")
            response = JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content=error_envelope(
                    e.code,
                    e.message,
                    scope["path"],
                    scope["method"],
                    request_id=headers.get("x-request-id"),
                ),
                headers={"WWW-Authenticate": "Bearer"},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
