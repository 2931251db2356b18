"""
Core middleware package.

This package provides the request pipeline components:
- Error handling with sensitive data sanitization
- Structured logging with PII masking
- Redis-based sliding window rate limiting
- JWT authentication
- Role/permission resolution and route guards
"""

from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    sanitize_error_message,
)

from core.middleware.logging import (
    StructuredLoggingMiddleware,
    setup_logging,
)

from core.middleware.rate_limiting import (
    RateLimitMiddleware,
    RateLimitRule,
    RateLimitStrategy,
    RateLimitWindow,
    SlidingWindowRateLimiter,
    default_rules,
)

from core.middleware.authentication import (
    AuthenticationMiddleware,
    AuthenticationError,
)

from core.middleware.authorization import (
    SessionContext,
    get_session_context,
    require_permission,
    require_roles,
    AuthorizationError,
    AccessPendingError,
    InsufficientPermissions,
)

__all__ = [
    # Error handling
    "ErrorHandlingMiddleware",
    "setup_error_handlers",
    "sanitize_error_message",
    # Logging
    "StructuredLoggingMiddleware",
    "setup_logging",
    # Rate limiting
    "RateLimitMiddleware",
    "RateLimitRule",
    "RateLimitStrategy",
    "RateLimitWindow",
    "SlidingWindowRateLimiter",
    "default_rules",
    # Authentication
    "AuthenticationMiddleware",
    "AuthenticationError",
    # Authorization
    "SessionContext",
    "get_session_context",
    "require_permission",
    "require_roles",
    "AuthorizationError",
    "AccessPendingError",
    "InsufficientPermissions",
]
