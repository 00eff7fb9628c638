"""
API Dependencies

FastAPI dependency injection for authentication and common services.

Security: bearer tokens are verified cryptographically, either against the
identity provider's JWKS endpoint (RS256/ES256) when AUTH_JWKS_URL is set,
or with the shared AUTH_JWT_SECRET (HS256). Never decode without
verification.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from todo_app.config.settings import get_settings
from todo_app.infrastructure.db.dependencies import (
    EntitlementRepoDep,
    TodoRepoDep,
)
from todo_app.infrastructure.exceptions import AuthenticationError, ConfigurationError
from todo_app.infrastructure.payments import StripeBillingProvider
from todo_app.infrastructure.services.checkout_service import CheckoutService
from todo_app.infrastructure.services.reconciliation_service import ReconciliationService
from todo_app.infrastructure.services.usage_service import UsageService


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: Optional[str] = None


# =============================================================================
# Identity
# =============================================================================

@lru_cache
def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    """PyJWKClient caches signing keys internally between requests."""
    return PyJWKClient(jwks_url, cache_keys=True)


def _decode_options(audience: Optional[str], issuer: Optional[str]) -> dict:
    required = ["exp", "sub"]
    if issuer:
        required.append("iss")
    return {"require": required, "verify_aud": audience is not None}


def decode_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    Raises:
        AuthenticationError: expired, malformed or unverifiable token
        ConfigurationError: no verification key is configured
    """
    settings = get_settings()
    audience = settings.auth_audience
    issuer = settings.auth_issuer
    options = _decode_options(audience, issuer)

    try:
        if settings.auth_jwks_url:
            signing_key = _get_jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=audience,
                issuer=issuer,
                options=options,
            )

        if settings.auth_jwt_secret:
            return jwt.decode(
                token,
                settings.auth_jwt_secret,
                algorithms=["HS256"],
                audience=audience,
                issuer=issuer,
                options=options,
            )

    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired", original_error=e)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthenticationError("Invalid or unverifiable token", original_error=e)

    raise ConfigurationError(
        "No JWT verification key configured",
        missing_keys=["AUTH_JWKS_URL", "AUTH_JWT_SECRET"],
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    Resolve the caller from the Authorization header.

    Raises:
        AuthenticationError: token missing, expired, or invalid (HTTP 401)
    """
    if not credentials:
        raise AuthenticationError("Missing authorization token")

    payload = decode_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user ID")

    return AuthenticatedUser(user_id=user_id, email=payload.get("email"))


async def get_current_user_id(
    user: AuthenticatedUser = Depends(get_current_user),
) -> str:
    return user.user_id


# =============================================================================
# Billing
# =============================================================================

@lru_cache
def get_billing_provider() -> StripeBillingProvider:
    """One provider (and StripeClient) per process."""
    settings = get_settings()
    return StripeBillingProvider(
        settings.stripe_secret_key,
        settings.stripe_webhook_secret,
        allow_unsigned_events=settings.allow_unsigned_webhooks,
        api_version=settings.stripe_api_version,
        webhook_tolerance=settings.stripe_webhook_tolerance_seconds,
    )


def get_reconciliation_service(
    entitlements: EntitlementRepoDep,
    provider: StripeBillingProvider = Depends(get_billing_provider),
) -> ReconciliationService:
    return ReconciliationService(entitlements, provider)


def get_checkout_service(
    entitlements: EntitlementRepoDep,
    provider: StripeBillingProvider = Depends(get_billing_provider),
) -> CheckoutService:
    return CheckoutService(entitlements, provider, get_settings())


def get_usage_service(
    entitlements: EntitlementRepoDep,
    todos: TodoRepoDep,
) -> UsageService:
    return UsageService(entitlements, todos)


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from todo_app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    get_entitlement_repository,
    get_todo_repository,
)
