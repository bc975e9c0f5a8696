"""Storefront identity-provider JWT authentication for DRF.

Shoppers sign in with the hosted identity provider; this backend only
verifies the bearer token it issued and exposes the subject as the
shopper's ``user_id``. Two verification modes, chosen by settings:

* ``IDP_JWKS_URL`` set: asymmetric (RS256 by default), keys fetched from
  the JWKS endpoint and cached in-memory by ``PyJWKClient``.
* ``IDP_JWT_SECRET`` set: shared-secret HS256 tokens.

Security decisions
------------------
* **Fail Closed**: a token that claims to be ours but fails
  verification is a 401, never an anonymous request.
* ``algorithms`` always comes from settings, never from the token header.
* Audience is always validated; issuer too when ``IDP_ISSUER`` is set.
* Tokens minted by SimpleJWT (staff tooling) are left for the next
  authentication class.
"""

from __future__ import annotations

from typing import Any, Optional

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = structlog.get_logger(__name__)

_jwks_clients: dict[str, PyJWKClient] = {}


def _jwks_client(url: str) -> PyJWKClient:
    client = _jwks_clients.get(url)
    if client is None:
        client = PyJWKClient(url, cache_jwk_set=True, lifespan=300)
        _jwks_clients[url] = client
    return client


class IdentityUser:
    """Request user backed only by identity-provider claims.

    The provider is the source of truth for shoppers; there is no local
    ``User`` row. ``pk`` mirrors ``sub`` so user-scoped throttles work.
    """

    is_authenticated = True
    is_active = True
    is_staff = False
    is_superuser = False

    def __init__(self, payload: dict[str, Any]):
        self.payload = payload
        self.sub: str = payload.get("sub", "")
        self.email: str = payload.get("email", "")
        self.pk = self.sub

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


def resolve_user_id(user: Any) -> Optional[str]:
    """Return the shopper id for orders and discount limits, or ``None`` for guests."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    if isinstance(user, IdentityUser):
        return user.sub or None
    return str(user.pk)


class IdentityProviderAuthentication(BaseAuthentication):
    """DRF authentication class for identity-provider bearer tokens."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(IdentityUser, token)`` or ``None`` (not our token)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        token = parts[1]

        if not (settings.IDP_JWKS_URL or settings.IDP_JWT_SECRET):
            return None
        if not self._is_identity_provider_token(token):
            return None

        payload = self._decode_token(token)
        user = IdentityUser(payload)
        logger.info("jwt_authenticated", sub=user.sub)
        return (user, token)

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'

    @staticmethod
    def _is_identity_provider_token(token: str) -> bool:
        try:
            claims = pyjwt.decode(token, options={"verify_signature": False})
        except PyJWTError:
            return False
        if "token_type" in claims:
            # SimpleJWT access/refresh token
            return False
        if settings.IDP_ISSUER:
            return claims.get("iss") == settings.IDP_ISSUER
        return True

    @staticmethod
    def _decode_token(token: str) -> dict[str, Any]:
        if settings.IDP_JWKS_URL:
            key: Any = None
            try:
                key = _jwks_client(settings.IDP_JWKS_URL).get_signing_key_from_jwt(
                    token
                ).key
            except PyJWTError as exc:
                logger.warning("jwt_signing_key_unavailable", error=str(exc))
                raise AuthenticationFailed("Token signing key not found.") from exc
        else:
            key = settings.IDP_JWT_SECRET

        try:
            return pyjwt.decode(
                token,
                key,
                algorithms=[settings.IDP_ALGORITHM],
                audience=settings.IDP_AUDIENCE,
                issuer=settings.IDP_ISSUER or None,
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
