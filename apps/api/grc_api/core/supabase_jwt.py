from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError
from starlette.requests import HTTPConnection

from grc_api.core.settings import Settings


@dataclass(frozen=True)
class Principal:
    user_id: str
    access_token: str
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def email(self) -> str | None:
        value = self.claims.get("email")
        return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class AuthFailure:
    reason: str


def extract_access_token(connection: HTTPConnection, cookie_name: str) -> str | None:
    """Bearer header first, then the session cookie."""
    authorization = connection.headers.get("authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        return None

    cookie_value = connection.cookies.get(cookie_name)
    if cookie_value and cookie_value.strip():
        return cookie_value.strip()
    return None


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url)


def _decode_supabase_token(token: str, settings: Settings) -> dict[str, Any]:
    if settings.SUPABASE_JWT_SECRET:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            issuer=settings.SUPABASE_ISSUER,
            options={"verify_aud": False},
        )

    signing_key = _jwks_client(str(settings.SUPABASE_JWKS_URL)).get_signing_key_from_jwt(token).key
    return jwt.decode(
        token,
        signing_key,
        algorithms=["RS256", "ES256"],
        issuer=settings.SUPABASE_ISSUER,
        options={"verify_aud": False},
    )


def authenticate(token: str | None, settings: Settings) -> Principal | AuthFailure:
    if not token:
        return AuthFailure("missing_token")

    try:
        claims = _decode_supabase_token(token, settings)
    except jwt.ExpiredSignatureError:
        return AuthFailure("token_expired")
    except (InvalidTokenError, PyJWKClientError, ValueError):
        return AuthFailure("invalid_token")

    if not isinstance(claims, dict):
        return AuthFailure("invalid_token")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        return AuthFailure("missing_subject")

    return Principal(user_id=subject.strip(), access_token=token, claims=claims)
