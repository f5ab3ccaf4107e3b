import time

import jwt
from postgrest_fake import auth_token
from starlette.requests import Request

from grc_api.core.settings import get_settings
from grc_api.core.supabase_jwt import AuthFailure, Principal, authenticate, extract_access_token


def _connection(headers: list[tuple[bytes, bytes]]) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


def test_extract_prefers_bearer_header() -> None:
    connection = _connection([(b"authorization", b"Bearer abc"), (b"cookie", b"sb-access-token=xyz")])
    assert extract_access_token(connection, "sb-access-token") == "abc"


def test_extract_falls_back_to_cookie() -> None:
    connection = _connection([(b"cookie", b"sb-access-token=xyz")])
    assert extract_access_token(connection, "sb-access-token") == "xyz"


def test_extract_rejects_other_schemes() -> None:
    connection = _connection([(b"authorization", b"Basic dXNlcjpwYXNz")])
    assert extract_access_token(connection, "sb-access-token") is None


def test_authenticate_accepts_valid_token() -> None:
    token = auth_token("user-42", email="ada@example.com")
    result = authenticate(token, get_settings())
    assert isinstance(result, Principal)
    assert result.user_id == "user-42"
    assert result.email == "ada@example.com"
    assert result.access_token == token


def test_authenticate_reports_missing_token() -> None:
    assert authenticate(None, get_settings()) == AuthFailure("missing_token")


def test_authenticate_reports_expired_token() -> None:
    token = auth_token(exp=int(time.time()) - 60)
    assert authenticate(token, get_settings()) == AuthFailure("token_expired")


def test_authenticate_rejects_wrong_issuer() -> None:
    token = auth_token(iss="https://evil.example.com/auth/v1")
    assert authenticate(token, get_settings()) == AuthFailure("invalid_token")


def test_authenticate_rejects_bad_signature() -> None:
    settings = get_settings()
    token = jwt.encode(
        {"sub": "user-1", "iss": settings.SUPABASE_ISSUER, "exp": int(time.time()) + 60},
        "a-different-secret-of-sufficient-length",
        algorithm="HS256",
    )
    assert authenticate(token, settings) == AuthFailure("invalid_token")


def test_authenticate_requires_subject() -> None:
    token = auth_token(sub="  ")
    assert authenticate(token, get_settings()) == AuthFailure("missing_subject")


def test_authenticate_rejects_garbage() -> None:
    assert authenticate("not-a-jwt", get_settings()) == AuthFailure("invalid_token")
