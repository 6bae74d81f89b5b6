from uuid import uuid4

import jwt
import pytest
from fastapi import HTTPException

from ewp_api.core.config import get_settings
from ewp_api.core.security import extract_bearer_token, parse_authorization_header, subject_to_user_id

SECRET = "token-parsing-secret-long-enough-for-hs256"


@pytest.fixture(autouse=True)
def _jwt_settings(monkeypatch):
    monkeypatch.setenv("EWP_AUTH_JWT_SECRET", SECRET)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_last_bearer_token_wins_when_headers_are_joined():
    assert extract_bearer_token("Bearer first, bearer second") == "second"


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer "])
def test_missing_bearer_token_is_unauthorized(header):
    with pytest.raises(HTTPException) as exc_info:
        extract_bearer_token(header)
    assert exc_info.value.status_code == 401


def test_subject_must_be_a_uuid():
    user_id = uuid4()
    assert subject_to_user_id(f" {user_id} ") == user_id
    with pytest.raises(HTTPException) as exc_info:
        subject_to_user_id("alice")
    assert exc_info.value.detail["code"] == "INVALID_SUBJECT"
    with pytest.raises(HTTPException) as exc_info:
        subject_to_user_id(None)
    assert exc_info.value.detail == "unauthorized"


def test_principal_is_built_from_claims():
    user_id = uuid4()
    token = jwt.encode(
        {"sub": str(user_id), "email": "organizer@example.com", "iss": "platform-auth"},
        SECRET,
        algorithm="HS256",
    )
    principal = parse_authorization_header(f"Bearer {token}")
    assert principal.user_id == user_id
    assert principal.email == "organizer@example.com"
    assert principal.provider == "platform-auth"


def test_wrong_signature_is_rejected():
    token = jwt.encode({"sub": str(uuid4())}, "another-secret-that-is-also-long-enough", algorithm="HS256")
    with pytest.raises(HTTPException) as exc_info:
        parse_authorization_header(f"Bearer {token}")
    assert exc_info.value.status_code == 401
