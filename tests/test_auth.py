from __future__ import annotations

import os
import time

import jwt
import pytest

from core.errors import AppException
from security.auth import decode_access_token


def _token(claims: dict, secret: str | None = None) -> str:
    return jwt.encode(claims, secret or os.environ["JWT_SECRET"], algorithm="HS256")


def test_decode_reads_id_claim():
    principal = decode_access_token(_token({"id": "u1", "role": "Admin", "iat": 100}))

    assert principal.user_id == "u1"
    assert principal.role == "admin"
    assert principal.issued_at == 100


def test_decode_falls_back_to_sub_claim():
    assert decode_access_token(_token({"sub": "u2"})).user_id == "u2"


@pytest.mark.parametrize(
    "token, expected_details",
    [
        (_token({"id": "u1", "exp": int(time.time()) - 60}), "Token has expired"),
        (_token({"role": "user"}), "Token has no subject"),
        (_token({"id": "u1", "role": "superuser"}), {"role": "superuser"}),
    ],
)
def test_decode_rejects_unusable_tokens(token, expected_details):
    with pytest.raises(AppException) as exc_info:
        decode_access_token(token)

    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "AUTH_INVALID_TOKEN"
    assert exc_info.value.detail["details"] == expected_details


def test_decode_rejects_foreign_signature():
    with pytest.raises(AppException) as exc_info:
        decode_access_token(_token({"id": "u1"}, secret="someone-elses-secret"))
    assert exc_info.value.status_code == 401
