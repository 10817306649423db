"""
Unit tests for JWT helpers.
"""
from datetime import timedelta

import jwt
import pytest

from mekacash.lib.jwt import create_access_token, get_actor_from_token, verify_token
from mekacash.lib.settings import settings


@pytest.mark.unit
def test_token_round_trip():
    token = create_access_token("prov-1", "provider")

    payload = verify_token(token)

    assert payload["sub"] == "prov-1"
    assert payload["role"] == "provider"
    assert payload["exp"] > payload["iat"]


@pytest.mark.unit
def test_get_actor_from_token():
    token = create_access_token("cust-1", "customer")

    assert get_actor_from_token(token) == ("cust-1", "customer")


@pytest.mark.unit
def test_expired_token_rejected():
    token = create_access_token("cust-1", "customer", expires_delta=timedelta(seconds=-10))

    with pytest.raises(jwt.ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_wrong_secret_rejected():
    token = jwt.encode({"sub": "cust-1", "role": "customer"}, "not-the-secret", algorithm=settings.jwt_algorithm)

    with pytest.raises(jwt.InvalidSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_missing_role_claim():
    token = jwt.encode({"sub": "cust-1"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(KeyError):
        get_actor_from_token(token)
