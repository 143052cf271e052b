import pytest
from jose import jwt

from booking_ledger.core.security import create_access_token, decode_access_token


def test_access_token_round_trip_keeps_subject_and_claims():
    token = create_access_token(subject="42", extra_claims={"role": "client"})

    payload = decode_access_token(token)

    assert payload["sub"] == "42"
    assert payload["role"] == "client"
    assert "exp" in payload


def test_token_signed_with_another_key_is_rejected():
    foreign_token = jwt.encode({"sub": "42"}, "not-the-engine-secret", algorithm="HS256")

    with pytest.raises(ValueError):
        decode_access_token(foreign_token)
