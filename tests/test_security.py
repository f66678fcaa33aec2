import time

import jwt
import pytest

from minimal_blog.auth.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

SECRET = "unit-test-secret"


def test_password_round_trip():
    h = hash_password("s3cret!", rounds=1000)
    assert h != "s3cret!"
    assert h.startswith("$pbkdf2-sha256$")
    assert verify_password("s3cret!", h)


@pytest.mark.parametrize("other", ["s3cret", "S3cret!", "s3cret! ", ""])
def test_password_mismatch(other):
    h = hash_password("s3cret!", rounds=1000)
    assert not verify_password(other, h)


def test_hashes_are_salted():
    assert hash_password("same", rounds=1000) != hash_password("same", rounds=1000)


def test_hash_blank_password_rejected():
    with pytest.raises(ValueError):
        hash_password("")


def test_verify_against_garbage_hash_is_false():
    assert verify_password("x", "not-a-hash") is False


def test_token_carries_user_claim():
    token = create_access_token(secret=SECRET, user_id="a" * 24, expires_minutes=60)
    payload = decode_access_token(token=token, secret=SECRET)
    assert payload["user"] == "a" * 24
    assert payload["exp"] - payload["iat"] == 3600


def test_token_wrong_secret():
    token = create_access_token(secret=SECRET, user_id="a" * 24, expires_minutes=60)
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(token=token, secret="other")


def test_token_expired():
    token = jwt.encode({"user": "a" * 24, "exp": int(time.time()) - 10}, SECRET, algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token=token, secret=SECRET)


def test_token_without_exp_rejected():
    token = jwt.encode({"user": "a" * 24}, SECRET, algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(token=token, secret=SECRET)
