from __future__ import annotations

import pytest

from app.errors import ValidationFailedError
from app.security.passwords import PasswordHasher


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


def test_hash_is_salted_and_verifies(hasher):
    first = hasher.hash("Correct-Horse-42")
    second = hasher.hash("Correct-Horse-42")
    assert first != second
    assert "Correct-Horse-42" not in first
    assert hasher.verify("Correct-Horse-42", first)
    assert hasher.verify("Correct-Horse-42", second)
    assert not hasher.verify("correct-horse-42", first)


@pytest.mark.parametrize("stored", ["", None, "not-a-bcrypt-hash", "$2b$04$truncated"])
def test_malformed_hash_never_matches(hasher, stored):
    assert hasher.verify("Correct-Horse-42", stored) is False


def test_short_password_rejected(hasher):
    with pytest.raises(ValidationFailedError):
        hasher.hash("1234567")


def test_long_passwords_are_accepted(hasher):
    secret = "p" * 100
    assert hasher.verify(secret, hasher.hash(secret))


def test_rounds_are_bounded():
    with pytest.raises(ValueError):
        PasswordHasher(rounds=3)
    assert PasswordHasher().rounds == 12
