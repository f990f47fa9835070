# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for password hashing."""

import pytest

from campus.domains.auth.password import PasswordHasher


@pytest.fixture
def hasher() -> PasswordHasher:
    """Low-cost hasher so the suite stays fast."""
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    """Tests for PasswordHasher class."""

    def test_hash_returns_bcrypt_hash(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("test_password_123")

        assert hashed.startswith("$2b$04$")
        assert len(hashed) == 60

    def test_hash_is_salted(self, hasher: PasswordHasher) -> None:
        """Test that the same password hashes differently each time."""
        assert hasher.hash("same") != hasher.hash("same")

    def test_verify_correct_password(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("correct_password")

        assert hasher.verify("correct_password", hashed) is True

    def test_verify_incorrect_password(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("correct_password")

        assert hasher.verify("wrong_password", hashed) is False

    def test_verify_empty_inputs_return_false(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("password")

        assert hasher.verify("", hashed) is False
        assert hasher.verify("password", "") is False

    def test_verify_malformed_hash_returns_false(self, hasher: PasswordHasher) -> None:
        """Test that a corrupted stored hash is a mismatch, not an error."""
        assert hasher.verify("password", "not-a-bcrypt-hash") is False

    def test_hash_empty_password_raises_error(self, hasher: PasswordHasher) -> None:
        with pytest.raises(ValueError, match="empty"):
            hasher.hash("")

    def test_hash_rejects_password_over_72_bytes(self, hasher: PasswordHasher) -> None:
        """Test that bcrypt's silent truncation is refused up front."""
        with pytest.raises(ValueError, match="72 bytes"):
            hasher.hash("é" * 37)

    def test_unicode_password(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("şifre_öğrenci")

        assert hasher.verify("şifre_öğrenci", hashed) is True
