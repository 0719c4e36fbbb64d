"""
Unit tests for password policy and hashing.
"""

import pytest

from augmentations_api.config import PasswordPolicySettings
from augmentations_api.services.identity_service import (
    IdentityOptions,
    PasswordHasher,
    PasswordValidator,
)


def codes(errors):
    return [e["code"] for e in errors]


class TestPasswordValidator:
    """Tests for the password policy."""

    def test_default_policy_only_checks_length(self):
        """Test the default policy accepts any password of 4 characters."""
        validator = PasswordValidator(IdentityOptions())

        assert validator.validate("abcd") == []
        assert codes(validator.validate("abc")) == ["PasswordTooShort"]

    def test_strict_policy(self):
        """Test every character class requirement is reported."""
        policy = PasswordPolicySettings(
            require_digit=True,
            require_lowercase=True,
            require_uppercase=True,
            require_non_alphanumeric=True,
            required_length=12,
        )
        validator = PasswordValidator(IdentityOptions(password=policy))

        assert codes(validator.validate("short")) == [
            "PasswordTooShort",
            "PasswordRequiresDigit",
            "PasswordRequiresUpper",
            "PasswordRequiresNonAlphanumeric",
        ]
        assert validator.validate("Augmented#2027") == []

    @pytest.mark.parametrize("password,code", [
        ("ALLUPPER1!", "PasswordRequiresLower"),
        ("alllower1!", "PasswordRequiresUpper"),
        ("NoDigits!!", "PasswordRequiresDigit"),
        ("NoSymbol12", "PasswordRequiresNonAlphanumeric"),
    ])
    def test_single_requirement(self, password, code):
        """Test each requirement on its own."""
        policy = PasswordPolicySettings(
            require_digit=True,
            require_lowercase=True,
            require_uppercase=True,
            require_non_alphanumeric=True,
        )

        assert codes(PasswordValidator(IdentityOptions(password=policy)).validate(password)) == [code]


class TestPasswordHasher:
    """Tests for password hashing."""

    def test_hash_and_verify(self):
        """Test a hash verifies its password and nothing else."""
        hasher = PasswordHasher(IdentityOptions())
        hashed = hasher.hash_password("NanoAugmented")

        assert hashed != "NanoAugmented"
        assert hasher.verify_password("NanoAugmented", hashed)
        assert not hasher.verify_password("nanoaugmented", hashed)

    def test_hashes_are_salted(self):
        """Test hashing the same password twice gives different hashes."""
        hasher = PasswordHasher(IdentityOptions())

        assert hasher.hash_password("NanoAugmented") != hasher.hash_password("NanoAugmented")

    def test_unknown_hash_format(self):
        """Test malformed hashes don't verify."""
        assert PasswordHasher(IdentityOptions()).verify_password("x", "not-a-hash") is False
