"""
Unit tests for PasswordManager
"""

import pytest

from core.password_manager import PasswordManager


@pytest.fixture
def passwords():
    """Fixture providing a PasswordManager with a cheap work factor"""
    return PasswordManager(n=2**10)


class TestPasswordManager:
    """Test board password hashing."""

    def test_hash_and_verify(self, passwords):
        stored = passwords.hash_password("hunter2")

        assert stored.startswith("scrypt$")
        assert passwords.verify_password("hunter2", stored)
        assert not passwords.verify_password("hunter3", stored)

    def test_hashes_are_salted(self, passwords):
        assert passwords.hash_password("same") != passwords.hash_password("same")

    @pytest.mark.parametrize("stored", ["", "garbage", "md5$00$00", "scrypt$zz$zz"])
    def test_malformed_hash_never_matches(self, passwords, stored):
        assert passwords.verify_password("anything", stored) is False

    def test_board_password_prefers_hash(self, passwords):
        stored = passwords.hash_password("new")

        assert passwords.check_board_password("new", stored, "old")
        assert not passwords.check_board_password("old", stored, "old")

    def test_legacy_cleartext(self, passwords):
        assert passwords.check_board_password("open", "", "open")
        assert not passwords.check_board_password("closed", "", "open")

    def test_board_without_password(self, passwords):
        assert not passwords.check_board_password("", None, None)
