"""
Board password hashing for the Ahmo Wall board core.

Board passwords are stored as salted Scrypt digests in the form
``scrypt$<salt hex>$<digest hex>``. Boards written before hashing was
introduced still carry the cleartext ``password`` field; those are compared
in constant time so existing links keep working.
"""

import hmac
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt


logger = logging.getLogger(__name__)

HASH_SCHEME = "scrypt"
SALT_SIZE = 16
KEY_LENGTH = 32


class PasswordManager:
    """
    Hashes and verifies board passwords.
    """

    def __init__(self, n: int = 2**14, r: int = 8, p: int = 1):
        """
        Initialize PasswordManager.

        Args:
            n: Scrypt CPU/memory cost parameter
            r: Scrypt block size
            p: Scrypt parallelization parameter
        """
        self.n = n
        self.r = r
        self.p = p

    def _kdf(self, salt: bytes) -> Scrypt:
        return Scrypt(salt=salt, length=KEY_LENGTH, n=self.n, r=self.r, p=self.p)

    def hash_password(self, password: str) -> str:
        """
        Derive a salted digest for storage.

        Args:
            password: Cleartext board password

        Returns:
            Encoded hash string
        """
        salt = os.urandom(SALT_SIZE)
        digest = self._kdf(salt).derive(password.encode('utf-8'))
        return f"{HASH_SCHEME}${salt.hex()}${digest.hex()}"

    def verify_password(self, password: str, stored_hash: str) -> bool:
        """
        Check a submitted password against a stored hash.

        Args:
            password: Submitted cleartext password
            stored_hash: Value produced by hash_password

        Returns:
            True if the password matches, False otherwise (including
            malformed hashes)
        """
        try:
            scheme, salt_hex, digest_hex = stored_hash.split('$')
            if scheme != HASH_SCHEME:
                logger.warning(f"Unknown password hash scheme '{scheme}'")
                return False
            salt = bytes.fromhex(salt_hex)
            digest = bytes.fromhex(digest_hex)
        except ValueError:
            logger.warning("Malformed board password hash")
            return False

        try:
            self._kdf(salt).verify(password.encode('utf-8'), digest)
            return True
        except InvalidKey:
            return False

    def check_board_password(self, password: str, password_hash: Optional[str], legacy_password: Optional[str]) -> bool:
        """
        Verify a submitted password against whichever form the board stores.

        The hash wins when present; the cleartext field is only consulted for
        boards that have never been re-saved.
        """
        if password_hash:
            return self.verify_password(password, password_hash)
        if legacy_password:
            return hmac.compare_digest(password.encode('utf-8'), legacy_password.encode('utf-8'))
        return False
