"""
Token encryption at rest.

Fernet symmetric encryption for stored OAuth tokens. Without a key the
cipher is a passthrough, so local development works out of the box.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class TokenCipher:
    """
    Encrypts/decrypts OAuth tokens.

    Values written before a key was configured are plaintext; decrypt()
    returns them unchanged so existing rows keep working and get
    re-encrypted on the next refresh.
    """

    def __init__(self, key: Optional[str] = None):
        if not key:
            logger.warning("TOKEN_ENCRYPTION_KEY not set, OAuth tokens are stored in plaintext")
            self._fernet = None
            return
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except ValueError as e:
            raise ValueError(f"Invalid token encryption key: {e}") from e

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, stored: str) -> str:
        if self._fernet is None:
            return stored
        try:
            return self._fernet.decrypt(stored.encode()).decode()
        except InvalidToken:
            logger.warning("Stored token is not encrypted with the current key, using as plaintext")
            return stored
