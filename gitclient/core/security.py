"""
Secret encryption for the credential store

Tokens and passwords written to disk are encrypted with Fernet using a key
derived from a master key.
"""

import base64
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import EncryptionError


class EncryptionService:
    """Encryption service for sensitive data"""

    def __init__(self, master_key: Optional[str] = None, salt: bytes = b'gitclient_salt'):
        if master_key:
            self._key = master_key.encode()
        else:
            self._key = os.urandom(32)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self._key))
        self.fernet = Fernet(key)
        self.logger = logging.getLogger(__name__)

    def encrypt(self, data: str) -> str:
        """Encrypt string data"""
        return self.fernet.encrypt(data.encode()).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt string data"""
        try:
            return self.fernet.decrypt(encrypted_data.encode()).decode()
        except InvalidToken as e:
            self.logger.error("Decryption failed: wrong master key or corrupted data")
            raise EncryptionError("Decryption failed: wrong master key or corrupted data") from e
