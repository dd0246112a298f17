"""
Credentials Management

Credential callback contract used by push/fetch, plus a file-backed
credential store keyed by host:
- Token-based authentication
- Username/password authentication
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Protocol, runtime_checkable
from urllib.parse import urlsplit

from pydantic import BaseModel

from .exceptions import CredentialsError
from .security import EncryptionService


class CredentialType(str, Enum):
    """Kinds of credentials a transport may accept"""
    USERNAME_PASSWORD = "username_password"
    DEFAULT = "default"
    SSH_KEY = "ssh_key"


class Credentials(BaseModel):
    """Credentials handed to the transport for a single request"""
    username: str
    password: str = ""
    credential_type: CredentialType = CredentialType.USERNAME_PASSWORD


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies credentials when a transport asks for them."""

    def handle_credentials(
        self,
        url: str,
        username_from_url: Optional[str],
        allowed_types: FrozenSet[CredentialType],
    ) -> Optional[Credentials]: ...


class StoredCredential(BaseModel):
    """Credential entry persisted by CredentialsManager"""
    host: str
    type: str  # "token" or "username_password"
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


# Username conventions for personal access tokens per provider
_TOKEN_USERNAMES = {
    "github.com": "x-access-token",
    "gitlab.com": "oauth2",
}

_SECRET_FIELDS = ("token", "password")


class CredentialsManager:
    """File-backed credential store that also acts as a CredentialProvider"""

    def __init__(self, storage_path: str = "./credentials",
                 encryption: Optional[EncryptionService] = None):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.encryption = encryption
        self.logger = logging.getLogger(__name__)
        self.credentials: Dict[str, StoredCredential] = {}
        self._load_credentials()

    @property
    def credentials_file(self) -> Path:
        return self.storage_path / "credentials.json"

    def add_credential(self, host: str, credential_type: str, **kwargs) -> str:
        """Add or replace the credential for a host"""
        host = host.strip().lower()
        if not host:
            raise CredentialsError("Host is required")

        if credential_type == "token":
            if not kwargs.get("token"):
                raise CredentialsError("Token is required for token authentication")
        elif credential_type == "username_password":
            if not kwargs.get("username") or not kwargs.get("password"):
                raise CredentialsError("Username and password are required")
        else:
            raise CredentialsError(f"Unsupported credential type: {credential_type}")

        self.credentials[host] = StoredCredential(host=host, type=credential_type, **kwargs)
        self._save_credentials()

        self.logger.info(f"Credential added for host: {host}")
        return host

    def get_credential(self, host: str) -> Optional[StoredCredential]:
        """Get credential by host"""
        return self.credentials.get(host.strip().lower())

    def list_credentials(self) -> Dict[str, str]:
        """List all credentials (without sensitive data)"""
        return {
            host: cred.type
            for host, cred in self.credentials.items()
        }

    def remove_credential(self, host: str) -> bool:
        """Remove credential"""
        host = host.strip().lower()
        if host in self.credentials:
            del self.credentials[host]
            self._save_credentials()
            self.logger.info(f"Credential removed for host: {host}")
            return True
        return False

    def handle_credentials(
        self,
        url: str,
        username_from_url: Optional[str],
        allowed_types: FrozenSet[CredentialType],
    ) -> Optional[Credentials]:
        """Resolve credentials for the host of url"""
        if CredentialType.USERNAME_PASSWORD not in allowed_types:
            return None

        host = (urlsplit(url).hostname or "").lower()
        stored = self.credentials.get(host)
        if stored is None:
            self.logger.debug(f"No stored credential for host: {host or '<none>'}")
            return None

        if stored.type == "token":
            username = _TOKEN_USERNAMES.get(host)
            if username is None:
                # Generic providers take the token as the username
                return Credentials(username=stored.token, password="")
            return Credentials(username=username, password=stored.token)

        return Credentials(
            username=stored.username or username_from_url or "",
            password=stored.password or "",
        )

    def _load_credentials(self):
        """Load credentials from storage"""
        if not self.credentials_file.exists():
            return
        try:
            with open(self.credentials_file, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load credentials: {e}")
            self.credentials = {}
            return

        self.credentials = {
            host: StoredCredential(**self._decrypt_entry(entry))
            for host, entry in raw.items()
        }
        self.logger.info(f"Loaded {len(self.credentials)} credentials")

    def _save_credentials(self):
        """Save credentials to storage"""
        data = {
            host: self._encrypt_entry(cred.model_dump(exclude_none=True))
            for host, cred in self.credentials.items()
        }
        try:
            with open(self.credentials_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to save credentials: {e}")
            raise CredentialsError(f"Failed to save credentials: {e}") from e

    def _encrypt_entry(self, entry: dict) -> dict:
        if self.encryption is None:
            return entry
        for field in _SECRET_FIELDS:
            if entry.get(field):
                entry[field] = self.encryption.encrypt(entry[field])
        entry["encrypted"] = True
        return entry

    def _decrypt_entry(self, entry: dict) -> dict:
        entry = dict(entry)
        if not entry.pop("encrypted", False):
            return entry
        if self.encryption is None:
            raise CredentialsError("Stored credentials are encrypted but no master key is configured")
        for field in _SECRET_FIELDS:
            if entry.get(field):
                entry[field] = self.encryption.decrypt(entry[field])
        return entry
