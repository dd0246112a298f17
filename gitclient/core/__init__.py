"""
Core components of the git client
"""

from .git_client import GitClient, PushConfig, FetchConfig, is_canonical
from .credentials import CredentialsManager, CredentialProvider, Credentials, CredentialType
from .remote_uri import RepositoryUri, RemoteUrlResolver, GitRemoteUrlResolver
from .config import GitClientConfig, LoggingConfig, load_config, setup_logging
from .exceptions import (
    GitClientError,
    InvalidArgument,
    EngineFailure,
    CheckoutError,
    RemoteNotFound,
    CredentialsError,
    EncryptionError,
)

__all__ = [
    "GitClient",
    "PushConfig",
    "FetchConfig",
    "is_canonical",
    "CredentialsManager",
    "CredentialProvider",
    "Credentials",
    "CredentialType",
    "RepositoryUri",
    "RemoteUrlResolver",
    "GitRemoteUrlResolver",
    "GitClientConfig",
    "LoggingConfig",
    "load_config",
    "setup_logging",
    "GitClientError",
    "InvalidArgument",
    "EngineFailure",
    "CheckoutError",
    "RemoteNotFound",
    "CredentialsError",
    "EncryptionError",
]
