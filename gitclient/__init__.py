"""
gitclient - Asynchronous Git operations

This package runs Git plumbing operations (push, fetch, checkout, config,
remotes, tracking branches, file extraction) off the event loop, with
credentials supplied uniformly by a credential provider.
"""

__version__ = "1.0.0"

from .core.git_client import GitClient, is_canonical
from .core.credentials import CredentialsManager, Credentials, CredentialType
from .core.remote_uri import RepositoryUri
from .core.config import GitClientConfig
from .core.exceptions import GitClientError, InvalidArgument, EngineFailure, CheckoutError

__all__ = [
    "GitClient",
    "is_canonical",
    "CredentialsManager",
    "Credentials",
    "CredentialType",
    "RepositoryUri",
    "GitClientConfig",
    "GitClientError",
    "InvalidArgument",
    "EngineFailure",
    "CheckoutError",
]
