"""
Remote URL parsing

Normalizes the URL forms git accepts for a remote (https, ssh, scp-like,
git, local paths) so an HTTPS equivalent can be derived.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable
from urllib.parse import urlsplit

from git import Repo

from .exceptions import InvalidArgument, RemoteNotFound

# user@host:owner/repo.git
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/\s]+)@)?(?P<host>[^:/\s]+):(?P<path>[^/\s].*)$")

HTTP_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class RepositoryUri:
    """A parsed remote URL"""
    url: str
    scheme: str
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    path: str = ""

    @classmethod
    def parse(cls, url: str) -> "RepositoryUri":
        url = (url or "").strip()
        if not url:
            raise InvalidArgument("Remote URL cannot be empty")

        if "://" in url:
            parts = urlsplit(url)
            return cls(
                url=url,
                scheme=parts.scheme.lower(),
                host=parts.hostname,
                port=parts.port,
                user=parts.username,
                path=_strip_path(parts.path),
            )

        match = _SCP_LIKE.match(url)
        # A single letter before the colon is a Windows drive, not a host
        if match and len(match.group("host")) > 1:
            return cls(
                url=url,
                scheme="ssh",
                host=match.group("host"),
                user=match.group("user"),
                path=_strip_path(match.group("path")),
            )

        return cls(url=url, scheme="file", path=url)

    @property
    def is_http(self) -> bool:
        return self.scheme in HTTP_SCHEMES

    @property
    def owner(self) -> Optional[str]:
        owner, _, _ = self.path.rpartition("/")
        return owner or None

    @property
    def name(self) -> str:
        return self.path.rpartition("/")[2]

    def to_repository_url(self) -> str:
        """HTTPS form of the URL: https://host/owner/name

        Local paths have no HTTP equivalent and are returned unchanged.
        """
        if not self.host:
            return self.url
        netloc = self.host
        if self.is_http and self.port:
            netloc = f"{netloc}:{self.port}"
        return f"https://{netloc}/{self.path}"

    def __str__(self) -> str:
        return self.url


def _strip_path(path: str) -> str:
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return path


@runtime_checkable
class RemoteUrlResolver(Protocol):
    """Computes the URL of a named remote."""

    def get_remote_uri(self, repository: Repo, remote_name: str) -> RepositoryUri: ...


class GitRemoteUrlResolver:
    """Reads remote URLs from the repository configuration"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_remote_uri(self, repository: Repo, remote_name: str) -> RepositoryUri:
        try:
            remote = repository.remote(remote_name)
        except ValueError as e:
            raise RemoteNotFound(remote_name) from e

        uri = RepositoryUri.parse(remote.url)
        self.logger.debug(f"Remote {remote_name} resolved to {uri.scheme} URL on {uri.host or 'local path'}")
        return uri
