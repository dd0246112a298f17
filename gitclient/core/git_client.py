"""
Asynchronous Git client on top of GitPython

Every operation runs on a worker pool and is handed back as an awaitable:
- Push/fetch with credentials from a CredentialProvider
- Checkout, config and remote management
- Tracking branch setup
- Extraction of a file's content at a given commit
"""

import asyncio
import functools
import logging
import os
import shutil
import tempfile
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from git import Blob, Remote, Repo
from git.exc import BadName, BadObject, GitCommandError, GitError
from git.refs import Reference

from .config import GitClientConfig
from .credentials import CredentialProvider, Credentials, CredentialsManager, CredentialType
from .exceptions import CheckoutError, EngineFailure, GitClientError, InvalidArgument, RemoteNotFound
from .remote_uri import HTTP_SCHEMES, GitRemoteUrlResolver, RemoteUrlResolver
from .security import EncryptionService


CredentialsCallback = Callable[[str, Optional[str], FrozenSet[CredentialType]], Optional[Credentials]]

# Never let git block on an interactive prompt inside a worker
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}
_COPY_CHUNK_SIZE = 64 * 1024
_UNSET_MISSING_KEY = 5  # exit status of `git config --unset` for a missing key


def is_canonical(name: str) -> bool:
    """True for fully qualified ref names such as refs/heads/main"""
    return name.startswith("refs/")


def _require(value: Optional[str], name: str) -> None:
    if not value:
        raise InvalidArgument(f"{name} cannot be empty")


@dataclass(frozen=True)
class PushConfig:
    """Settings shared by every push"""
    credentials_provider: CredentialsCallback


@dataclass(frozen=True)
class FetchConfig:
    """Settings shared by every fetch"""
    credentials_provider: CredentialsCallback


class FileContentSource:
    """Where the content of a file at a commit is materialized from"""

    def materialize(self) -> str:
        raise NotImplementedError


@dataclass
class WorkingTreeSource(FileContentSource):
    """The working copy already holds the exact bytes"""
    repository: Repo
    file_name: str

    def materialize(self) -> str:
        return str(Path(self.repository.working_tree_dir) / self.file_name)


@dataclass
class ObjectStoreSource(FileContentSource):
    """Read the blob from the object store into a new temporary file"""
    repository: Repo
    commit_sha: str
    file_name: str
    temp_dir: Path

    def materialize(self) -> str:
        try:
            commit = self.repository.commit(self.commit_sha)
        except (BadName, BadObject, ValueError) as e:
            raise EngineFailure(f"Commit not found: {self.commit_sha}", reason="not_found") from e

        try:
            entry = commit.tree / self.file_name
        except KeyError:
            entry = None
        blob = entry if isinstance(entry, Blob) else None

        target = self.temp_dir / f"{uuid.uuid4().hex}{Path(self.file_name).suffix}"
        try:
            with open(target, "xb") as destination:
                # A file missing from the commit materializes as an empty file
                if blob is not None:
                    self._copy_filtered(commit.hexsha, destination)
        except Exception:
            target.unlink(missing_ok=True)
            raise
        return str(target)

    def _copy_filtered(self, commit_sha: str, destination) -> None:
        # --filters applies eol conversion and smudge filters for the path
        process = self.repository.git.cat_file(
            "--filters", f"{commit_sha}:{self.file_name}", as_process=True
        )
        shutil.copyfileobj(process.stdout, destination, _COPY_CHUNK_SIZE)
        process.wait()


class GitClient:
    """Asynchronous facade over GitPython repository operations.

    Arguments are validated synchronously: an empty required argument raises
    :class:`InvalidArgument` before any work is scheduled. The work itself runs
    on a thread pool and the returned future fails with :class:`EngineFailure`
    (or a subclass) when git reports an error.

    Operations must be started from a running event loop. The repository
    handle is not locked; callers serialize access when they need ordering.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        remote_url_resolver: Optional[RemoteUrlResolver] = None,
        config: Optional[GitClientConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.config = config or GitClientConfig()
        self.push_config = PushConfig(credentials_provider=credential_provider.handle_credentials)
        self.fetch_config = FetchConfig(credentials_provider=credential_provider.handle_credentials)
        self.remote_url_resolver = remote_url_resolver or GitRemoteUrlResolver()

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="gitclient"
        )

    @classmethod
    def from_config(cls, config: GitClientConfig) -> "GitClient":
        """Build a client backed by the file credential store"""
        encryption = EncryptionService(config.master_key) if config.master_key else None
        credentials = CredentialsManager(config.credentials_path, encryption=encryption)
        return cls(credentials, config=config)

    is_canonical = staticmethod(is_canonical)

    async def __aenter__(self) -> "GitClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close(wait=False)

    def close(self, wait: bool = True) -> None:
        """Shut down the worker pool if this client created it"""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # Public operations

    def push(self, repository: Repo, branch_name: str, remote_name: str) -> "asyncio.Future[None]":
        """Push HEAD to refs/heads/<branch_name> on remote_name.

        A repository without commits has nothing to push; the call then
        completes without touching the network.
        """
        _require(branch_name, "branch_name")
        _require(remote_name, "remote_name")
        return self._submit("Push", self._push, repository, branch_name, remote_name)

    def fetch(self, repository: Repo, remote_name: str, *refspecs: str) -> "asyncio.Future[None]":
        """Fetch the remote's default refspecs, or only the given ones"""
        _require(remote_name, "remote_name")
        for refspec in refspecs:
            _require(refspec, "refspec")
        return self._submit("Fetch", self._fetch, repository, remote_name, list(refspecs))

    def checkout(self, repository: Repo, branch_name: str) -> "asyncio.Future[None]":
        _require(branch_name, "branch_name")
        return self._submit("Checkout", self._checkout, repository, branch_name)

    def set_config(self, repository: Repo, key: str, value: str) -> "asyncio.Future[None]":
        _require(key, "key")
        _require(value, "value")
        return self._submit("Set config", self._set_config, repository, key, value)

    def unset_config(self, repository: Repo, key: str) -> "asyncio.Future[None]":
        _require(key, "key")
        return self._submit("Unset config", self._unset_config, repository, key)

    def set_remote(self, repository: Repo, remote_name: str, url: str) -> "asyncio.Future[None]":
        """Point remote_name at url with the default fetch refspec"""
        _require(remote_name, "remote_name")
        _require(str(url or ""), "url")
        return self._submit("Set remote", self._set_remote, repository, remote_name, str(url))

    def set_tracking_branch(self, repository: Repo, branch_name: str,
                            remote_name: str) -> "asyncio.Future[None]":
        """Make the local branch track its counterpart on remote_name.

        remote_name may also be a canonical remote ref. When the remote
        branch does not exist yet (nothing was pushed) the call is a no-op.
        """
        _require(branch_name, "branch_name")
        _require(remote_name, "remote_name")
        return self._submit("Set tracking branch", self._set_tracking_branch,
                            repository, branch_name, remote_name)

    def ensure_http_remote(self, repository: Repo, remote_name: str) -> "asyncio.Future[Remote]":
        """Return an HTTP(S) remote equivalent to remote_name.

        HTTP remotes are returned as is. For other transports a sibling remote
        named ``<remote_name>-http`` is looked up, and created on first use.
        """
        _require(remote_name, "remote_name")
        return self._submit("Ensure HTTP remote", self._ensure_http_remote, repository, remote_name)

    def extract_file(self, repository: Repo, commit_sha: str, file_name: str) -> "asyncio.Future[str]":
        """Materialize file_name as of commit_sha and return its path.

        When commit_sha is HEAD and the working copy of the file is unmodified,
        the working tree path is returned. Otherwise the filtered blob is
        written to a new temporary file owned by the caller; a file absent from
        the commit yields an empty temporary file.
        """
        _require(commit_sha, "commit_sha")
        _require(file_name, "file_name")
        return self._submit("Extract file", self._extract_file, repository, commit_sha, file_name)

    # Dispatch

    def _submit(self, operation: str, func, *args) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(
            self._executor, functools.partial(self._run, operation, func, *args)
        )

    def _run(self, operation: str, func, *args):
        try:
            return func(*args)
        except GitClientError as e:
            self.logger.error(f"{operation} failed: {e}")
            raise
        except GitCommandError as e:
            failure = EngineFailure.from_command_error(e, f"{operation} failed")
            self.logger.error(str(failure))
            raise failure from e
        except GitError as e:
            failure = EngineFailure(f"{operation} failed: {e}")
            self.logger.error(str(failure))
            raise failure from e

    # Workers

    def _push(self, repository: Repo, branch_name: str, remote_name: str) -> None:
        if not repository.head.is_valid():
            self.logger.debug(f"Nothing to push to {remote_name}: HEAD has no commits")
            return

        self._remote(repository, remote_name)
        # pushurl takes precedence over url when set
        url = repository.git.remote("get-url", "--push", remote_name)
        env = self._transport_env(url, self.push_config.credentials_provider)
        self.logger.info(f"Pushing HEAD to {remote_name} refs/heads/{branch_name}")
        self._git(repository, env, "push", remote_name, f"HEAD:refs/heads/{branch_name}")

    def _fetch(self, repository: Repo, remote_name: str, refspecs: List[str]) -> None:
        self._remote(repository, remote_name)
        url = repository.git.remote("get-url", remote_name)
        env = self._transport_env(url, self.fetch_config.credentials_provider)
        if refspecs:
            self.logger.info(f"Fetching {', '.join(refspecs)} from {remote_name}")
        else:
            self.logger.info(f"Fetching from {remote_name}")
        self._git(repository, env, "fetch", remote_name, *refspecs)

    def _checkout(self, repository: Repo, branch_name: str) -> None:
        self.logger.info(f"Checking out {branch_name}")
        try:
            repository.git.checkout(branch_name)
        except GitCommandError as e:
            raise CheckoutError.from_command_error(e, f"Checkout of '{branch_name}' failed") from e

    def _set_config(self, repository: Repo, key: str, value: str) -> None:
        self.logger.debug(f"Setting config {key}")
        repository.git.config("--local", "--replace-all", key, value)

    def _unset_config(self, repository: Repo, key: str) -> None:
        self.logger.debug(f"Unsetting config {key}")
        try:
            repository.git.config("--local", "--unset-all", key)
        except GitCommandError as e:
            if e.status != _UNSET_MISSING_KEY:
                raise
            self.logger.debug(f"Config {key} was not set")

    def _set_remote(self, repository: Repo, remote_name: str, url: str) -> None:
        self.logger.info(f"Setting remote {remote_name}")
        self._set_config(repository, f"remote.{remote_name}.url", url)
        self._set_config(repository, f"remote.{remote_name}.fetch",
                         f"+refs/heads/*:refs/remotes/{remote_name}/*")

    def _set_tracking_branch(self, repository: Repo, branch_name: str, remote_name: str) -> None:
        remote_ref_name = remote_name if is_canonical(remote_name) \
            else f"refs/remotes/{remote_name}/{branch_name}"
        remote_ref = Reference(repository, remote_ref_name)
        if not remote_ref.is_valid():
            self.logger.debug(f"{remote_ref_name} does not exist, nothing to track")
            return

        local_ref_name = branch_name if is_canonical(branch_name) else f"refs/heads/{branch_name}"
        if not local_ref_name.startswith("refs/heads/") \
                or not Reference(repository, local_ref_name).is_valid():
            raise EngineFailure(f"Local branch not found: {local_ref_name}", reason="not_found")

        local_branch = local_ref_name[len("refs/heads/"):]
        self.logger.info(f"Setting upstream of {local_ref_name} to {remote_ref_name}")
        # git maps the ref back to its remote through the fetch refspecs,
        # so remote names containing "/" resolve correctly
        repository.git.branch(f"--set-upstream-to={remote_ref_name}", local_branch)

    def _ensure_http_remote(self, repository: Repo, remote_name: str) -> Remote:
        uri = self.remote_url_resolver.get_remote_uri(repository, remote_name)
        target_name = remote_name if uri.is_http else remote_name + self.config.http_remote_suffix

        if target_name in [remote.name for remote in repository.remotes]:
            return repository.remote(target_name)

        url = uri.to_repository_url()
        self.logger.info(f"Creating remote {target_name} for {url}")
        return repository.create_remote(target_name, url)

    def _extract_file(self, repository: Repo, commit_sha: str, file_name: str) -> str:
        source = self._content_source(repository, commit_sha, file_name)
        self.logger.debug(f"Extracting {file_name}@{commit_sha[:8]} via {type(source).__name__}")
        return source.materialize()

    # Helpers

    def _content_source(self, repository: Repo, commit_sha: str, file_name: str) -> FileContentSource:
        if self._is_unaltered_at_head(repository, commit_sha, file_name):
            return WorkingTreeSource(repository, file_name)
        temp_dir = Path(self.config.temp_dir or tempfile.gettempdir())
        return ObjectStoreSource(repository, commit_sha, file_name, temp_dir)

    @staticmethod
    def _is_unaltered_at_head(repository: Repo, commit_sha: str, file_name: str) -> bool:
        if repository.bare or not repository.head.is_valid():
            return False
        head = repository.head.commit
        if head.hexsha != commit_sha:
            return False
        try:
            entry = head.tree / file_name
        except KeyError:
            return False
        if not isinstance(entry, Blob):
            return False
        status = repository.git.status(
            "--porcelain", "--ignored", "--untracked-files=all", "--", file_name
        )
        return not status.strip()

    @staticmethod
    def _remote(repository: Repo, remote_name: str) -> Remote:
        try:
            return repository.remote(remote_name)
        except ValueError as e:
            raise RemoteNotFound(remote_name) from e

    def _transport_env(self, url: str, callback: CredentialsCallback) -> Dict[str, str]:
        """Environment carrying credentials for an HTTP(S) remote URL, if any.

        The credentials are applied through a url.<auth>.insteadOf rewrite
        passed as GIT_CONFIG_* variables (git >= 2.31), so they never reach the
        command line and the configured remote URL is left untouched.
        """
        parts = urlsplit(url)
        if parts.scheme.lower() not in HTTP_SCHEMES or not parts.hostname:
            return {}

        credentials = callback(url, parts.username, frozenset({CredentialType.USERNAME_PASSWORD}))
        if credentials is None:
            self.logger.debug(f"No credentials supplied for {parts.hostname}")
            return {}

        userinfo = quote(credentials.username, safe="")
        if credentials.password:
            userinfo += ":" + quote(credentials.password, safe="")
        host = f"{parts.hostname}:{parts.port}" if parts.port else parts.hostname
        auth_url = urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))

        # Append after any GIT_CONFIG_* entries already in the environment
        index = int(os.environ.get("GIT_CONFIG_COUNT", "0") or 0)
        return {
            "GIT_CONFIG_COUNT": str(index + 1),
            f"GIT_CONFIG_KEY_{index}": f"url.{auth_url}.insteadOf",
            f"GIT_CONFIG_VALUE_{index}": url,
        }

    @staticmethod
    def _git(repository: Repo, env: Dict[str, str], *args: str) -> str:
        executable = type(repository.git).GIT_PYTHON_GIT_EXECUTABLE
        return repository.git.execute([executable, *args], env={**_GIT_ENV, **env})
