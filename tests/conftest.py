from __future__ import annotations

from pathlib import Path

import pytest
from git import Repo

from gitclient.core.config import GitClientConfig
from gitclient.core.git_client import GitClient


class RecordingProvider:
    """Credential provider that records every request"""

    def __init__(self, credentials=None):
        self.credentials = credentials
        self.calls = []

    def handle_credentials(self, url, username_from_url, allowed_types):
        self.calls.append((url, username_from_url, allowed_types))
        return self.credentials


def init_repo(path: Path, bare: bool = False) -> Repo:
    repo = Repo.init(path, bare=bare, initial_branch="main")
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("core", "autocrlf", "false")
    return repo


def commit_file(repo: Repo, name: str, content: str, message: str = "update") -> str:
    target = Path(repo.working_tree_dir) / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content.encode("utf-8"))
    repo.git.add(name)
    repo.git.commit("-m", message)
    return repo.head.commit.hexsha


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def repo(tmp_path) -> Repo:
    return init_repo(tmp_path / "work")


@pytest.fixture
def bare_remote(tmp_path) -> Repo:
    return init_repo(tmp_path / "remote.git", bare=True)


@pytest.fixture
def repo_with_origin(repo, bare_remote) -> Repo:
    repo.create_remote("origin", bare_remote.git_dir)
    return repo


@pytest.fixture
def extract_dir(tmp_path) -> Path:
    path = tmp_path / "extracted"
    path.mkdir()
    return path


@pytest.fixture
def client(provider, extract_dir):
    client = GitClient(provider, config=GitClientConfig(temp_dir=str(extract_dir), max_workers=2))
    yield client
    client.close()
