from __future__ import annotations

import json

import pytest

from gitclient.core.credentials import CredentialProvider, CredentialsManager, CredentialType
from gitclient.core.exceptions import CredentialsError, EncryptionError
from gitclient.core.security import EncryptionService

ALLOWED = frozenset({CredentialType.USERNAME_PASSWORD})


@pytest.fixture
def manager(tmp_path):
    return CredentialsManager(str(tmp_path / "creds"))


def test_manager_is_a_credential_provider(manager):
    assert isinstance(manager, CredentialProvider)


def test_token_for_github_uses_access_token_username(manager):
    manager.add_credential("GitHub.com", "token", token="ghp_abc")

    creds = manager.handle_credentials("https://github.com/owner/repo.git", None, ALLOWED)

    assert creds.username == "x-access-token"
    assert creds.password == "ghp_abc"


def test_token_for_gitlab_uses_oauth2(manager):
    manager.add_credential("gitlab.com", "token", token="glpat")

    creds = manager.handle_credentials("https://gitlab.com/group/repo.git", None, ALLOWED)

    assert (creds.username, creds.password) == ("oauth2", "glpat")


def test_token_for_generic_host(manager):
    manager.add_credential("git.example.com", "token", token="tok")

    creds = manager.handle_credentials("https://git.example.com/r.git", None, ALLOWED)

    assert (creds.username, creds.password) == ("tok", "")


def test_username_password(manager):
    manager.add_credential("example.com", "username_password", username="alice", password="pw")

    creds = manager.handle_credentials("https://example.com/r.git", "bob", ALLOWED)

    assert (creds.username, creds.password) == ("alice", "pw")


def test_unknown_host_or_disallowed_type(manager):
    manager.add_credential("example.com", "token", token="tok")

    assert manager.handle_credentials("https://other.com/r.git", None, ALLOWED) is None
    assert manager.handle_credentials(
        "https://example.com/r.git", None, frozenset({CredentialType.SSH_KEY})
    ) is None


@pytest.mark.parametrize(
    "credential_type, kwargs",
    [
        ("token", {}),
        ("username_password", {"username": "alice"}),
        ("ssh", {"key": "x"}),
    ],
)
def test_invalid_entries_are_rejected(manager, credential_type, kwargs):
    with pytest.raises(CredentialsError):
        manager.add_credential("example.com", credential_type, **kwargs)

    assert manager.list_credentials() == {}


def test_credentials_persist(tmp_path):
    first = CredentialsManager(str(tmp_path / "creds"))
    first.add_credential("example.com", "token", token="tok")

    second = CredentialsManager(str(tmp_path / "creds"))

    assert second.list_credentials() == {"example.com": "token"}
    assert second.get_credential("example.com").token == "tok"

    assert second.remove_credential("example.com")
    assert not second.remove_credential("example.com")
    assert CredentialsManager(str(tmp_path / "creds")).list_credentials() == {}


def test_secrets_are_encrypted_at_rest(tmp_path):
    path = tmp_path / "creds"
    manager = CredentialsManager(str(path), encryption=EncryptionService("master"))
    manager.add_credential("example.com", "username_password", username="alice", password="pw")

    raw = json.loads((path / "credentials.json").read_text())
    assert raw["example.com"]["password"] != "pw"
    assert raw["example.com"]["encrypted"] is True

    reloaded = CredentialsManager(str(path), encryption=EncryptionService("master"))
    assert reloaded.get_credential("example.com").password == "pw"

    with pytest.raises(EncryptionError):
        CredentialsManager(str(path), encryption=EncryptionService("wrong"))

    with pytest.raises(CredentialsError):
        CredentialsManager(str(path))


def test_corrupt_store_starts_empty(tmp_path):
    path = tmp_path / "creds"
    path.mkdir()
    (path / "credentials.json").write_text("{not json")

    assert CredentialsManager(str(path)).list_credentials() == {}
