"""
Git Client Exceptions

Error taxonomy shared by the client, the credential store and the
remote URL resolver.
"""

import re
from typing import Optional

from git.exc import GitCommandError


_USERINFO = re.compile(r"(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*://)[^/@\s]+@")


def redact(text: str) -> str:
    """Strip userinfo (user:password@) from any URL found in text"""
    return _USERINFO.sub(r"\g<scheme>***@", text)


class GitClientError(Exception):
    """Base exception for the git client"""
    pass


class InvalidArgument(GitClientError, ValueError):
    """Raised when a required argument is empty or malformed"""
    pass


class EngineFailure(GitClientError):
    """Raised when the underlying Git engine reports a failure"""

    def __init__(self, message: str, reason: str = "unknown", status: Optional[int] = None):
        super().__init__(redact(message))
        self.reason = reason
        self.status = status

    @classmethod
    def from_command_error(cls, error: GitCommandError, prefix: str = "Git command failed"):
        """Build a failure from a GitCommandError, classifying its stderr"""
        stderr = str(error.stderr or "")
        reason = classify_failure(stderr or str(error))
        detail = stderr.strip().strip("'") or str(error)
        if "fatal:" in detail:
            detail = detail.split("fatal:")[-1].strip()
        return cls(f"{prefix}: {detail}", reason=reason, status=error.status)


class CheckoutError(EngineFailure):
    """Raised when git refuses to switch the working tree"""
    pass


class RemoteNotFound(EngineFailure):
    """Raised when a named remote is not configured"""

    def __init__(self, remote_name: str):
        super().__init__(f"Remote '{remote_name}' not found", reason="not_found")
        self.remote_name = remote_name


class CredentialsError(GitClientError, ValueError):
    """Raised when a credential entry is invalid or cannot be stored"""
    pass


class EncryptionError(CredentialsError):
    """Raised when stored secrets cannot be decrypted"""
    pass


def classify_failure(message: str) -> str:
    """Map git's error output to a coarse failure reason"""
    lowered = message.lower()
    if "authentication failed" in lowered or "invalid username or password" in lowered \
            or "could not read username" in lowered:
        return "authentication"
    if "repository not found" in lowered or "does not exist" in lowered \
            or "does not appear to be a git repository" in lowered \
            or "couldn't find remote ref" in lowered:
        return "not_found"
    if "permission denied" in lowered:
        return "permission"
    if "could not resolve host" in lowered or "unable to access" in lowered \
            or "connection refused" in lowered or "timed out" in lowered:
        return "network"
    return "unknown"
