"""
Content commit exceptions.

Library code raises these; only the command-line entry point turns them
into an error message and a non-zero exit status.
"""

from typing import Optional


# =============================================================================
# Base
# =============================================================================

class ContentError(Exception):
    """Base exception for content commit failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


# =============================================================================
# Local Errors
# =============================================================================

class InvalidSpecError(ContentError):
    """Raised for a bad separator, file-spec or trailer."""


class NotFoundError(ContentError):
    """Raised when a local source file is missing or unreadable."""
    def __init__(self, path: str, reason: str = "no such file"):
        self.path = path
        super().__init__(f"cannot read local file '{path}': {reason}")


# =============================================================================
# Repository State Errors
# =============================================================================

class EmptyRepositoryError(ContentError):
    """Raised when the target repository has no commits to build on."""
    def __init__(self, owner: str, repo: str):
        super().__init__(f"cannot push to empty repository {owner}/{repo}")


class BranchNotFoundError(ContentError):
    """Raised when the target branch is absent and may not be created."""
    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"target branch '{branch}' does not exist")


# =============================================================================
# Remote Errors
# =============================================================================

class RemoteError(ContentError):
    """Raised for GitHub API and transport failures."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RefExistsError(RemoteError):
    """Raised when the ref to create already exists."""


class InvalidBaseError(RemoteError):
    """Raised when a new branch cannot start from the requested base."""


class StaleHeadError(RemoteError):
    """Raised when the branch moved since its head was read."""


class CommitValidationError(RemoteError):
    """Raised when GitHub rejects commit paths or contents."""


class PermissionDeniedError(RemoteError):
    """Raised when the token lacks access to the repository."""
