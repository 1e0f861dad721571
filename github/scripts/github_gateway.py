"""
GitHub Repository Gateway
=========================
The remote operations a content commit needs, behind an abstract
interface, plus the adapter that performs them with the GitHub GraphQL
(v4) API.

Request and response shapes are plain frozen dataclasses so callers never
depend on the wire format.

GraphQL reference:
    https://docs.github.com/en/graphql/reference/mutations#createcommitonbranch
"""

import abc
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from github_common import DEFAULT_TIMEOUT, graphql_request
from github_errors import (
    CommitValidationError,
    InvalidBaseError,
    InvalidSpecError,
    PermissionDeniedError,
    RefExistsError,
    RemoteError,
    StaleHeadError,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class BranchInfo:
    """A branch name and its tip commit; commit is "" if the branch is absent."""
    name: str
    commit: str = ""


@dataclass(frozen=True)
class RepositoryInfo:
    """Snapshot of the repository state a commit is built against."""
    node_id: str
    is_empty: bool
    default_branch: BranchInfo
    target_branch: BranchInfo


@dataclass(frozen=True)
class FileAddition:
    path: str
    contents: str  # base64


@dataclass(frozen=True)
class FileDeletion:
    path: str


@dataclass
class ChangeSet:
    """
    Ordered additions and deletions for one commit.

    A path may be queued several times as an addition (the last one wins
    at GitHub) but never as both an addition and a deletion.
    """
    additions: List[FileAddition] = field(default_factory=list)
    deletions: List[FileDeletion] = field(default_factory=list)

    def add(self, addition: FileAddition) -> None:
        if any(d.path == addition.path for d in self.deletions):
            raise InvalidSpecError(f"'{addition.path}' is queued for both update and deletion")
        self.additions.append(addition)

    def delete(self, deletion: FileDeletion) -> None:
        if any(a.path == deletion.path for a in self.additions):
            raise InvalidSpecError(f"'{deletion.path}' is queued for both update and deletion")
        self.deletions.append(deletion)

    def is_empty(self) -> bool:
        return not self.additions and not self.deletions


@dataclass(frozen=True)
class CommitRequest:
    """A single commit on a branch, guarded by the head it expects."""
    repository: str  # owner/name
    branch: str
    expected_head_oid: str
    message: str
    additions: Tuple[FileAddition, ...] = ()
    deletions: Tuple[FileDeletion, ...] = ()


@dataclass(frozen=True)
class CommitResult:
    oid: str
    url: str


# =============================================================================
# Interface
# =============================================================================

class RepositoryGateway(abc.ABC):
    """Remote repository operations used by the content orchestrator."""

    @abc.abstractmethod
    def get_repository_info(self, owner: str, repo: str, branch: str) -> RepositoryInfo:
        """Fetch repository id, emptiness and the default and target branch tips."""

    @abc.abstractmethod
    def get_ref_oid(self, owner: str, repo: str, branch: str) -> str:
        """
        Resolve a branch name to its tip commit.

        Raises:
            InvalidBaseError: If the branch does not exist
        """

    @abc.abstractmethod
    def create_ref(self, repository_id: str, ref_name: str, oid: str) -> None:
        """
        Create a ref (e.g. "refs/heads/feature") pointing at oid.

        Raises:
            RefExistsError: If the ref already exists
            InvalidBaseError: If oid is not a valid starting commit
        """

    @abc.abstractmethod
    def get_file_hash(self, owner: str, repo: str, branch: str, path: str) -> str:
        """Return the blob oid at path on branch, or "" if there is none."""

    @abc.abstractmethod
    def commit_on_branch(self, request: CommitRequest) -> CommitResult:
        """
        Create one commit with all changes in request.

        Raises:
            StaleHeadError: If the branch no longer points at expected_head_oid
            CommitValidationError: If GitHub rejects a path or content
            PermissionDeniedError: If the token may not push
        """


# =============================================================================
# GraphQL Documents
# =============================================================================

REPOSITORY_INFO_QUERY = """
query($owner: String!, $repo: String!, $ref: String!) {
  repository(owner: $owner, name: $repo) {
    id
    isEmpty
    defaultBranchRef { name target { oid } }
    ref(qualifiedName: $ref) { name target { oid } }
  }
}
"""

REF_OID_QUERY = """
query($owner: String!, $repo: String!, $ref: String!) {
  repository(owner: $owner, name: $repo) {
    ref(qualifiedName: $ref) { target { oid } }
  }
}
"""

FILE_HASH_QUERY = """
query($owner: String!, $repo: String!, $expression: String!) {
  repository(owner: $owner, name: $repo) {
    object(expression: $expression) { ... on Blob { oid } }
  }
}
"""

CREATE_REF_MUTATION = """
mutation($input: CreateRefInput!) {
  createRef(input: $input) { ref { name } }
}
"""

CREATE_COMMIT_MUTATION = """
mutation($input: CreateCommitOnBranchInput!) {
  createCommitOnBranch(input: $input) { commit { oid url } }
}
"""

PERMISSION_ERROR_TYPES = ("FORBIDDEN", "INSUFFICIENT_SCOPES")


def split_commit_message(message: str) -> dict:
    """
    Split a commit message into the CommitMessage input shape.

    The first line is the headline; the rest, stripped, is the body.
    """
    headline, _, body = message.strip().partition("\n")
    result = {"headline": headline.strip()}
    body = body.strip()
    if body:
        result["body"] = body
    return result


def _error_summary(errors: list) -> str:
    return "; ".join(e.get("message", "unknown error") for e in errors)


def _error_types(errors: list) -> set:
    return {e.get("type") for e in errors if e.get("type")}


# =============================================================================
# GraphQL Adapter
# =============================================================================

class GraphQLGateway(RepositoryGateway):
    """RepositoryGateway backed by the GitHub GraphQL API."""

    def __init__(self, token: str, timeout: float = DEFAULT_TIMEOUT):
        self.token = token
        self.timeout = timeout

    def _query(self, query: str, variables: dict, operation: str) -> dict:
        body = graphql_request(self.token, query, variables, timeout=self.timeout)
        errors = body.get("errors") or []
        if errors:
            message = f"{operation} failed: {_error_summary(errors)}"
            if _error_types(errors) & set(PERMISSION_ERROR_TYPES):
                raise PermissionDeniedError(message)
            raise RemoteError(message)
        return body.get("data") or {}

    def _repository(self, data: dict, owner: str, repo: str) -> dict:
        repository = data.get("repository")
        if repository is None:
            raise RemoteError(f"repository {owner}/{repo} not found")
        return repository

    def get_repository_info(self, owner: str, repo: str, branch: str) -> RepositoryInfo:
        data = self._query(
            REPOSITORY_INFO_QUERY,
            {"owner": owner, "repo": repo, "ref": f"refs/heads/{branch}"},
            f"repository lookup for {owner}/{repo}",
        )
        repository = self._repository(data, owner, repo)

        default_ref = repository.get("defaultBranchRef") or {}
        target_ref = repository.get("ref") or {}

        return RepositoryInfo(
            node_id=repository["id"],
            is_empty=bool(repository.get("isEmpty")),
            default_branch=BranchInfo(
                name=default_ref.get("name", ""),
                commit=(default_ref.get("target") or {}).get("oid", ""),
            ),
            target_branch=BranchInfo(
                name=branch,
                commit=(target_ref.get("target") or {}).get("oid", ""),
            ),
        )

    def get_ref_oid(self, owner: str, repo: str, branch: str) -> str:
        data = self._query(
            REF_OID_QUERY,
            {"owner": owner, "repo": repo, "ref": f"refs/heads/{branch}"},
            f"ref lookup for '{branch}'",
        )
        ref = self._repository(data, owner, repo).get("ref")
        if not ref:
            raise InvalidBaseError(f"base branch '{branch}' does not exist in {owner}/{repo}")
        return ref["target"]["oid"]

    def get_file_hash(self, owner: str, repo: str, branch: str, path: str) -> str:
        data = self._query(
            FILE_HASH_QUERY,
            {"owner": owner, "repo": repo, "expression": f"{branch}:{path}"},
            f"blob lookup for '{path}'",
        )
        # Trees and missing paths both come back without an oid
        blob = self._repository(data, owner, repo).get("object") or {}
        return blob.get("oid", "")

    def create_ref(self, repository_id: str, ref_name: str, oid: str) -> None:
        logger.info("creating %s at %s", ref_name, oid)
        body = graphql_request(
            self.token,
            CREATE_REF_MUTATION,
            {"input": {"repositoryId": repository_id, "name": ref_name, "oid": oid}},
            mutation=True,
            timeout=self.timeout,
        )
        errors = body.get("errors") or []
        if not errors:
            return

        message = f"cannot create {ref_name}: {_error_summary(errors)}"
        types = _error_types(errors)
        if "already exists" in message.lower():
            raise RefExistsError(message)
        if types & set(PERMISSION_ERROR_TYPES):
            raise PermissionDeniedError(message)
        if types & {"UNPROCESSABLE", "NOT_FOUND"}:
            raise InvalidBaseError(message)
        raise RemoteError(message)

    def commit_on_branch(self, request: CommitRequest) -> CommitResult:
        commit_input = {
            "branch": {
                "repositoryNameWithOwner": request.repository,
                "branchName": request.branch,
            },
            "message": split_commit_message(request.message),
            "expectedHeadOid": request.expected_head_oid,
            "fileChanges": {
                "additions": [
                    {"path": a.path, "contents": a.contents} for a in request.additions
                ],
                "deletions": [{"path": d.path} for d in request.deletions],
            },
        }

        body = graphql_request(
            self.token,
            CREATE_COMMIT_MUTATION,
            {"input": commit_input},
            mutation=True,
            timeout=self.timeout,
        )
        errors = body.get("errors") or []
        if errors:
            message = f"commit to '{request.branch}' failed: {_error_summary(errors)}"
            types = _error_types(errors)
            if "STALE_DATA" in types or "expected branch to point to" in message.lower():
                raise StaleHeadError(message)
            if types & set(PERMISSION_ERROR_TYPES):
                raise PermissionDeniedError(message)
            if "UNPROCESSABLE" in types:
                raise CommitValidationError(message)
            raise RemoteError(message)

        commit = ((body.get("data") or {}).get("createCommitOnBranch") or {}).get("commit")
        if not commit:
            raise RemoteError(f"commit to '{request.branch}' returned no commit")

        return CommitResult(oid=commit["oid"], url=commit["url"])
