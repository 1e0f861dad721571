"""
Content Commit Orchestrator
===========================
Compose a single commit that updates and deletes files on a branch.

The workflow:
1. Read the repository state once (default and target branch tips)
2. Create the target branch from a base if it is missing
3. Compare local blob hashes with remote ones, queueing only real changes
4. Submit every change in one createCommitOnBranch call, guarded by the
   head read in step 1

No step is retried. If the branch moves between steps 1 and 4 GitHub
rejects the commit and StaleHeadError reaches the caller, who must run
again against fresh state.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from blob_hash import compute_blob_hash
from file_spec import parse_file_spec, resolve_file_spec
from github_errors import (
    BranchNotFoundError,
    EmptyRepositoryError,
    InvalidSpecError,
)
from github_gateway import (
    ChangeSet,
    CommitRequest,
    CommitResult,
    FileAddition,
    FileDeletion,
    RepositoryGateway,
    RepositoryInfo,
)


logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Commit via API"


@dataclass(frozen=True)
class ContentConfig:
    """Options for one content commit, fixed at startup."""
    separator: str = ":"
    create_branch: bool = True
    base_branch: str = ""
    force: bool = False
    updates: Tuple[str, ...] = ()
    deletes: Tuple[str, ...] = ()
    message: str = DEFAULT_MESSAGE
    trailers: Tuple[Tuple[str, str], ...] = ()


# =============================================================================
# Commit Message
# =============================================================================

def parse_trailer(trailer: str) -> Tuple[str, str]:
    """
    Parse a "Key=value" trailer argument.

    Raises:
        InvalidSpecError: If there is no "=" or the key is empty
    """
    key, found, value = trailer.partition("=")
    key, value = key.strip(), value.strip()
    if not found or not key:
        raise InvalidSpecError(f"invalid trailer '{trailer}' (expected KEY=VALUE)")
    return key, value


def build_commit_message(message: str, trailers: Iterable[Tuple[str, str]] = ()) -> str:
    """
    Append git trailers ("Key: value" lines) to a commit message.

    Args:
        message: Commit message; the first line becomes the headline
        trailers: (key, value) pairs, in order

    Returns:
        The message, followed by a blank line and the trailers if any
    """
    message = message.strip() or DEFAULT_MESSAGE
    lines = [f"{key}: {value}" for key, value in trailers]
    if not lines:
        return message
    return message + "\n\n" + "\n".join(lines)


# =============================================================================
# Orchestrator
# =============================================================================

class ContentOrchestrator:
    """Build and submit one commit through a RepositoryGateway."""

    def __init__(self, gateway: RepositoryGateway, config: ContentConfig):
        self.gateway = gateway
        self.config = config

    def run(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Sequence[str] = (),
    ) -> Optional[CommitResult]:
        """
        Update and delete files on branch in a single commit.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Target branch, created from the base if missing
            files: File-specs to update, ahead of config.updates

        Returns:
            The created commit, or None if every change was a no-op

        Raises:
            ContentError: Any failure; nothing is committed in that case
        """
        if not self.config.separator:
            raise InvalidSpecError("invalid separator: must not be empty")

        updates = list(files) + list(self.config.updates)
        self.check_overlap(updates)

        info = self.gateway.get_repository_info(owner, repo, branch)
        if info.is_empty:
            raise EmptyRepositoryError(owner, repo)

        expected_head = self.resolve_head(owner, repo, branch, info)

        changes = self.build_changes(owner, repo, branch, updates)
        if changes.is_empty():
            logger.info("nothing to do")
            return None

        request = CommitRequest(
            repository=f"{owner}/{repo}",
            branch=branch,
            expected_head_oid=expected_head,
            message=build_commit_message(self.config.message, self.config.trailers),
            additions=tuple(changes.additions),
            deletions=tuple(changes.deletions),
        )
        logger.info(
            "committing %d addition(s) and %d deletion(s) to %s on top of %s",
            len(request.additions), len(request.deletions), branch, expected_head,
        )
        return self.gateway.commit_on_branch(request)

    def check_overlap(self, updates: Sequence[str]) -> None:
        """
        Reject remote paths named both as an update target and a deletion.

        Runs before any remote call, so the outcome never depends on what
        the branch currently holds.
        """
        targets = {parse_file_spec(spec, self.config.separator)[1] for spec in updates}
        overlap = sorted(targets.intersection(self.config.deletes))
        if overlap:
            raise InvalidSpecError(
                "paths queued for both update and deletion: " + ", ".join(f"'{p}'" for p in overlap)
            )

    def resolve_head(self, owner: str, repo: str, branch: str, info: RepositoryInfo) -> str:
        """
        Return the commit the new commit must build on.

        Creates the target branch when it is missing and creation is enabled.
        """
        if info.target_branch.commit:
            return info.target_branch.commit

        if not self.config.create_branch:
            raise BranchNotFoundError(branch)

        logger.debug("creating target branch '%s'", branch)
        if self.config.base_branch:
            base_oid = self.gateway.get_ref_oid(owner, repo, self.config.base_branch)
        else:
            logger.debug("defaulting base branch to '%s'", info.default_branch.name)
            base_oid = info.default_branch.commit

        self.gateway.create_ref(info.node_id, f"refs/heads/{branch}", base_oid)
        return base_oid

    def build_changes(self, owner: str, repo: str, branch: str, updates: Sequence[str]) -> ChangeSet:
        """Queue additions and deletions that would change the branch."""
        changes = ChangeSet()

        for spec in updates:
            file_spec = resolve_file_spec(spec, self.config.separator)
            local_hash = compute_blob_hash(file_spec.content)
            remote_hash = self.gateway.get_file_hash(owner, repo, branch, file_spec.path)
            logger.debug("'%s' local: %s, remote: %s", file_spec.path, local_hash, remote_hash)

            if local_hash != remote_hash or self.config.force:
                logger.debug("'%s' queued for addition", file_spec.path)
                changes.add(FileAddition(
                    path=file_spec.path,
                    contents=base64.b64encode(file_spec.content).decode("ascii"),
                ))
            else:
                logger.debug("'%s' (%s) on target branch: skipping addition", file_spec.path, remote_hash)

        for path in self.config.deletes:
            remote_hash = self.gateway.get_file_hash(owner, repo, branch, path)
            if remote_hash or self.config.force:
                logger.debug("'%s' queued for deletion", path)
                changes.delete(FileDeletion(path=path))
            else:
                logger.debug("'%s' absent on target branch: skipping deletion", path)

        return changes
