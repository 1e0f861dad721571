"""Shared fixtures: an in-memory RepositoryGateway."""

import pytest

from github_errors import InvalidBaseError
from github_gateway import (
    BranchInfo,
    CommitResult,
    RepositoryGateway,
    RepositoryInfo,
)


class FakeGateway(RepositoryGateway):
    """Canned repository state; records every call it receives."""

    def __init__(
        self,
        target_commit="head000",
        default_branch="main",
        default_commit="main000",
        is_empty=False,
        refs=None,
        files=None,
        commit_error=None,
    ):
        self.info = RepositoryInfo(
            node_id="R_node",
            is_empty=is_empty,
            default_branch=BranchInfo(default_branch, default_commit),
            target_branch=BranchInfo("feature", target_commit),
        )
        self.refs = dict(refs or {})
        self.files = dict(files or {})
        self.commit_error = commit_error
        self.calls = []
        self.commits = []

    def get_repository_info(self, owner, repo, branch):
        self.calls.append(("get_repository_info", owner, repo, branch))
        return self.info

    def get_ref_oid(self, owner, repo, branch):
        self.calls.append(("get_ref_oid", branch))
        if branch not in self.refs:
            raise InvalidBaseError(f"base branch '{branch}' does not exist")
        return self.refs[branch]

    def create_ref(self, repository_id, ref_name, oid):
        self.calls.append(("create_ref", repository_id, ref_name, oid))

    def get_file_hash(self, owner, repo, branch, path):
        self.calls.append(("get_file_hash", branch, path))
        return self.files.get(path, "")

    def commit_on_branch(self, request):
        self.calls.append(("commit_on_branch",))
        self.commits.append(request)
        if self.commit_error is not None:
            raise self.commit_error
        return CommitResult(oid="c0ffee", url="https://github.com/octo/repo/commit/c0ffee")

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def make_gateway():
    return FakeGateway
