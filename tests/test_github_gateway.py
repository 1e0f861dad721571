"""Tests for the GraphQL gateway, with requests.post patched out."""

from unittest.mock import MagicMock, patch

import pytest

from github_common import GRAPHQL_URL
from github_errors import (
    CommitValidationError,
    InvalidBaseError,
    PermissionDeniedError,
    RefExistsError,
    RemoteError,
    StaleHeadError,
)
from github_gateway import (
    BranchInfo,
    CommitRequest,
    CommitResult,
    FileAddition,
    FileDeletion,
    GraphQLGateway,
    split_commit_message,
)


def make_response(body=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    response.text = ""
    response.headers = {}
    return response


@pytest.fixture
def post():
    with patch("github_common.requests.post") as mock_post:
        yield mock_post


@pytest.fixture
def gateway():
    return GraphQLGateway("t0ken", timeout=5)


def sent_variables(post):
    return post.call_args.kwargs["json"]["variables"]


# =============================================================================
# Queries
# =============================================================================

@pytest.mark.unit
def test_get_repository_info_parses_branches(post, gateway):
    post.return_value = make_response({"data": {"repository": {
        "id": "R_123",
        "isEmpty": False,
        "defaultBranchRef": {"name": "main", "target": {"oid": "aaa"}},
        "ref": {"name": "feature", "target": {"oid": "bbb"}},
    }}})

    info = gateway.get_repository_info("octo", "repo", "feature")

    assert info.node_id == "R_123"
    assert info.is_empty is False
    assert info.default_branch == BranchInfo("main", "aaa")
    assert info.target_branch == BranchInfo("feature", "bbb")
    assert sent_variables(post) == {"owner": "octo", "repo": "repo", "ref": "refs/heads/feature"}
    assert post.call_args.args[0] == GRAPHQL_URL
    assert post.call_args.kwargs["headers"]["Authorization"] == "bearer t0ken"
    assert post.call_args.kwargs["timeout"] == 5


@pytest.mark.unit
def test_get_repository_info_missing_target_branch(post, gateway):
    post.return_value = make_response({"data": {"repository": {
        "id": "R_123",
        "isEmpty": False,
        "defaultBranchRef": {"name": "main", "target": {"oid": "aaa"}},
        "ref": None,
    }}})

    info = gateway.get_repository_info("octo", "repo", "feature")

    assert info.target_branch == BranchInfo("feature", "")


@pytest.mark.unit
def test_get_repository_info_empty_repository(post, gateway):
    post.return_value = make_response({"data": {"repository": {
        "id": "R_123", "isEmpty": True, "defaultBranchRef": None, "ref": None,
    }}})

    info = gateway.get_repository_info("octo", "repo", "main")

    assert info.is_empty is True
    assert info.default_branch == BranchInfo("", "")


@pytest.mark.unit
def test_unknown_repository_raises_remote_error(post, gateway):
    post.return_value = make_response({
        "data": {"repository": None},
        "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a Repository"}],
    })

    with pytest.raises(RemoteError, match="Could not resolve"):
        gateway.get_repository_info("octo", "nope", "main")


@pytest.mark.unit
def test_unauthorized_raises_permission_denied(post, gateway):
    post.return_value = make_response({"message": "Bad credentials"}, status_code=401)

    with pytest.raises(PermissionDeniedError) as exc_info:
        gateway.get_file_hash("octo", "repo", "main", "a.txt")

    assert exc_info.value.status_code == 401


@pytest.mark.unit
def test_get_ref_oid(post, gateway):
    post.return_value = make_response({"data": {"repository": {"ref": {"target": {"oid": "ddd"}}}}})

    assert gateway.get_ref_oid("octo", "repo", "develop") == "ddd"
    assert sent_variables(post)["ref"] == "refs/heads/develop"


@pytest.mark.unit
def test_get_ref_oid_missing_branch_is_invalid_base(post, gateway):
    post.return_value = make_response({"data": {"repository": {"ref": None}}})

    with pytest.raises(InvalidBaseError):
        gateway.get_ref_oid("octo", "repo", "develop")


@pytest.mark.unit
def test_get_file_hash_returns_blob_oid(post, gateway):
    post.return_value = make_response({"data": {"repository": {"object": {"oid": "fff"}}}})

    assert gateway.get_file_hash("octo", "repo", "main", "docs/a.md") == "fff"
    assert sent_variables(post)["expression"] == "main:docs/a.md"


@pytest.mark.unit
def test_get_file_hash_absent_path_is_empty(post, gateway):
    post.return_value = make_response({"data": {"repository": {"object": None}}})

    assert gateway.get_file_hash("octo", "repo", "main", "missing.txt") == ""


@pytest.mark.unit
def test_queries_retry_server_errors(post, gateway):
    post.side_effect = [
        make_response(status_code=502),
        make_response({"data": {"repository": {"object": None}}}),
    ]

    with patch("github_common.time.sleep") as sleep:
        assert gateway.get_file_hash("octo", "repo", "main", "a.txt") == ""

    assert post.call_count == 2
    sleep.assert_called_once()


# =============================================================================
# Mutations
# =============================================================================

@pytest.mark.unit
def test_create_ref_sends_input(post, gateway):
    post.return_value = make_response({"data": {"createRef": {"ref": {"name": "feature"}}}})

    gateway.create_ref("R_123", "refs/heads/feature", "aaa")

    assert sent_variables(post) == {
        "input": {"repositoryId": "R_123", "name": "refs/heads/feature", "oid": "aaa"}
    }


@pytest.mark.unit
def test_create_ref_existing_ref(post, gateway):
    post.return_value = make_response({"errors": [{
        "type": "UNPROCESSABLE",
        "message": 'A ref named "refs/heads/feature" already exists in the repository.',
    }]})

    with pytest.raises(RefExistsError):
        gateway.create_ref("R_123", "refs/heads/feature", "aaa")


@pytest.mark.unit
def test_create_ref_invalid_oid(post, gateway):
    post.return_value = make_response({"errors": [{
        "type": "UNPROCESSABLE", "message": "Object does not exist",
    }]})

    with pytest.raises(InvalidBaseError):
        gateway.create_ref("R_123", "refs/heads/feature", "zzz")


@pytest.mark.unit
def test_mutations_are_not_retried(post, gateway):
    post.return_value = make_response(status_code=502)

    with patch("github_common.time.sleep") as sleep:
        with pytest.raises(RemoteError) as exc_info:
            gateway.create_ref("R_123", "refs/heads/feature", "aaa")

    assert exc_info.value.status_code == 502
    assert post.call_count == 1
    sleep.assert_not_called()


def commit_request():
    return CommitRequest(
        repository="octo/repo",
        branch="feature",
        expected_head_oid="aaa",
        message="Update files\n\nReviewed-by: ci",
        additions=(FileAddition("b.txt", "bmV3Cg=="),),
        deletions=(FileDeletion("old.txt"),),
    )


@pytest.mark.unit
def test_commit_on_branch_sends_single_mutation(post, gateway):
    post.return_value = make_response({"data": {"createCommitOnBranch": {"commit": {
        "oid": "ccc", "url": "https://github.com/octo/repo/commit/ccc",
    }}}})

    result = gateway.commit_on_branch(commit_request())

    assert result == CommitResult("ccc", "https://github.com/octo/repo/commit/ccc")
    assert post.call_count == 1
    assert sent_variables(post) == {"input": {
        "branch": {"repositoryNameWithOwner": "octo/repo", "branchName": "feature"},
        "message": {"headline": "Update files", "body": "Reviewed-by: ci"},
        "expectedHeadOid": "aaa",
        "fileChanges": {
            "additions": [{"path": "b.txt", "contents": "bmV3Cg=="}],
            "deletions": [{"path": "old.txt"}],
        },
    }}


@pytest.mark.unit
def test_commit_on_branch_stale_head(post, gateway):
    post.return_value = make_response({"errors": [{
        "type": "STALE_DATA",
        "message": 'Expected branch to point to "aaa" but it did not. Pull and try again.',
    }]})

    with pytest.raises(StaleHeadError, match="Expected branch to point to"):
        gateway.commit_on_branch(commit_request())

    assert post.call_count == 1


@pytest.mark.unit
@pytest.mark.parametrize("error_type, exception", [
    ("UNPROCESSABLE", CommitValidationError),
    ("FORBIDDEN", PermissionDeniedError),
    ("SOMETHING_ELSE", RemoteError),
])
def test_commit_on_branch_error_mapping(post, gateway, error_type, exception):
    post.return_value = make_response({"errors": [{"type": error_type, "message": "rejected"}]})

    with pytest.raises(exception):
        gateway.commit_on_branch(commit_request())


@pytest.mark.unit
def test_split_commit_message_headline_only():
    assert split_commit_message("  One line  \n") == {"headline": "One line"}


# =============================================================================
# Rate limits
# =============================================================================

def rate_limited_response(message="API rate limit exceeded for user", headers=None, status_code=403):
    response = make_response({"message": message}, status_code=status_code)
    response.text = message
    response.headers = headers or {}
    return response


@pytest.mark.unit
def test_queries_wait_for_retry_after(post, gateway):
    post.side_effect = [
        rate_limited_response(headers={"Retry-After": "7"}),
        make_response({"data": {"repository": {"object": {"oid": "fff"}}}}),
    ]

    with patch("github_common.time.sleep") as sleep, \
            patch("github_common.random.uniform", return_value=0):
        assert gateway.get_file_hash("octo", "repo", "main", "a.txt") == "fff"

    sleep.assert_called_once_with(7)
    assert post.call_count == 2


@pytest.mark.unit
def test_non_integer_rate_limit_headers_fall_back_to_backoff(post, gateway):
    post.side_effect = [
        rate_limited_response(headers={"Retry-After": "soon", "X-RateLimit-Reset": "later"}),
        make_response({"data": {"repository": {"object": None}}}),
    ]

    with patch("github_common.time.sleep") as sleep, \
            patch("github_common.random.uniform", return_value=0):
        assert gateway.get_file_hash("octo", "repo", "main", "a.txt") == ""

    sleep.assert_called_once_with(60)


@pytest.mark.unit
def test_secondary_rate_limit_on_mutation_is_not_permission_denied(post, gateway):
    post.return_value = rate_limited_response("You have exceeded a secondary rate limit")

    with patch("github_common.time.sleep") as sleep:
        with pytest.raises(RemoteError) as exc_info:
            gateway.create_ref("R_123", "refs/heads/feature", "aaa")

    assert not isinstance(exc_info.value, PermissionDeniedError)
    assert exc_info.value.status_code == 403
    assert "rate limit" in exc_info.value.message
    assert post.call_count == 1
    sleep.assert_not_called()


@pytest.mark.unit
def test_query_rate_limit_after_retries_is_not_permission_denied(post, gateway):
    post.return_value = rate_limited_response()

    with patch("github_common.time.sleep"):
        with pytest.raises(RemoteError) as exc_info:
            gateway.get_file_hash("octo", "repo", "main", "a.txt")

    assert not isinstance(exc_info.value, PermissionDeniedError)
    assert post.call_count == 3


@pytest.mark.unit
def test_plain_forbidden_is_permission_denied(post, gateway):
    post.return_value = make_response({"message": "Resource not accessible by integration"}, status_code=403)

    with pytest.raises(PermissionDeniedError):
        gateway.commit_on_branch(commit_request())
