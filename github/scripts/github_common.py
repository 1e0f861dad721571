"""
GitHub API Common Utilities
===========================
Shared functions used by the content commit scripts.

This module provides:
- Token retrieval from environment
- HTTP header construction with explicit API versioning
- Repository string parsing
- A retrying POST helper and a GraphQL request helper

API Versioning:
    Uses explicit GitHub API versioning (2022-11-28) via the
    X-GitHub-Api-Version header for long-term stability.
    See: https://docs.github.com/en/rest/about-the-rest-api/api-versions
"""

import logging
import os
import random
import time
from typing import Optional, Tuple

import requests

from github_errors import InvalidSpecError, PermissionDeniedError, RemoteError


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# GitHub GraphQL (v4) endpoint - every query and mutation is POSTed here
GRAPHQL_URL = "https://api.github.com/graphql"

# Explicit API version for stability
API_VERSION = "2022-11-28"

# Seconds before a single HTTP request is abandoned
DEFAULT_TIMEOUT = 30.0


# =============================================================================
# Authentication Functions
# =============================================================================

def get_token() -> Optional[str]:
    """
    Retrieve GitHub token from environment variables.

    GHUP_TOKEN takes precedence so that a pipeline can hand this tool a
    different token than the one exported as GITHUB_TOKEN.

    Returns:
        The token, or None if neither variable is set
    """
    return os.environ.get("GHUP_TOKEN") or os.environ.get("GITHUB_TOKEN") or None


# =============================================================================
# HTTP Header Functions
# =============================================================================

def get_headers(token: str) -> dict:
    """
    Build HTTP headers for GitHub API requests.

    Args:
        token: GitHub Personal Access Token

    Returns:
        Dictionary of headers for use with requests library
    """
    return {
        "Authorization": f"bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
        # User-Agent is required by GitHub API
        "User-Agent": "ghup-content",
    }


# =============================================================================
# Repository Parsing Functions
# =============================================================================

def parse_repo(repo_string: str) -> Tuple[str, str]:
    """
    Parse owner/repo string into components.

    Args:
        repo_string: Repository in "owner/repo" format

    Returns:
        Tuple of (owner, repo) strings

    Raises:
        InvalidSpecError: If the format is invalid
    """
    parts = repo_string.split("/")

    if len(parts) != 2 or not all(parts):
        raise InvalidSpecError(
            f"invalid repository '{repo_string}' (expected owner/repo, e.g. octocat/hello-world)"
        )

    return parts[0], parts[1]


# =============================================================================
# API Request Helpers
# =============================================================================

def is_rate_limited(response: requests.Response) -> bool:
    """True for 403/429 responses that report a primary or secondary rate limit."""
    if response.status_code not in (403, 429):
        return False
    response_text = response.text.lower()
    return 'rate limit' in response_text or 'abuse' in response_text


def _header_int(response: requests.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("ignoring non-integer %s header: %r", name, value)
        return None


def rate_limit_delay(response: requests.Response, attempt: int) -> float:
    """
    Seconds to wait before retrying a rate-limited request.

    Prefers Retry-After, then X-RateLimit-Reset, then exponential backoff,
    adding jitter and capping the wait at 5 minutes.
    """
    retry_after = _header_int(response, 'Retry-After')
    reset_time = _header_int(response, 'X-RateLimit-Reset')
    if retry_after is not None:
        sleep_time = retry_after
    elif reset_time is not None:
        sleep_time = max(0, reset_time - int(time.time()))
    else:
        sleep_time = (2 ** attempt) * 60

    return min(sleep_time + random.uniform(0, 5), 300)


def post_with_retry(
    url: str,
    headers: dict,
    max_retries: int = 3,
    **kwargs
) -> requests.Response:
    """
    POST with retry logic for rate limits and transient errors.

    Implements exponential backoff with jitter to handle:
    - GitHub API rate limits (403/429 with rate limit message)
    - Transient server errors (5xx status codes)

    Args:
        url: Full URL to request
        headers: HTTP headers dictionary
        max_retries: Maximum number of attempts (1 disables retrying)
        **kwargs: Additional arguments passed to requests (json, timeout, etc.)

    Returns:
        requests.Response object from the final attempt

    Raises:
        RemoteError: If the transport itself fails (connection, timeout)

    Note:
        This function does NOT raise for HTTP error statuses.
        The caller should check response.status_code.
    """
    response = None

    for attempt in range(max_retries):
        try:
            response = requests.post(url, headers=headers, **kwargs)
        except requests.RequestException as e:
            raise RemoteError(f"request to {url} failed: {e}") from e

        if is_rate_limited(response) and attempt < max_retries - 1:
            sleep_time = rate_limit_delay(response, attempt)
            logger.warning("Rate limited. Waiting %.1fs before retry...", sleep_time)
            time.sleep(sleep_time)
            continue

        if response.status_code >= 500 and attempt < max_retries - 1:
            sleep_time = (2 ** attempt) + random.uniform(0, 1)
            logger.warning(
                "Server error %d. Retrying in %.1fs...", response.status_code, sleep_time
            )
            time.sleep(sleep_time)
            continue

        break

    return response


def _response_message(response: requests.Response) -> str:
    try:
        return response.json().get("message", "Unknown error")
    except (ValueError, AttributeError):
        return response.text or "Unknown error"


def graphql_request(
    token: str,
    query: str,
    variables: dict,
    mutation: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict:
    """
    Send a GraphQL v4 document and return the decoded response body.

    Queries go through the retrying helper; mutations are sent exactly
    once because a lost response does not mean the write did not happen.

    Args:
        token: GitHub Personal Access Token
        query: GraphQL document
        variables: Variables referenced by the document
        mutation: True for write operations
        timeout: Per-request timeout in seconds

    Returns:
        The full response body, with "data" and possibly "errors" keys

    Raises:
        PermissionDeniedError: On 401/403 responses other than rate limits
        RemoteError: On rate limits and any other non-2xx response or undecodable body
    """
    response = post_with_retry(
        GRAPHQL_URL,
        get_headers(token),
        max_retries=1 if mutation else 3,
        json={"query": query, "variables": variables},
        timeout=timeout,
    )

    if is_rate_limited(response):
        raise RemoteError(
            f"GitHub API rate limit exceeded ({response.status_code}): {_response_message(response)}",
            status_code=response.status_code,
        )

    if response.status_code in (401, 403):
        raise PermissionDeniedError(
            f"GitHub API denied access ({response.status_code}): {_response_message(response)}",
            status_code=response.status_code,
        )

    if not 200 <= response.status_code < 300:
        raise RemoteError(
            f"GitHub API returned {response.status_code}: {_response_message(response)}",
            status_code=response.status_code,
        )

    try:
        body = response.json()
    except ValueError as e:
        raise RemoteError(
            f"GitHub API returned an undecodable body: {e}",
            status_code=response.status_code,
        ) from e

    if not isinstance(body, dict):
        raise RemoteError("GitHub API returned an unexpected body", status_code=response.status_code)

    return body
