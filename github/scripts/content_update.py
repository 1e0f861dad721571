#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "requests>=2.28.0",
# ]
# ///
"""
GitHub Content Updater
======================
Update or delete files on a GitHub branch in one atomic commit.

This script uses the GitHub GraphQL API to:
- Create the target branch from a base branch if it does not exist
- Skip files whose content already matches the branch (blob hash check)
- Commit all remaining additions and deletions with createCommitOnBranch,
  failing if the branch moved while the commit was being prepared

Usage:
    uv run scripts/content_update.py -r owner/repo -b main README.md
    uv run scripts/content_update.py -r owner/repo -b release build/app.json:config/app.json
    uv run scripts/content_update.py -r owner/repo -b cleanup -d old.txt -d tmp/scratch.txt

File-specs:
    <local-path>[<separator><remote-path>]
    Without the separator (default ":") the remote path is the local path.

Environment Variables:
    GHUP_TOKEN or GITHUB_TOKEN - GitHub token (required)
    GHUP_REPO (or GITHUB_REPOSITORY), GHUP_BRANCH, GHUP_MESSAGE, GHUP_TRAILER,
    GHUP_SEPARATOR, GHUP_UPDATE, GHUP_DELETE, GHUP_CREATE_BRANCH,
    GHUP_BASE_BRANCH, GHUP_FORCE, GHUP_TIMEOUT - defaults for the flags
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional, Sequence

from content_orchestrator import (
    DEFAULT_MESSAGE,
    ContentConfig,
    ContentOrchestrator,
    parse_trailer,
)
from github_common import DEFAULT_TIMEOUT, get_token, parse_repo
from github_errors import ContentError
from github_gateway import GraphQLGateway


ENV_PREFIX = "GHUP_"

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


# =============================================================================
# Environment Binding
# =============================================================================

def env_str(name: str, default: str = "", environ: Optional[dict] = None) -> str:
    environ = os.environ if environ is None else environ
    return environ.get(ENV_PREFIX + name, default)


def env_bool(name: str, default: bool, environ: Optional[dict] = None) -> bool:
    """
    Read a boolean from GHUP_<name>.

    Raises:
        ValueError: If the variable holds something other than a boolean word
    """
    value = env_str(name, environ=environ).strip().lower()
    if not value:
        return default
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_PREFIX}{name}: expected a boolean, got '{value}'")


def split_list(values: Sequence[str]) -> List[str]:
    """Flatten comma separated values, dropping empty items."""
    items = []
    for value in values:
        items.extend(item.strip() for item in value.split(",") if item.strip())
    return items


def env_list(name: str, environ: Optional[dict] = None) -> List[str]:
    return split_list([env_str(name, environ=environ)])


# =============================================================================
# Argument Parsing
# =============================================================================

def build_parser(environ: Optional[dict] = None) -> argparse.ArgumentParser:
    """Build the argument parser with defaults taken from the environment."""
    environ = os.environ if environ is None else environ

    parser = argparse.ArgumentParser(
        description="Update or delete files on a GitHub branch in a single commit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Update README.md on main (no commit if unchanged)
  uv run scripts/content_update.py -r owner/repo -b main README.md

  # Upload a local file to a different path, creating the branch from develop
  uv run scripts/content_update.py -r owner/repo -b feature/config \\
      --base-branch develop \\
      build/app.json:config/app.json

  # Delete files and add a trailer to the commit message
  uv run scripts/content_update.py -r owner/repo -b cleanup \\
      -d old.txt -d tmp/scratch.txt \\
      -m "Remove stale files" --trailer "Reviewed-by=ci-bot"
        """
    )

    parser.add_argument(
        "files",
        nargs="*",
        metavar="file-spec",
        help="File-spec to update: <local-path>[<separator><remote-path>]"
    )

    parser.add_argument(
        "--repo", "-r",
        default=env_str("REPO", environ=environ) or environ.get("GITHUB_REPOSITORY", ""),
        help="Repository in owner/repo format"
    )
    parser.add_argument(
        "--branch", "-b",
        default=env_str("BRANCH", environ=environ),
        help="Target branch"
    )

    parser.add_argument(
        "--message", "-m",
        default=env_str("MESSAGE", DEFAULT_MESSAGE, environ=environ),
        help=f"Commit message (default: '{DEFAULT_MESSAGE}')"
    )
    parser.add_argument(
        "--trailer",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Git trailer to append to the commit message (repeatable)"
    )

    parser.add_argument(
        "--separator", "-s",
        default=env_str("SEPARATOR", ":", environ=environ),
        help="File-spec separator (default: ':')"
    )
    parser.add_argument(
        "--update", "-u",
        action="append",
        default=None,
        metavar="FILE_SPEC",
        help="File-spec to update (repeatable, comma separated lists accepted)"
    )
    parser.add_argument(
        "--delete", "-d",
        action="append",
        default=None,
        metavar="PATH",
        help="Remote path to delete (repeatable, comma separated lists accepted)"
    )

    parser.add_argument(
        "--create-branch",
        action=argparse.BooleanOptionalAction,
        default=env_bool("CREATE_BRANCH", True, environ=environ),
        help="Create the target branch if missing"
    )
    parser.add_argument(
        "--base-branch",
        default=env_str("BASE_BRANCH", environ=environ),
        help="Branch to create the target branch from (default: repo's default branch)"
    )
    parser.add_argument(
        "--force", "-f",
        action=argparse.BooleanOptionalAction,
        default=env_bool("FORCE", False, environ=environ),
        help="Queue every update and deletion, even if it changes nothing"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=float(env_str("TIMEOUT", str(DEFAULT_TIMEOUT), environ=environ)),
        help=f"Seconds before an API request is abandoned (default: {DEFAULT_TIMEOUT:g})"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output commit details as JSON"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Log progress to stderr (-vv for debug detail)"
    )

    return parser


def config_from_args(args: argparse.Namespace, environ: Optional[dict] = None) -> ContentConfig:
    """
    Freeze parsed arguments into the orchestrator's configuration.

    List flags given on the command line replace, rather than extend,
    the matching GHUP_* variable.
    """
    def list_option(values: Optional[List[str]], name: str) -> tuple:
        if values is None:
            return tuple(env_list(name, environ=environ))
        return tuple(split_list(values))

    return ContentConfig(
        separator=args.separator,
        create_branch=args.create_branch,
        base_branch=args.base_branch,
        force=args.force,
        updates=list_option(args.update, "UPDATE"),
        deletes=list_option(args.delete, "DELETE"),
        message=args.message,
        trailers=tuple(parse_trailer(t) for t in list_option(args.trailer, "TRAILER")),
    )


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s: %(message)s")


# =============================================================================
# Main Entry Point
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Main entry point for the content updater.

    Parses command-line arguments, commits the changes and prints the
    commit URL. Exits with code 1 on any failure.
    """
    try:
        parser = build_parser()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.repo:
        parser.error("--repo is required (or set GHUP_REPO)")
    if not args.branch:
        parser.error("--branch is required (or set GHUP_BRANCH)")

    token = get_token()
    if not token:
        print("Error: GITHUB_TOKEN environment variable not set", file=sys.stderr)
        print("Create a token at: https://github.com/settings/tokens", file=sys.stderr)
        sys.exit(1)

    try:
        owner, repo = parse_repo(args.repo)
        config = config_from_args(args)
        orchestrator = ContentOrchestrator(GraphQLGateway(token, timeout=args.timeout), config)
        result = orchestrator.run(owner, repo, args.branch, args.files)
    except ContentError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    if result is None:
        return

    if args.json:
        print(json.dumps({"oid": result.oid, "url": result.url}, indent=2))
    else:
        print(result.url)


if __name__ == "__main__":
    main()
