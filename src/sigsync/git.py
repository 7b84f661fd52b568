"""
Thin git subprocess layer.

Every git call in sigsync goes through run_git so that debug tracing
and error wrapping happen in exactly one place.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional

from .errors import GitError

logger = logging.getLogger("sigsync.git")

# Never let git stop and ask for credentials or a passphrase.
_QUIET_ENV = {"GIT_TERMINAL_PROMPT": "0"}


def run_git(
    *args: str,
    cwd: Optional[Path] = None,
    check: bool = True,
    env: Optional[Mapping[str, str]] = None,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the completed process.

    Args:
        *args: Arguments passed after ``git``.
        cwd: Working directory for the command.
        check: Raise GitError on a non-zero exit code.
        env: Extra environment variables layered over os.environ.

    Returns:
        The CompletedProcess with text stdout/stderr.

    Raises:
        GitError: If check is set and git fails.
    """
    full_env = os.environ.copy()
    full_env.update(_QUIET_ENV)
    if env:
        full_env.update(env)

    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        capture_output=True,
        text=True,
        check=False,
        env=full_env,
    )
    if check and result.returncode != 0:
        raise GitError(args, result.returncode, result.stderr)
    return result


def rev_parse(repo: Path, rev: str) -> Optional[str]:
    """Resolve a revision to a full object id, or None if it does not exist."""
    result = run_git(
        "rev-parse", "-q", "--verify", f"{rev}^{{object}}",
        cwd=repo, check=False,
    )
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def object_type(repo: Path, sha: str) -> str:
    """Return the git object type (commit, tag, ...) of an object id."""
    return run_git("cat-file", "-t", sha, cwd=repo).stdout.strip()


def current_branch(repo: Path) -> str:
    """Return the checked-out branch name, or "" when HEAD is detached."""
    result = run_git("symbolic-ref", "-q", "--short", "HEAD", cwd=repo, check=False)
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def ref_exists(repo: Path, ref: str) -> bool:
    """Check whether a fully qualified ref exists, loose or packed."""
    result = run_git("show-ref", "--verify", "--quiet", ref, cwd=repo, check=False)
    return result.returncode == 0


def is_shallow(repo: Path) -> bool:
    """Check whether the repository has truncated history."""
    result = run_git("rev-parse", "--is-shallow-repository", cwd=repo, check=False)
    return result.returncode == 0 and result.stdout.strip() == "true"


def is_ancestor(repo: Path, ancestor: str, descendant: str) -> bool:
    """Check whether ancestor is reachable from descendant."""
    result = run_git(
        "merge-base", "--is-ancestor", ancestor, descendant,
        cwd=repo, check=False,
    )
    if result.returncode not in (0, 1):
        raise GitError(
            ("merge-base", "--is-ancestor", ancestor, descendant),
            result.returncode,
            result.stderr,
        )
    return result.returncode == 0


def git_dir(repo: Path) -> Path:
    """Return the absolute path of the repository's git directory."""
    result = run_git("rev-parse", "--absolute-git-dir", cwd=repo)
    return Path(result.stdout.strip())


def update_ref(repo: Path, ref: str, sha: str) -> None:
    """Point a ref at an object id."""
    run_git("update-ref", ref, sha, cwd=repo)


def remote_has_branch(url: str, branch: str, cwd: Optional[Path] = None) -> Optional[bool]:
    """Ask the remote whether it carries a branch.

    Returns:
        True or False when the remote answered, None when it could not
        be reached at all.
    """
    result = run_git(
        "ls-remote", "--exit-code", url, f"refs/heads/{branch}",
        cwd=cwd, check=False,
    )
    if result.returncode == 0:
        return True
    if result.returncode == 2:
        return False
    return None


def peel_commit(repo: Path, rev: str) -> str:
    """Resolve a revision (possibly a tag object) to its commit id."""
    return run_git("rev-parse", "--verify", f"{rev}^{{commit}}", cwd=repo).stdout.strip()
