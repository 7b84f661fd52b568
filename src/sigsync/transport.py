"""
Transport selector -- bring the candidate revision onto disk.

    existing copy (or ".")  ->  git fetch --tags <remote> <branch>  ->  FETCH_HEAD
    nothing there / clean   ->  git clone -n -b <branch> <url>      ->  HEAD

This is the only step that writes to the object store. Everything
after it just moves refs around.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from . import git
from .errors import BranchAbsent, GitError, InvalidInput, TransportError
from .models import DEFAULT_REMOTE, CandidateRevision, Component, TransportMode

logger = logging.getLogger("sigsync.transport")

FETCH_MARKER = "FETCH_HEAD"
CLONE_MARKER = "HEAD"

_MISSING_HINTS = (
    "couldn't find remote ref",
    "not found in upstream",
)


def select_mode(component: Component, clean: bool = False) -> TransportMode:
    """Decide between fetching into an existing copy and cloning afresh."""
    if component.is_self:
        return TransportMode.FETCH
    if component.path.exists() and not clean:
        return TransportMode.FETCH
    return TransportMode.CLONE


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def _classify_failure(
    component: Component, exc: GitError, cwd: Path | None
) -> TransportError | BranchAbsent:
    stderr = exc.stderr.lower()
    if any(hint in stderr for hint in _MISSING_HINTS):
        return BranchAbsent(
            f"Branch {component.branch} does not exist on {component.url}"
        )
    if git.remote_has_branch(component.url, component.branch, cwd=cwd) is False:
        return BranchAbsent(
            f"Branch {component.branch} does not exist on {component.url}"
        )
    return TransportError(f"{component.name}: {exc}")


def fetch(component: Component, shallow: bool = False) -> CandidateRevision:
    """Fetch tags and the target branch into an existing working copy.

    Args:
        component: Resolved component.
        shallow: Keep shallow history. When off, a shallow copy is deepened.

    Returns:
        Candidate marked by FETCH_HEAD.

    Raises:
        BranchAbsent: If the remote has no such branch.
        TransportError: On any other fetch failure.
    """
    repo = component.path
    prior_tracking = git.rev_parse(repo, component.tracking_ref)

    args = ["fetch", "-q", "--tags"]
    if not shallow and git.is_shallow(repo):
        logger.info("Deepening shallow history of %s", component.name)
        args.append("--unshallow")
    args += [component.url, component.branch]

    logger.info("Fetching %s %s from %s", component.name, component.branch, component.url)
    try:
        git.run_git(*args, cwd=repo)
    except GitError as exc:
        raise _classify_failure(component, exc, repo) from exc

    return CandidateRevision(
        marker=FETCH_MARKER,
        mode=TransportMode.FETCH,
        prior_tracking_sha=prior_tracking,
    )


def clone(component: Component, shallow: bool = False) -> CandidateRevision:
    """Clone the target branch into a fresh working copy, without checkout.

    Any stale directory at the destination is removed first. A failed
    clone leaves nothing behind.

    Returns:
        Candidate marked by HEAD.

    Raises:
        BranchAbsent: If the remote has no such branch.
        TransportError: On any other clone failure.
    """
    if component.remote != DEFAULT_REMOTE:
        raise InvalidInput(
            f"Cannot clone {component.name} from named remote "
            f"{component.remote!r}; give a URL instead"
        )

    path = component.path
    if path.exists() or path.is_symlink():
        logger.info("Removing stale %s", path)
        _remove_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    args = ["clone", "-n", "-q", "-b", component.branch]
    if shallow:
        args += ["--depth", "1"]
    args += ["--", component.url, str(path)]

    logger.info("Cloning %s %s from %s", component.name, component.branch, component.url)
    try:
        git.run_git(*args)
    except GitError as exc:
        if path.exists():
            _remove_path(path)
        raise _classify_failure(component, exc, None) from exc

    return CandidateRevision(marker=CLONE_MARKER, mode=TransportMode.CLONE)


def transport(
    component: Component,
    clean: bool = False,
    shallow: bool = False,
) -> CandidateRevision:
    """Run whichever transport select_mode() picks."""
    mode = select_mode(component, clean)
    if mode == TransportMode.FETCH:
        return fetch(component, shallow=shallow)
    return clone(component, shallow=shallow)
