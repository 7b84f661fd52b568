"""
Branch reconciler -- move the local branch onto the verified revision.

Only ever runs after the candidate has been accepted. Branch tips are
never moved backwards or sideways: in a reused copy a tip either moves
forward, stays where it is because it already contains the verified
revision, or the run fails with NonLinearHistoryError before any ref
changes.
"""

from __future__ import annotations

import logging

from . import git
from .errors import NonLinearHistoryError
from .models import CandidateRevision, Component

logger = logging.getLogger("sigsync.reconcile")


def _already_contains(
    component: Component, old: str | None, new: str, what: str
) -> bool:
    """Compare a local tip with the verified commit.

    Returns:
        True if old is strictly ahead of new, so nothing needs to move.
        False if old is missing, equal to new, or can fast-forward to it.

    Raises:
        NonLinearHistoryError: If the two have diverged.
    """
    if old is None or old == new:
        return False
    if git.is_ancestor(component.path, old, new):
        return False
    if git.is_ancestor(component.path, new, old):
        return True
    raise NonLinearHistoryError(
        f"{component.name}: {what} ({old[:12]}) has diverged from "
        f"verified revision {new[:12]}; refusing to merge"
    )


def switch_branch(component: Component, candidate: CandidateRevision, commit: str) -> None:
    """Check out the target branch at the verified commit.

    Reuses the branch name when a local or remote-tracking ref for it
    already exists, otherwise creates it. A local branch that already
    contains the verified commit is checked out as it is.
    """
    repo = component.path
    local_ref = f"refs/heads/{component.branch}"
    has_local = git.ref_exists(repo, local_ref)

    if has_local and not candidate.fresh and _already_contains(
        component, git.rev_parse(repo, local_ref), commit,
        f"local branch {component.branch}",
    ):
        git.run_git("checkout", "-q", component.branch, cwd=repo)
        logger.info("Checked out %s, already ahead of %s", component.branch, commit[:12])
        return

    if has_local or git.ref_exists(repo, component.tracking_ref):
        git.run_git("checkout", "-q", "-B", component.branch, commit, cwd=repo)
    else:
        git.run_git("checkout", "-q", "-b", component.branch, commit, cwd=repo)
    logger.info("Checked out %s at %s", component.branch, commit[:12])


def reconcile(component: Component, candidate: CandidateRevision) -> bool:
    """Bring the local branch and tracking ref up to the verified revision.

    Args:
        component: Resolved component.
        candidate: Accepted, resolved candidate.

    Returns:
        True if a fast-forward merge was performed.

    Raises:
        NonLinearHistoryError: If the branch cannot be fast-forwarded.
    """
    repo = component.path
    commit = git.peel_commit(repo, candidate.sha)

    current = git.current_branch(repo)
    if current != component.branch or candidate.fresh:
        logger.debug("Current branch %r, target %r", current, component.branch)
        switch_branch(component, candidate, commit)

    merged = False
    if not candidate.fresh:
        if _already_contains(component, git.rev_parse(repo, "HEAD"), commit, "current HEAD"):
            logger.info("%s already contains %s", component.branch, commit[:12])
        else:
            git.run_git("merge", "--ff-only", "-q", commit, cwd=repo)
            merged = True
            logger.info("Fast-forwarded %s to %s", component.branch, commit[:12])

    if git.ref_exists(repo, component.tracking_ref):
        git.update_ref(repo, component.tracking_ref, commit)
        logger.debug("Updated %s to %s", component.tracking_ref, commit[:12])

    return merged
