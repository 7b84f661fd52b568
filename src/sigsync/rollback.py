"""
Rollback manager -- erase unverified state after a rejection.

A fresh clone was never trusted, so it goes entirely. A reused copy
keeps its trusted history; only what the fetch added to the ref
namespace is undone.
"""

from __future__ import annotations

import logging
import shutil

from . import git
from .models import CandidateRevision, Component

logger = logging.getLogger("sigsync.rollback")


def rollback(component: Component, candidate: CandidateRevision) -> None:
    """Remove the unverified candidate from the working copy.

    Args:
        component: Component whose copy holds the candidate.
        candidate: The rejected candidate.
    """
    repo = component.path

    if candidate.fresh and not component.is_self:
        if repo.exists():
            shutil.rmtree(repo)
        logger.warning("Removed unverified clone %s", repo)
        return

    fetch_head = git.git_dir(repo) / "FETCH_HEAD"
    fetch_head.unlink(missing_ok=True)
    logger.warning("Discarded unverified FETCH_HEAD in %s", repo)

    # git may move the tracking ref during a fetch from a named remote
    current = git.rev_parse(repo, component.tracking_ref)
    if current == candidate.prior_tracking_sha:
        return
    if candidate.prior_tracking_sha is None:
        git.run_git("update-ref", "-d", component.tracking_ref, cwd=repo)
    else:
        git.update_ref(repo, component.tracking_ref, candidate.prior_tracking_sha)
    logger.warning("Restored %s to its pre-fetch value", component.tracking_ref)
