"""
Revision verifier adapter -- decide whether a candidate may be trusted.

The cryptography lives elsewhere. This module picks the trust policy,
pins the candidate to an immutable object id, and hands both to a
RevisionVerifier. Whatever the verifier says is final.

Verifiers:
    GitSignatureVerifier: git verify-tag / verify-commit against a keyring.
    CommandVerifier: any external program, exit status 0 means trusted.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from . import git
from .errors import InvalidInput, ResolutionError, VerificationRejected
from .models import CandidateRevision, Component, TrustPolicy

logger = logging.getLogger("sigsync.verify")


def select_policy(
    component: str,
    no_check: Iterable[str],
    allow_commit_sig: Iterable[str],
) -> TrustPolicy:
    """Look up the trust policy for a component.

    Args:
        component: Component name.
        no_check: Components exempt from verification.
        allow_commit_sig: Components for which a signed commit is enough.

    Returns:
        The single TrustPolicy for this run.

    Raises:
        InvalidInput: If the component appears in both lists.
    """
    skip = component in set(no_check)
    commit_ok = component in set(allow_commit_sig)
    if skip and commit_ok:
        raise InvalidInput(
            f"{component} is listed in both NO_CHECK and ALLOW_COMMIT_SIG; "
            "remove it from one of them"
        )
    if skip:
        return TrustPolicy.NONE
    if commit_ok:
        return TrustPolicy.SIGNED_TAG_OR_COMMIT
    return TrustPolicy.SIGNED_TAG


class RevisionVerifier(ABC):
    """External authenticity check for a single revision."""

    @abstractmethod
    def verify(self, repo: Path, revision: str, policy: TrustPolicy) -> bool:
        """Check a revision under a trust policy.

        Args:
            repo: Working copy holding the revision.
            revision: Full object id of the candidate.
            policy: Required form of signature.

        Returns:
            True only if the revision is trusted.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable verifier name."""


class GitSignatureVerifier(RevisionVerifier):
    """Verify signatures with git's own gpg integration.

    A revision passes if any annotated tag pointing at it carries a good
    signature. Under signed-tag-or-commit, a good commit signature is
    accepted as well. The keyring directory, if given, becomes GNUPGHOME
    so only keys placed there are trusted.
    """

    def __init__(self, keyring_dir: Optional[Path] = None):
        self.keyring_dir = keyring_dir

    @property
    def name(self) -> str:
        return "git-gpg"

    def _env(self) -> dict[str, str]:
        if self.keyring_dir is None:
            return {}
        return {"GNUPGHOME": str(Path(self.keyring_dir).expanduser())}

    def _tag_objects(self, repo: Path, revision: str) -> list[str]:
        if git.object_type(repo, revision) == "tag":
            return [revision]
        result = git.run_git(
            "for-each-ref", f"--points-at={revision}",
            "--format=%(objectname) %(objecttype)", "refs/tags",
            cwd=repo,
        )
        tags = []
        for line in result.stdout.splitlines():
            sha, _, kind = line.partition(" ")
            if kind.strip() == "tag":
                tags.append(sha)
        return tags

    def verify(self, repo: Path, revision: str, policy: TrustPolicy) -> bool:
        if policy == TrustPolicy.NONE:
            return True

        env = self._env()
        for tag in self._tag_objects(repo, revision):
            result = git.run_git("verify-tag", tag, cwd=repo, check=False, env=env)
            if result.returncode == 0:
                logger.info("Good tag signature on %s", tag)
                return True
            logger.debug("Tag %s did not verify: %s", tag, result.stderr.strip())

        if policy == TrustPolicy.SIGNED_TAG_OR_COMMIT:
            result = git.run_git(
                "verify-commit", f"{revision}^{{commit}}",
                cwd=repo, check=False, env=env,
            )
            if result.returncode == 0:
                logger.info("Good commit signature on %s", revision)
                return True
            logger.debug("Commit %s did not verify: %s", revision, result.stderr.strip())

        return False


class CommandVerifier(RevisionVerifier):
    """Delegate verification to an external program.

    The program is called as ``<command> <repo> <revision> <policy>``.
    Exit status 0 accepts the revision; anything else rejects it.
    """

    def __init__(self, command: str):
        try:
            self.argv = shlex.split(command)
        except ValueError as exc:
            raise InvalidInput(f"Invalid verifier command {command!r}: {exc}") from exc
        if not self.argv:
            raise InvalidInput("Empty verifier command")

    @property
    def name(self) -> str:
        return Path(self.argv[0]).name

    def verify(self, repo: Path, revision: str, policy: TrustPolicy) -> bool:
        cmd = [*self.argv, str(repo), revision, policy.value]
        logger.debug("Running verifier: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error("Verifier %s could not run: %s", self.name, exc)
            return False
        if result.returncode != 0:
            logger.error(
                "Verifier %s rejected %s (rc=%d): %s",
                self.name, revision, result.returncode, result.stderr.strip(),
            )
            return False
        return True


def create_verifier(
    command: Optional[str] = None,
    keyring_dir: Optional[Path] = None,
) -> RevisionVerifier:
    """Pick the verifier implementation from configuration.

    Args:
        command: External verifier command line, if configured.
        keyring_dir: GnuPG home for the built-in git verifier.

    Returns:
        A CommandVerifier when a command is set, else a GitSignatureVerifier.
    """
    if command:
        return CommandVerifier(command)
    return GitSignatureVerifier(keyring_dir)


def resolve_candidate(repo: Path, candidate: CandidateRevision) -> CandidateRevision:
    """Pin the candidate marker to a concrete object id.

    Raises:
        ResolutionError: If the marker does not resolve.
    """
    sha = git.rev_parse(repo, candidate.marker)
    if sha is None:
        raise ResolutionError(
            f"Cannot resolve {candidate.marker} in {repo} after transport"
        )
    logger.debug("%s resolved to %s", candidate.marker, sha)
    return candidate.model_copy(update={"sha": sha})


def verify_candidate(
    component: Component,
    candidate: CandidateRevision,
    verifier: RevisionVerifier,
) -> None:
    """Run the trust decision for a resolved candidate.

    Raises:
        VerificationRejected: If the verifier does not accept the revision.
    """
    if component.policy == TrustPolicy.NONE:
        logger.warning(
            "!!! SIGNATURE VERIFICATION DISABLED for %s -- accepting %s unchecked !!!",
            component.name, candidate.sha,
        )
        return

    logger.info(
        "Verifying %s at %s (%s, %s)",
        component.name, candidate.sha, component.policy.value, verifier.name,
    )
    if not verifier.verify(component.path, candidate.sha, component.policy):
        raise VerificationRejected(
            f"{component.name}: revision {candidate.sha} failed "
            f"{component.policy.value} verification"
        )
