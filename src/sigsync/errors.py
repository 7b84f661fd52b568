"""
Error kinds for the synchronization protocol.

Every error is terminal for the invocation. Each kind carries the
process exit code the CLI reports for it.
"""

from __future__ import annotations


class SigsyncError(Exception):
    """Base class for all sigsync failures."""

    exit_code = 1


class GitError(SigsyncError):
    """A git subprocess returned a non-zero exit code."""

    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str = ""):
        self.git_args = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(
            f"git {' '.join(args)} failed (rc={returncode}): {self.stderr}"
        )


class InvalidInput(SigsyncError):
    """Malformed branch, repository path, component or allow-list value."""

    exit_code = 2


class TransportError(SigsyncError):
    """Clone or fetch failed for a reason other than a missing branch."""

    exit_code = 3


class BranchAbsent(SigsyncError):
    """The remote does not carry the requested branch."""

    exit_code = 4


class ResolutionError(SigsyncError):
    """The candidate marker could not be resolved to an object id."""

    exit_code = 5


class VerificationRejected(SigsyncError):
    """The verifier refused the candidate revision."""

    exit_code = 6


class NonLinearHistoryError(SigsyncError):
    """The verified revision is not a fast-forward of the local branch."""

    exit_code = 7
