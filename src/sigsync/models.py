"""
Pydantic models for one synchronization run.

Settings come in from the outside world; a Component is what the
resolver makes of them. Neither is ever written back to disk.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

SELF_REPO = "."
DEFAULT_REMOTE = "origin"


class TrustPolicy(str, Enum):
    """What kind of signature a candidate revision must carry."""

    NONE = "none"
    SIGNED_TAG = "signed-tag"
    SIGNED_TAG_OR_COMMIT = "signed-tag-or-commit"


class TransportMode(str, Enum):
    """How the candidate revision reached the working copy."""

    FETCH = "fetch"
    CLONE = "clone"


class SyncPhase(str, Enum):
    """Protocol states. A run visits each at most once."""

    START = "start"
    LOCATED = "located"
    TRANSPORTED = "transported"
    VERIFYING = "verifying"
    ACCEPTED = "accepted"
    RECONCILED = "reconciled"
    DONE = "done"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncSettings(BaseModel):
    """Raw inputs for a run, after layering file, environment and CLI."""

    repo: str = ""
    base_dir: Path = Path(".")
    component: Optional[str] = None
    branch: Optional[str] = None

    git_url: Optional[str] = None
    git_remote: Optional[str] = None
    git_baseurl: Optional[str] = None
    git_prefix: str = ""
    git_suffix: str = ".git"
    component_urls: dict[str, str] = Field(default_factory=dict)
    component_branches: dict[str, str] = Field(default_factory=dict)

    clean: bool = False
    shallow: bool = False
    fetch_only: bool = False
    ignore_missing: bool = False
    debug: bool = False

    no_check: list[str] = Field(default_factory=list)
    allow_commit_sig: list[str] = Field(default_factory=list)

    verify_command: Optional[str] = None
    keyring_dir: Optional[Path] = None


class Component(BaseModel):
    """A managed unit of source, fully resolved for this invocation."""

    model_config = ConfigDict(frozen=True)

    name: str
    repo: str
    path: Path
    url: str
    branch: str
    remote: str = DEFAULT_REMOTE
    policy: TrustPolicy = TrustPolicy.SIGNED_TAG

    @property
    def is_self(self) -> bool:
        """True when the run targets the calling checkout itself."""
        return self.repo == SELF_REPO

    @property
    def tracking_ref(self) -> str:
        """Remote-tracking ref recording the last verified remote state."""
        return f"refs/remotes/{self.remote}/{self.branch}"


class CandidateRevision(BaseModel):
    """Freshly transported state waiting for a trust decision."""

    marker: str
    mode: TransportMode
    sha: Optional[str] = None
    prior_tracking_sha: Optional[str] = None

    @property
    def fresh(self) -> bool:
        """True when this run created the working copy from nothing."""
        return self.mode == TransportMode.CLONE


class SyncResult(BaseModel):
    """Outcome of one run of the protocol."""

    component: str
    phase: SyncPhase
    history: list[SyncPhase] = Field(default_factory=list)
    mode: Optional[TransportMode] = None
    revision: Optional[str] = None
    branch: Optional[str] = None
    policy: Optional[TrustPolicy] = None
    verification_skipped: bool = False
    merged: bool = False
