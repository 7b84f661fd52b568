"""
Sync engine -- run the secure synchronization protocol for one component.

    start -> located -> transported -> verifying
          -> accepted -> reconciled -> done
          -> rejected -> rolled_back -> failed
    (located -> skipped when the branch is legitimately absent)

The run is strictly linear. Each step's output is the next step's
input, and every failure is terminal.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import resolve_component
from .errors import BranchAbsent, SigsyncError
from .models import (
    CandidateRevision,
    Component,
    SyncPhase,
    SyncResult,
    SyncSettings,
    TrustPolicy,
)
from .reconcile import reconcile
from .rollback import rollback
from .transport import transport
from .verify import RevisionVerifier, create_verifier, resolve_candidate, verify_candidate

logger = logging.getLogger("sigsync.engine")

TRANSITIONS: dict[SyncPhase, frozenset[SyncPhase]] = {
    SyncPhase.START: frozenset({SyncPhase.LOCATED, SyncPhase.FAILED}),
    SyncPhase.LOCATED: frozenset(
        {SyncPhase.TRANSPORTED, SyncPhase.SKIPPED, SyncPhase.FAILED}
    ),
    SyncPhase.TRANSPORTED: frozenset({SyncPhase.VERIFYING, SyncPhase.FAILED}),
    SyncPhase.VERIFYING: frozenset({SyncPhase.ACCEPTED, SyncPhase.REJECTED}),
    SyncPhase.ACCEPTED: frozenset(
        {SyncPhase.RECONCILED, SyncPhase.DONE, SyncPhase.FAILED}
    ),
    SyncPhase.RECONCILED: frozenset({SyncPhase.DONE}),
    SyncPhase.REJECTED: frozenset({SyncPhase.ROLLED_BACK, SyncPhase.FAILED}),
    SyncPhase.ROLLED_BACK: frozenset({SyncPhase.FAILED}),
}

TERMINAL = frozenset({SyncPhase.DONE, SyncPhase.FAILED, SyncPhase.SKIPPED})


def advance(current: SyncPhase, nxt: SyncPhase) -> SyncPhase:
    """Validate a protocol transition.

    Raises:
        ValueError: If nxt is not reachable from current.
    """
    if nxt not in TRANSITIONS.get(current, frozenset()):
        raise ValueError(f"Illegal transition {current.value} -> {nxt.value}")
    return nxt


class SyncEngine:
    """Runs the protocol once for the component described by settings.

    The verifier is injected so the protocol can be exercised without
    real signing keys. When omitted it is built from the settings.
    """

    def __init__(
        self,
        settings: SyncSettings,
        verifier: Optional[RevisionVerifier] = None,
    ):
        self.settings = settings
        self.verifier = verifier
        self.phase = SyncPhase.START
        self.history: list[SyncPhase] = [SyncPhase.START]
        self.component: Optional[Component] = None
        self.candidate: Optional[CandidateRevision] = None
        self.merged = False

    def _advance(self, nxt: SyncPhase) -> None:
        self.phase = advance(self.phase, nxt)
        self.history.append(nxt)
        logger.debug("-> %s", nxt.value)

    def result(self) -> SyncResult:
        """Snapshot of where the run currently stands."""
        component = self.component
        candidate = self.candidate
        return SyncResult(
            component=(
                component.name if component
                else self.settings.component or self.settings.repo
            ),
            phase=self.phase,
            history=list(self.history),
            mode=candidate.mode if candidate else None,
            revision=candidate.sha if candidate else None,
            branch=component.branch if component else None,
            policy=component.policy if component else None,
            verification_skipped=bool(
                component and component.policy == TrustPolicy.NONE
                and self.phase in (SyncPhase.ACCEPTED, SyncPhase.RECONCILED, SyncPhase.DONE)
            ),
            merged=self.merged,
        )

    def run(self) -> SyncResult:
        """Execute the protocol.

        Returns:
            SyncResult ending in done or skipped.

        Raises:
            SigsyncError: Any failure; unverified state has already been
                rolled back when this propagates.
        """
        try:
            return self._run()
        except SigsyncError as exc:
            if self.phase not in TERMINAL:
                self._advance(SyncPhase.FAILED)
            logger.error("%s", exc)
            raise

    def _run(self) -> SyncResult:
        settings = self.settings

        component = resolve_component(settings)
        verifier = self.verifier or create_verifier(
            settings.verify_command, settings.keyring_dir
        )
        self.component = component
        self._advance(SyncPhase.LOCATED)

        try:
            candidate = transport(
                component, clean=settings.clean, shallow=settings.shallow
            )
        except BranchAbsent:
            if not settings.ignore_missing:
                raise
            logger.info(
                "Branch %s absent on remote for %s, nothing to do",
                component.branch, component.name,
            )
            self._advance(SyncPhase.SKIPPED)
            return self.result()
        self.candidate = candidate
        self._advance(SyncPhase.TRANSPORTED)

        self._advance(SyncPhase.VERIFYING)
        try:
            self.candidate = resolve_candidate(component.path, candidate)
            verify_candidate(component, self.candidate, verifier)
        except SigsyncError:
            self._advance(SyncPhase.REJECTED)
            rollback(component, candidate)
            self._advance(SyncPhase.ROLLED_BACK)
            raise
        self._advance(SyncPhase.ACCEPTED)

        if settings.fetch_only:
            logger.info("Fetch-only: %s verified, branch left alone", component.name)
            self._advance(SyncPhase.DONE)
            return self.result()

        self.merged = reconcile(component, self.candidate)
        self._advance(SyncPhase.RECONCILED)
        self._advance(SyncPhase.DONE)
        logger.info("%s is at %s", component.name, self.candidate.sha)
        return self.result()


def run_sync(
    settings: SyncSettings,
    verifier: Optional[RevisionVerifier] = None,
) -> SyncResult:
    """Convenience wrapper: build a SyncEngine and run it once."""
    return SyncEngine(settings, verifier).run()
