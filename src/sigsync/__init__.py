"""
sigsync -- verified git source synchronization.

Fetch or clone one component's repository, prove the new revision is
signed by someone we trust, and only then let the local branch move.
Anything that fails verification is erased before we exit.
"""

__version__ = "0.1.0"
__author__ = "sigsync contributors"

from .engine import SyncEngine, run_sync
from .errors import SigsyncError
from .models import SELF_REPO

__all__ = ["SELF_REPO", "SigsyncError", "SyncEngine", "run_sync"]
