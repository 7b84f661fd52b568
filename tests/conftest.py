"""Shared test fixtures for sigsync.

Builds throwaway git repositories under tmp_path: an "origin" remote
and, where needed, a pre-existing local working copy of it.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from sigsync.config import COMPONENT_BRANCH_PREFIX, COMPONENT_URL_PREFIX, ENV_KEYS
from sigsync.models import SyncSettings, TrustPolicy
from sigsync.verify import RevisionVerifier


def git(repo: Path, *args: str) -> str:
    """Run git in repo and return stripped stdout."""
    result = subprocess.run(
        ["git", *args], cwd=str(repo), capture_output=True, text=True, check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str = "") -> str:
    """Write a file, commit it, and return the new commit id."""
    (repo / name).write_text(content or f"{name}\n")
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", f"add {name}")
    return git(repo, "rev-parse", "HEAD")


class FakeVerifier(RevisionVerifier):
    """Verifier with a fixed verdict that records every call."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.calls: list[tuple[Path, str, TrustPolicy]] = []

    @property
    def name(self) -> str:
        return "fake"

    def verify(self, repo: Path, revision: str, policy: TrustPolicy) -> bool:
        self.calls.append((repo, revision, policy))
        return self.accept


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """Keep host git config and sigsync variables out of every test."""
    for var in ENV_KEYS.values():
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith((COMPONENT_URL_PREFIX, COMPONENT_BRANCH_PREFIX)):
            monkeypatch.delenv(var, raising=False)

    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        "[commit]\n\tgpgsign = false\n"
        "[tag]\n\tgpgsign = false\n"
        "[init]\n\tdefaultBranch = main\n"
        "[advice]\n\tdetachedHead = false\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    for who in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{who}_NAME", "Test Builder")
        monkeypatch.setenv(f"GIT_{who}_EMAIL", "builder@sigsync.test")


@pytest.fixture
def origin(tmp_path: Path) -> Path:
    """A remote repository with a main branch, a release branch and tag v1."""
    repo = tmp_path / "remote" / "widget"
    repo.mkdir(parents=True)
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(repo, "README")
    git(repo, "tag", "-a", "v1", "-m", "release v1")
    git(repo, "branch", "release")
    return repo


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Directory that holds local working copies."""
    base = tmp_path / "src"
    base.mkdir()
    return base


@pytest.fixture
def local_copy(origin: Path, base_dir: Path) -> Path:
    """A pre-existing working copy of origin, on main."""
    dest = base_dir / "widget"
    git(base_dir, "clone", "-q", str(origin), str(dest))
    return dest


@pytest.fixture
def make_settings(origin: Path, base_dir: Path):
    """Factory for settings pointing at the origin fixture."""

    def _make(**overrides) -> SyncSettings:
        values = {
            "repo": "widget",
            "base_dir": base_dir,
            "branch": "main",
            "git_url": str(origin),
        }
        values.update(overrides)
        return SyncSettings(**values)

    return _make


@pytest.fixture
def accepting_verifier() -> FakeVerifier:
    return FakeVerifier(accept=True)


@pytest.fixture
def rejecting_verifier() -> FakeVerifier:
    return FakeVerifier(accept=False)
