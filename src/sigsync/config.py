"""
Location resolver -- turn layered settings into one Component.

Settings are gathered once, in this order of precedence:

    CLI overrides  >  environment  >  YAML config file  >  defaults

Per-component overrides (GIT_URL_<name>, BRANCH_<name>) are collected
while reading the environment, so nothing after load_settings() ever
builds a variable name at runtime.

Everything that ends up on a git command line is validated here,
before the first subprocess runs.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .errors import InvalidInput
from .models import DEFAULT_REMOTE, SELF_REPO, Component, SyncSettings
from .verify import select_policy

logger = logging.getLogger("sigsync.config")

BRANCH_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._-]+$")
NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")
REPO_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*(/[A-Za-z0-9_][A-Za-z0-9._-]*)*$")

ENV_KEYS = {
    "repo": "REPO",
    "base_dir": "SIGSYNC_BASE_DIR",
    "component": "COMPONENT",
    "branch": "BRANCH",
    "git_url": "GIT_URL",
    "git_remote": "GIT_REMOTE",
    "git_baseurl": "GIT_BASEURL",
    "git_prefix": "GIT_PREFIX",
    "git_suffix": "GIT_SUFFIX",
    "clean": "CLEAN",
    "shallow": "GIT_CLONE_FAST",
    "fetch_only": "FETCH_ONLY",
    "ignore_missing": "IGNORE_MISSING",
    "debug": "DEBUG",
    "no_check": "NO_CHECK",
    "allow_commit_sig": "ALLOW_COMMIT_SIG",
    "verify_command": "VERIFY_COMMAND",
    "keyring_dir": "KEYRING_DIR_GIT",
}

COMPONENT_URL_PREFIX = "GIT_URL_"
COMPONENT_BRANCH_PREFIX = "BRANCH_"

_BOOL_FIELDS = {"clean", "shallow", "fetch_only", "ignore_missing", "debug"}
_LIST_FIELDS = {"no_check", "allow_commit_sig"}
_TRUE = {"1", "true", "yes", "on"}


def component_key(name: str) -> str:
    """Variable-name form of a component name (``linux-utils`` -> ``linux_utils``)."""
    return re.sub(r"[^A-Za-z0-9_]", "_", name)


def _split_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def _coerce(field: str, value: Any) -> Any:
    if field in _BOOL_FIELDS and isinstance(value, str):
        return value.strip().lower() in _TRUE
    if field in _LIST_FIELDS:
        return _split_list(value)
    return value


def _load_file(config_file: Path) -> dict[str, Any]:
    """Read settings from a YAML file. Unknown keys are ignored."""
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise InvalidInput(f"Cannot parse config file {config_file}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidInput(f"Config file {config_file} must contain a mapping")

    layer: dict[str, Any] = {}
    for field in SyncSettings.model_fields:
        if field in data and data[field] is not None:
            layer[field] = _coerce(field, data[field])
    return layer


def _load_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Read settings and per-component overrides from an environment mapping."""
    layer: dict[str, Any] = {}
    for field, var in ENV_KEYS.items():
        value = env.get(var)
        if value is not None and value != "":
            layer[field] = _coerce(field, value)

    urls: dict[str, str] = {}
    branches: dict[str, str] = {}
    for var, value in env.items():
        if not value:
            continue
        if var.startswith(COMPONENT_URL_PREFIX):
            urls[var[len(COMPONENT_URL_PREFIX):]] = value
        elif var.startswith(COMPONENT_BRANCH_PREFIX):
            branches[var[len(COMPONENT_BRANCH_PREFIX):]] = value
    if urls:
        layer["component_urls"] = urls
    if branches:
        layer["component_branches"] = branches
    return layer


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
    **overrides: Any,
) -> SyncSettings:
    """Build SyncSettings from all configuration layers.

    Args:
        env: Environment mapping. Defaults to os.environ.
        config_file: Optional YAML file with setting defaults.
        **overrides: Explicit values (usually CLI options). None means unset.

    Returns:
        The merged SyncSettings.

    Raises:
        InvalidInput: If the config file is unreadable or malformed.
    """
    merged: dict[str, Any] = {}
    if config_file is not None:
        merged.update(_load_file(Path(config_file).expanduser()))

    env_layer = _load_env(os.environ if env is None else env)
    for key in ("component_urls", "component_branches"):
        if key in env_layer:
            merged[key] = {**merged.get(key, {}), **env_layer.pop(key)}
    merged.update(env_layer)

    for field, value in overrides.items():
        if value is None:
            continue
        merged[field] = _coerce(field, value)

    try:
        return SyncSettings(**merged)
    except ValueError as exc:
        raise InvalidInput(f"Invalid settings: {exc}") from exc


def validate_branch(branch: str) -> str:
    """Reject branch names outside the allowed pattern."""
    if not BRANCH_RE.match(branch):
        raise InvalidInput(f"Invalid branch name: {branch!r}")
    return branch


def validate_repo(repo: str) -> str:
    """Reject repository paths that could escape the base directory."""
    if repo != SELF_REPO and not REPO_RE.match(repo):
        raise InvalidInput(f"Invalid repository path: {repo!r}")
    return repo


def validate_name(name: str, what: str = "component name") -> str:
    """Reject names that are not plain identifiers."""
    if not NAME_RE.match(name):
        raise InvalidInput(f"Invalid {what}: {name!r}")
    return name


def validate_allow_list(names: list[str], what: str) -> list[str]:
    """Reject allow-list entries that are not plain component names."""
    for name in names:
        validate_name(name, f"entry in {what}")
    return names


def _resolve_url(settings: SyncSettings, name: str) -> tuple[str, str]:
    """Pick the effective (url, remote name) for a component."""
    if settings.git_remote:
        remote = validate_name(settings.git_remote, "remote name")
        return remote, remote

    key = component_key(name)
    if settings.git_url:
        url = settings.git_url
    elif key in settings.component_urls:
        url = settings.component_urls[key]
    elif settings.git_baseurl:
        url = (
            f"{settings.git_baseurl.rstrip('/')}/"
            f"{settings.git_prefix}{name}{settings.git_suffix}"
        )
    else:
        raise InvalidInput(
            f"No remote location for {name}: set GIT_URL, GIT_URL_{key}, "
            "GIT_REMOTE or GIT_BASEURL"
        )

    if url.startswith("-"):
        raise InvalidInput(f"Invalid remote URL: {url!r}")
    return url, DEFAULT_REMOTE


def resolve_component(settings: SyncSettings) -> Component:
    """Resolve settings into the Component this run operates on.

    Args:
        settings: Merged settings from load_settings().

    Returns:
        A frozen Component with URL, branch and trust policy decided.

    Raises:
        InvalidInput: On any malformed or missing value.
    """
    if not settings.repo:
        raise InvalidInput("No repository path given")
    repo = validate_repo(settings.repo)

    if settings.component:
        name = settings.component
    elif repo == SELF_REPO:
        raise InvalidInput("COMPONENT is required when syncing the current checkout")
    else:
        name = repo.rsplit("/", 1)[-1]
    validate_name(name)

    branch = settings.component_branches.get(component_key(name)) or settings.branch
    if not branch:
        raise InvalidInput(f"No branch given for {name}")
    validate_branch(branch)

    url, remote = _resolve_url(settings, name)

    policy = select_policy(
        name,
        validate_allow_list(settings.no_check, "NO_CHECK"),
        validate_allow_list(settings.allow_commit_sig, "ALLOW_COMMIT_SIG"),
    )

    base = Path(settings.base_dir).expanduser()
    path = base if repo == SELF_REPO else base / repo

    component = Component(
        name=name,
        repo=repo,
        path=path,
        url=url,
        branch=branch,
        remote=remote,
        policy=policy,
    )
    logger.debug(
        "Resolved %s: url=%s branch=%s remote=%s policy=%s",
        name, url, branch, remote, policy.value,
    )
    return component
