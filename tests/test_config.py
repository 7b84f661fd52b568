"""Tests for settings layering and the location resolver.

Covers:
- load_settings precedence (CLI > env > YAML file > defaults)
- per-component URL / branch variables
- URL resolution order and the named-remote override
- input validation gates (branch, repo path, names, allow-lists)
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sigsync.config import component_key, load_settings, resolve_component
from sigsync.errors import InvalidInput
from sigsync.models import SyncSettings, TrustPolicy


class TestLoadSettings:
    """Layered settings loading."""

    def test_defaults(self):
        """Empty environment yields default settings."""
        settings = load_settings(env={})
        assert settings.repo == ""
        assert settings.branch is None
        assert settings.git_suffix == ".git"
        assert settings.clean is False

    def test_env_values(self):
        """Environment variables populate settings."""
        settings = load_settings(env={
            "REPO": "pkgs/widget",
            "BRANCH": "main",
            "GIT_BASEURL": "https://git.example.org",
            "CLEAN": "1",
            "GIT_CLONE_FAST": "yes",
            "FETCH_ONLY": "0",
            "NO_CHECK": "alpha  beta",
        })
        assert settings.repo == "pkgs/widget"
        assert settings.branch == "main"
        assert settings.clean is True
        assert settings.shallow is True
        assert settings.fetch_only is False
        assert settings.no_check == ["alpha", "beta"]

    def test_empty_env_value_is_unset(self):
        """An empty variable does not override lower layers."""
        settings = load_settings(env={"GIT_SUFFIX": ""})
        assert settings.git_suffix == ".git"

    def test_component_variables_collected(self):
        """GIT_URL_<name> and BRANCH_<name> are gathered once."""
        settings = load_settings(env={
            "GIT_URL_linux_utils": "https://example.org/utils.git",
            "BRANCH_linux_utils": "stable",
        })
        assert settings.component_urls == {"linux_utils": "https://example.org/utils.git"}
        assert settings.component_branches == {"linux_utils": "stable"}

    def test_file_layer(self, tmp_path: Path):
        """YAML config file supplies defaults."""
        config = tmp_path / "sigsync.yaml"
        config.write_text(yaml.dump({
            "git_baseurl": "https://git.example.org",
            "allow_commit_sig": ["widget", "gadget"],
            "shallow": True,
            "unknown_key": "ignored",
        }))
        settings = load_settings(env={}, config_file=config)
        assert settings.git_baseurl == "https://git.example.org"
        assert settings.allow_commit_sig == ["widget", "gadget"]
        assert settings.shallow is True

    def test_precedence(self, tmp_path: Path):
        """CLI beats environment, environment beats the file."""
        config = tmp_path / "sigsync.yaml"
        config.write_text(yaml.dump({"branch": "from-file", "git_prefix": "file-"}))
        settings = load_settings(
            env={"BRANCH": "fromenv", "GIT_PREFIX": "env-"},
            config_file=config,
            branch="fromcli",
            git_prefix=None,
        )
        assert settings.branch == "fromcli"
        assert settings.git_prefix == "env-"

    def test_file_component_maps_merge_with_env(self, tmp_path: Path):
        """Per-component maps from file and env are merged, env winning."""
        config = tmp_path / "sigsync.yaml"
        config.write_text(yaml.dump({
            "component_branches": {"widget": "old", "gadget": "stable"},
        }))
        settings = load_settings(env={"BRANCH_widget": "new"}, config_file=config)
        assert settings.component_branches == {"widget": "new", "gadget": "stable"}

    def test_bad_yaml(self, tmp_path: Path):
        """Unparseable config file is invalid input."""
        config = tmp_path / "sigsync.yaml"
        config.write_text("branch: [unclosed\n")
        with pytest.raises(InvalidInput):
            load_settings(env={}, config_file=config)

    def test_non_mapping_yaml(self, tmp_path: Path):
        """A YAML list is not a valid config file."""
        config = tmp_path / "sigsync.yaml"
        config.write_text("- a\n- b\n")
        with pytest.raises(InvalidInput):
            load_settings(env={}, config_file=config)


def _settings(**kw) -> SyncSettings:
    values = {"repo": "pkgs/widget", "branch": "main", "git_baseurl": "https://git.example.org"}
    values.update(kw)
    return SyncSettings(**values)


class TestResolveLocation:
    """URL and branch resolution order."""

    def test_template_default(self):
        """Base URL + prefix + component + suffix."""
        component = resolve_component(_settings(git_prefix="os-", git_baseurl="https://git.example.org/"))
        assert component.url == "https://git.example.org/os-widget.git"
        assert component.remote == "origin"
        assert component.name == "widget"

    def test_per_component_url_beats_template(self):
        component = resolve_component(
            _settings(component_urls={"widget": "https://mirror.example.org/w.git"})
        )
        assert component.url == "https://mirror.example.org/w.git"

    def test_explicit_url_beats_per_component(self):
        component = resolve_component(_settings(
            git_url="https://explicit.example.org/w.git",
            component_urls={"widget": "https://mirror.example.org/w.git"},
        ))
        assert component.url == "https://explicit.example.org/w.git"

    def test_named_remote_beats_everything(self):
        component = resolve_component(_settings(
            git_url="https://explicit.example.org/w.git",
            git_remote="upstream",
        ))
        assert component.url == "upstream"
        assert component.remote == "upstream"
        assert component.tracking_ref == "refs/remotes/upstream/main"

    def test_per_component_branch(self):
        component = resolve_component(_settings(component_branches={"widget": "stable"}))
        assert component.branch == "stable"

    def test_component_key_for_dashed_names(self):
        """Dashes map to underscores for per-component lookups."""
        assert component_key("linux-utils") == "linux_utils"
        component = resolve_component(_settings(
            repo="linux-utils",
            component_branches={"linux_utils": "stable"},
        ))
        assert component.branch == "stable"

    def test_explicit_component_name(self):
        component = resolve_component(_settings(component="gadget"))
        assert component.name == "gadget"
        assert component.url.endswith("/gadget.git")

    def test_path_under_base_dir(self, tmp_path: Path):
        component = resolve_component(_settings(base_dir=tmp_path))
        assert component.path == tmp_path / "pkgs" / "widget"

    def test_self_marker(self, tmp_path: Path):
        """The "." repo targets base_dir itself and needs a component."""
        component = resolve_component(_settings(repo=".", component="builder", base_dir=tmp_path))
        assert component.is_self
        assert component.path == tmp_path

    def test_self_marker_requires_component(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(repo="."))

    def test_default_policy_is_signed_tag(self):
        assert resolve_component(_settings()).policy == TrustPolicy.SIGNED_TAG

    def test_component_is_frozen(self):
        component = resolve_component(_settings())
        with pytest.raises(ValueError):
            component.policy = TrustPolicy.NONE


class TestValidation:
    """Inputs are rejected before any git command runs."""

    @pytest.mark.parametrize("branch", ["../etc", "-rf", "9main", "a", "feat/x", "m ain", ""])
    def test_bad_branch(self, branch):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(branch=branch))

    @pytest.mark.parametrize("branch", ["main", "release-4.2", "v1_x", "Ab"])
    def test_good_branch(self, branch):
        assert resolve_component(_settings(branch=branch)).branch == branch

    @pytest.mark.parametrize("repo", ["../widget", "/abs/widget", "pkgs/../widget", "a//b", "-x", ".."])
    def test_bad_repo(self, repo):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(repo=repo))

    def test_missing_repo(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(repo=""))

    def test_missing_branch(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(branch=None))

    def test_missing_location(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(git_baseurl=None))

    def test_option_like_url(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(git_url="--upload-pack=evil"))

    def test_option_like_remote(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(git_remote="-evil"))

    def test_bad_component_name(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(component="../x"))

    def test_bad_allow_list_entry(self):
        with pytest.raises(InvalidInput):
            resolve_component(_settings(no_check=["widget", "$(rm -rf /)"]))

    def test_component_in_both_lists(self):
        """Ambiguous trust policy is refused, not guessed."""
        with pytest.raises(InvalidInput):
            resolve_component(_settings(no_check=["widget"], allow_commit_sig=["widget"]))
