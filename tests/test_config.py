"""Tests for environment-based configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from shadow_git.config import ShadowGitConfig, kill_switch_engaged, parse_flag


def _env(**overrides):
    env = {"PI_WORKSPACE_ROOT": "/tmp/ws", "PI_AGENT_NAME": "scout1"}
    env.update(overrides)
    return env


class TestFromEnv:
    def test_missing_required_is_silent_noop(self):
        assert ShadowGitConfig.from_env({}) is None
        assert ShadowGitConfig.from_env({"PI_WORKSPACE_ROOT": "/tmp/ws"}) is None
        assert ShadowGitConfig.from_env({"PI_AGENT_NAME": "a"}) is None

    def test_derived_paths(self):
        cfg = ShadowGitConfig.from_env(_env())
        assert cfg.workspace_root == Path("/tmp/ws")
        assert cfg.agent_dir == Path("/tmp/ws/agents/scout1")
        assert cfg.audit_file == Path("/tmp/ws/agents/scout1/audit.jsonl")
        assert cfg.patch_dir == Path("/tmp/ws/target-patches")

    def test_target_repos_split_and_trimmed(self):
        cfg = ShadowGitConfig.from_env(_env(PI_TARGET_REPOS=" /src/a , /src/b,, "))
        assert cfg.target_repos == ("/src/a", "/src/b")

    def test_no_target_repos(self):
        assert ShadowGitConfig.from_env(_env()).target_repos == ()

    def test_target_branch(self):
        assert ShadowGitConfig.from_env(_env(PI_TARGET_BRANCH="feat/x")).target_branch == "feat/x"
        assert ShadowGitConfig.from_env(_env(PI_TARGET_BRANCH="  ")).target_branch is None

    def test_kill_switch(self):
        assert ShadowGitConfig.from_env(_env(PI_SHADOW_GIT_DISABLED="true")).kill_switch is True
        assert ShadowGitConfig.from_env(_env(PI_SHADOW_GIT_DISABLED="0")).kill_switch is False
        assert ShadowGitConfig.from_env(_env()).kill_switch is False

    def test_invalid_agent_name_is_treated_as_missing(self):
        assert ShadowGitConfig.from_env(_env(PI_AGENT_NAME="../escape")) is None
        assert ShadowGitConfig.from_env(_env(PI_AGENT_NAME="..")) is None


class TestConfigModel:
    def test_frozen(self):
        cfg = ShadowGitConfig(workspace_root=Path("/tmp/ws"), agent_name="a")
        with pytest.raises(ValidationError):
            cfg.agent_name = "b"

    def test_agent_name_rejects_separators(self):
        with pytest.raises(ValidationError):
            ShadowGitConfig(workspace_root=Path("/tmp/ws"), agent_name="a/b")


@pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", " On "])
def test_parse_flag_truthy(value):
    assert parse_flag(value)


@pytest.mark.parametrize("value", [None, "", "0", "false", "off", "nope"])
def test_parse_flag_falsy(value):
    assert not parse_flag(value)


def test_kill_switch_engaged_reads_mapping():
    assert kill_switch_engaged({"PI_SHADOW_GIT_DISABLED": "yes"})
    assert not kill_switch_engaged({})
