"""Unit tests for global git credential rewriting."""

import asyncio
import base64
import shutil
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app_checkout.checkout.credentials import (
    CredentialConfigError,
    CredentialRewriter,
    ServerOrigin,
    encode_basic_credential,
    insteadof_values,
)
from src.app_checkout.checkout.git import GitCommandError, GitCommandManager


def run_async(coro):
    return asyncio.run(coro)


def _git(fail_on_call=None):
    """Mock command manager recording config writes and unsets in order."""
    git = MagicMock()
    git.events = []

    async def config(key, value, global_config=False, add=False):
        git.events.append(("config", key, value, global_config, add))
        if fail_on_call is not None and len(git.events) == fail_on_call:
            raise GitCommandError("config", 255, "could not lock config file")

    async def try_config_unset(key, global_config=False):
        git.events.append(("unset", key, global_config))
        return True

    async def try_config_unset_value(key, value, global_config=False):
        git.events.append(("unset-value", key, value, global_config))
        return True

    git.config = AsyncMock(side_effect=config)
    git.try_config_unset = AsyncMock(side_effect=try_config_unset)
    git.try_config_unset_value = AsyncMock(side_effect=try_config_unset_value)
    return git


class TestServerOrigin:

    def test_default_port_omitted(self):
        origin = ServerOrigin.from_url("https://example.com")
        assert origin.origin == "https://example.com"
        assert origin.hostname == "example.com"

    def test_explicit_port_kept(self):
        origin = ServerOrigin.from_url("https://ghe.example.com:8443/")
        assert origin.origin == "https://ghe.example.com:8443"
        assert origin.hostname == "ghe.example.com"

    def test_path_ignored(self):
        assert ServerOrigin.from_url("https://example.com/some/path").origin == (
            "https://example.com"
        )


class TestBasicCredential:

    def test_encodes_x_access_token(self):
        encoded = encode_basic_credential("ghs_abc")
        assert base64.b64decode(encoded) == b"x-access-token:ghs_abc"

    def test_insteadof_patterns(self):
        values = insteadof_values(ServerOrigin.from_url("https://example.com"))
        assert values == [
            "git@example.com:",
            "ssh://git@example.com:",
            "git@example.com/",
            "ssh://git@example.com/",
        ]


class TestCredentialRewriter:

    def test_writes_one_header_and_four_rewrites(self, runtime):
        git = _git()
        run_async(CredentialRewriter(git, runtime).update_global_credential(
            "ghs_abc", "https://example.com"))

        header_writes = [e for e in git.events
                         if e[1] == "http.https://example.com/.extraheader"]
        rewrite_writes = [e for e in git.events
                          if e[1] == "url.https://example.com/.insteadOf"]
        basic = encode_basic_credential("ghs_abc")

        assert header_writes == [(
            "config", "http.https://example.com/.extraheader",
            f"AUTHORIZATION: basic {basic}", True, False,
        )]
        assert len(rewrite_writes) == 4
        assert all(e[3] is True and e[4] is True for e in rewrite_writes)
        assert git.events[0] == header_writes[0]
        git.try_config_unset.assert_not_awaited()

    def test_basic_credential_masked(self, runtime, runtime_output):
        run_async(CredentialRewriter(_git(), runtime).update_global_credential(
            "ghs_abc", "https://example.com"))
        basic = encode_basic_credential("ghs_abc")
        assert basic in runtime.secrets
        assert f"::add-mask::{basic}" in runtime_output.getvalue()

    def test_failure_unsets_header_before_raising(self, runtime):
        # header write is call 1, second insteadOf write is call 3
        git = _git(fail_on_call=3)
        with pytest.raises(CredentialConfigError, match="https://example.com") as exc_info:
            run_async(CredentialRewriter(git, runtime).update_global_credential(
                "ghs_abc", "https://example.com"))

        assert git.events[3] == ("unset", "http.https://example.com/.extraheader", True)
        assert git.events[4:] == [
            ("unset-value", "url.https://example.com/.insteadOf", "git@example.com:", True),
        ]
        assert isinstance(exc_info.value.__cause__, GitCommandError)

    def test_failure_on_header_write(self, runtime):
        git = _git(fail_on_call=1)
        with pytest.raises(CredentialConfigError):
            run_async(CredentialRewriter(git, runtime).update_global_credential(
                "ghs_abc", "https://example.com"))
        assert git.events[1][0] == "unset"
        git.try_config_unset_value.assert_not_awaited()

    def test_failure_never_clears_whole_rewrite_key(self, runtime):
        git = _git(fail_on_call=4)
        with pytest.raises(CredentialConfigError):
            run_async(CredentialRewriter(git, runtime).update_global_credential(
                "ghs_abc", "https://example.com"))
        unset_keys = [e[1] for e in git.events if e[0] == "unset"]
        assert unset_keys == ["http.https://example.com/.extraheader"]
        assert [e[2] for e in git.events if e[0] == "unset-value"] == [
            "git@example.com:", "ssh://git@example.com:",
        ]

    def test_error_message_does_not_leak_token(self, runtime):
        git = _git(fail_on_call=2)
        with pytest.raises(CredentialConfigError) as exc_info:
            run_async(CredentialRewriter(git, runtime).update_global_credential(
                "ghs_abc", "https://example.com"))
        assert "ghs_abc" not in str(exc_info.value)
        assert encode_basic_credential("ghs_abc") not in str(exc_info.value)


class FailingGitCommandManager(GitCommandManager):
    """Real git, except the Nth config write fails."""

    def __init__(self, working_directory, fail_on_write):
        super().__init__(working_directory)
        self.fail_on_write = fail_on_write
        self.writes = 0

    async def config(self, key, value, global_config=False, add=False):
        self.writes += 1
        if self.writes == self.fail_on_write:
            raise GitCommandError("config", 255, "could not lock config file")
        await super().config(key, value, global_config=global_config, add=add)


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestCredentialRewriterWithGit:

    @pytest.fixture
    def isolated_home(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        home.mkdir()
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
        monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        return home

    def _get_all(self, git, key):
        output = run_async(git._run(
            "config", "--global", "--get-all", key, allow_all_exit_codes=True))
        return output.stdout.splitlines()

    def test_rollback_keeps_existing_rewrite_rules(self, runtime, tmp_path, isolated_home):
        key = "url.https://example.com/.insteadOf"
        git = FailingGitCommandManager(tmp_path, fail_on_write=3)
        run_async(GitCommandManager(tmp_path).config(key, "gh:", global_config=True))

        with pytest.raises(CredentialConfigError):
            run_async(CredentialRewriter(git, runtime).update_global_credential(
                "ghs_abc", "https://example.com"))

        assert self._get_all(git, key) == ["gh:"]
        assert self._get_all(git, "http.https://example.com/.extraheader") == []

    def test_success_writes_global_config(self, runtime, tmp_path, isolated_home):
        git = GitCommandManager(tmp_path)
        run_async(CredentialRewriter(git, runtime).update_global_credential(
            "ghs_abc", "https://example.com"))

        assert len(self._get_all(git, "url.https://example.com/.insteadOf")) == 4
        [header] = self._get_all(git, "http.https://example.com/.extraheader")
        assert header.startswith("AUTHORIZATION: basic ")
