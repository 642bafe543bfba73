"""Unit tests for the git source provider."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from src.app_checkout.checkout.credentials import encode_basic_credential
from src.app_checkout.checkout.git import GitCommandError
from src.app_checkout.checkout.source import GitSourceProvider, SourceSettings


def run_async(coro):
    return asyncio.run(coro)


def _git(is_repository=False):
    git = MagicMock()
    git.is_repository = MagicMock(return_value=is_repository)
    for name in ("init", "set_remote", "config", "fetch", "checkout"):
        setattr(git, name, AsyncMock())
    return git


def _settings(path, **overrides):
    values = dict(
        repository_owner="acme",
        repository_name="widgets",
        ref="feature-x",
        path=path,
        token="ghs_abc",
    )
    values.update(overrides)
    return SourceSettings(**values)


class TestSourceSettings:

    def test_remote_url(self, tmp_path):
        settings = _settings(tmp_path, server_url="https://ghe.example.com/")
        assert settings.remote_url == "https://ghe.example.com/acme/widgets"
        assert settings.full_name == "acme/widgets"

    def test_token_required(self, tmp_path):
        with pytest.raises(ValidationError):
            _settings(tmp_path, token="")

    def test_negative_depth_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            _settings(tmp_path, fetch_depth=-1)


class TestGetSource:

    def test_fresh_checkout_sequence(self, runtime, tmp_path):
        git = _git()
        destination = tmp_path / "sub" / "dir"
        factory = MagicMock(return_value=git)

        run_async(GitSourceProvider(runtime, git_factory=factory).get_source(
            _settings(destination)))

        assert destination.is_dir()
        factory.assert_called_once_with(destination)
        git.init.assert_awaited_once()
        git.set_remote.assert_awaited_once_with("origin", "https://github.com/acme/widgets")
        basic = encode_basic_credential("ghs_abc")
        git.config.assert_awaited_once_with(
            "http.https://github.com/.extraheader",
            f"AUTHORIZATION: basic {basic}",
        )
        git.fetch.assert_awaited_once_with("origin", "feature-x", depth=1)
        git.checkout.assert_awaited_once_with("FETCH_HEAD")

    def test_existing_repository_not_reinitialised(self, runtime, tmp_path):
        git = _git(is_repository=True)
        run_async(GitSourceProvider(runtime, git_factory=lambda p: git).get_source(
            _settings(tmp_path)))
        git.init.assert_not_awaited()
        git.fetch.assert_awaited_once()

    def test_basic_credential_masked(self, runtime, tmp_path):
        run_async(GitSourceProvider(runtime, git_factory=lambda p: _git()).get_source(
            _settings(tmp_path)))
        assert encode_basic_credential("ghs_abc") in runtime.secrets

    def test_fetch_failure_propagates(self, runtime, tmp_path):
        git = _git()
        git.fetch.side_effect = GitCommandError("fetch", 128, "couldn't find remote ref")
        with pytest.raises(GitCommandError):
            run_async(GitSourceProvider(runtime, git_factory=lambda p: git).get_source(
                _settings(tmp_path)))
        git.checkout.assert_not_awaited()

    def test_default_factory_is_git_command_manager(self, runtime):
        provider = GitSourceProvider(runtime)
        manager = provider.git_factory(Path("/work"))
        assert manager.working_directory == Path("/work")
