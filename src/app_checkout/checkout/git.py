"""Async git command execution.

Runs ``git`` as an asyncio subprocess against one working directory,
with a per-command timeout and stderr captured for error reporting.
Used by the checkout source provider and the credential rewriter.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_COMMAND_TIMEOUT_SECONDS = 600


class GitCommandError(Exception):
    """Raised when a git command fails, times out or cannot start.

    Only the git subcommand is included in the message; argument values
    such as config values may carry credentials.

    Attributes:
        subcommand: The git subcommand that failed (e.g. "fetch").
        exit_code: Process exit code (-1 for timeout/OS errors).
        stderr: Captured standard error.
    """

    def __init__(self, subcommand: str, exit_code: int, stderr: str):
        self.subcommand = subcommand
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"git {subcommand} failed with exit code {exit_code}: {stderr}"
        )


@dataclass
class GitOutput:
    """Result of a git command.

    Attributes:
        exit_code: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    exit_code: int
    stdout: str
    stderr: str


class GitCommandManager:
    """Runs git commands in a working directory.

    Attributes:
        working_directory: Directory git runs in.
        git_path: git executable.
        timeout_seconds: Maximum time for any single command.
    """

    def __init__(
        self,
        working_directory: Path,
        git_path: str = "git",
        timeout_seconds: int = GIT_COMMAND_TIMEOUT_SECONDS,
    ):
        self.working_directory = Path(working_directory)
        self.git_path = git_path
        self.timeout_seconds = timeout_seconds

    def _environment(self) -> dict:
        env = dict(os.environ)
        # Never block on an interactive credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    async def _run(self, *args: str, allow_all_exit_codes: bool = False) -> GitOutput:
        """Run ``git <args>`` and collect its output.

        Args:
            args: Arguments following the git executable.
            allow_all_exit_codes: Return non-zero results instead of raising.

        Returns:
            GitOutput with exit code and decoded output.

        Raises:
            GitCommandError: On non-zero exit (unless allowed), timeout,
                or if git cannot be executed.
        """
        subcommand = next((a for a in args if not a.startswith("-")), "")

        try:
            process = await asyncio.create_subprocess_exec(
                self.git_path,
                *args,
                cwd=str(self.working_directory),
                env=self._environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitCommandError(
                subcommand, -1, f"Failed to execute git: {exc}"
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitCommandError(
                subcommand,
                -1,
                f"timed out after {self.timeout_seconds}s",
            ) from exc

        output = GitOutput(
            exit_code=process.returncode or 0,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
        )

        if output.exit_code != 0 and not allow_all_exit_codes:
            raise GitCommandError(subcommand, output.exit_code, output.stderr)

        logger.debug(
            "git command finished",
            extra={
                "subcommand": subcommand,
                "exit_code": output.exit_code,
                "cwd": str(self.working_directory),
            },
        )
        return output

    async def init(self) -> None:
        await self._run("init", "--quiet")

    def is_repository(self) -> bool:
        return (self.working_directory / ".git").exists()

    async def set_remote(self, name: str, url: str) -> None:
        """Point remote ``name`` at ``url``, adding it if missing."""
        existing = await self._run("remote", "get-url", name, allow_all_exit_codes=True)
        if existing.exit_code == 0:
            await self._run("remote", "set-url", name, url)
        else:
            await self._run("remote", "add", name, url)

    async def fetch(self, remote: str, ref: str, depth: int = 1) -> None:
        args = ["fetch", "--no-tags", "--prune"]
        if depth > 0:
            args.append(f"--depth={depth}")
        await self._run(*args, remote, ref)

    async def checkout(self, ref: str) -> None:
        await self._run("checkout", "--quiet", "--force", ref)

    async def config(
        self,
        key: str,
        value: str,
        global_config: bool = False,
        add: bool = False,
    ) -> None:
        """Write a git config entry.

        Args:
            key: Config key.
            value: Config value.
            global_config: Write to the user's global config instead of
                the repository's local config.
            add: Append another value instead of replacing existing ones.
        """
        args = ["config", "--global" if global_config else "--local"]
        if add:
            args.append("--add")
        await self._run(*args, key, value)

    async def try_config_unset(self, key: str, global_config: bool = False) -> bool:
        """Remove every value of ``key``; never raises.

        Returns:
            True if git reported success.
        """
        try:
            output = await self._run(
                "config",
                "--global" if global_config else "--local",
                "--unset-all",
                key,
                allow_all_exit_codes=True,
            )
        except GitCommandError:
            logger.warning("Failed to unset git config", extra={"key": key})
            return False
        return output.exit_code == 0

    async def try_config_unset_value(
        self,
        key: str,
        value: str,
        global_config: bool = False,
    ) -> bool:
        """Remove the entries of ``key`` equal to ``value``; never raises.

        Other values of a multi-valued key are left in place.

        Returns:
            True if git reported success.
        """
        try:
            output = await self._run(
                "config",
                "--global" if global_config else "--local",
                "--fixed-value",
                "--unset-all",
                key,
                value,
                allow_all_exit_codes=True,
            )
        except GitCommandError:
            logger.warning("Failed to unset git config value", extra={"key": key})
            return False
        return output.exit_code == 0
