"""Workflow-command runtime for GitHub Actions steps.

The Actions runner scans a step's stdout for workflow commands of the
form ``::command::value``. This module emits the handful the step needs
and keeps the run-level failure flag that decides the exit code.

Source:
- src/app_checkout/config.py (RunnerEnvironment, ConfigurationError)
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Set, TextIO

from src.app_checkout.config import ConfigurationError

REDACTED = "***"


def escape_command_value(value: str) -> str:
    """Escape a workflow-command value the way the Actions toolkit does."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


@dataclass(frozen=True)
class RepositoryContext:
    """Repository the workflow run belongs to.

    Attributes:
        owner: User or organization owning the repository.
        repo: Repository name without the owner prefix.
    """

    owner: str
    repo: str

    @classmethod
    def from_slug(cls, slug: str) -> "RepositoryContext":
        """Parse an ``owner/repo`` slug such as GITHUB_REPOSITORY.

        Raises:
            ConfigurationError: If the slug is empty or malformed.
        """
        owner, _, repo = slug.strip().partition("/")
        if not owner or not repo or "/" in repo:
            raise ConfigurationError(
                f"GITHUB_REPOSITORY must be 'owner/repo', got {slug!r}",
                field="GITHUB_REPOSITORY",
            )
        return cls(owner=owner, repo=repo)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class ActionsRuntime:
    """Emits workflow commands and tracks whether the run has failed.

    A failure reported through ``set_failed`` does not stop the step; it
    only marks it so the entry point exits non-zero once everything that
    can run has run.

    Attributes:
        repository: Slug of the current repository ("owner/repo").
        failed: True once any failure has been reported.
        secrets: Values registered for masking.
    """

    def __init__(self, repository: str = "", stream: Optional[TextIO] = None):
        self.repository = repository
        self.failed = False
        self.secrets: Set[str] = set()
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def repo(self) -> RepositoryContext:
        """The current run's repository.

        Raises:
            ConfigurationError: If GITHUB_REPOSITORY is missing or malformed.
        """
        return RepositoryContext.from_slug(self.repository)

    def _issue(self, command: str, value: str) -> None:
        self.stream.write(f"::{command}::{escape_command_value(value)}\n")
        self.stream.flush()

    def set_secret(self, value: str) -> None:
        """Register a value so the runner masks it in all later output."""
        if not value:
            return
        self.secrets.add(value)
        self._issue("add-mask", value)

    def set_failed(self, message: str) -> None:
        """Annotate the run with an error and mark it failed."""
        self.failed = True
        self._issue("error", message)

    def warning(self, message: str) -> None:
        self._issue("warning", message)

    def info(self, message: str) -> None:
        self.stream.write(f"{message}\n")
        self.stream.flush()

    @contextmanager
    def group(self, title: str) -> Iterator[None]:
        """Fold everything written inside the block under ``title``."""
        self._issue("group", title)
        try:
            yield
        finally:
            self.stream.write("::endgroup::\n")
            self.stream.flush()

    def redacting_filter(self) -> "SecretRedactingFilter":
        """Build a log filter that redacts this runtime's secrets."""
        return SecretRedactingFilter(self.secrets)


class SecretRedactingFilter(logging.Filter):
    """Replace registered secrets in log records with a placeholder.

    The runner already masks registered values in step output; this
    filter keeps them out of any other handler the process configures.
    """

    def __init__(self, secrets: Set[str]):
        super().__init__()
        self._secrets = secrets

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
