"""Repository source fetching.

Fetches one repository at one ref into one destination directory. Every
call receives its full configuration as a SourceSettings value, so
concurrent fetches share no state.

Source:
- src/app_checkout/checkout/git.py (GitCommandManager)
- src/app_checkout/checkout/credentials.py (basic credential helpers)
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.app_checkout.checkout.credentials import (
    ServerOrigin,
    encode_basic_credential,
    extra_header_key,
    extra_header_value,
)
from src.app_checkout.checkout.git import GitCommandManager
from src.app_checkout.runtime.context import ActionsRuntime

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"

GitFactory = Callable[[Path], GitCommandManager]


class SourceSettings(BaseModel):
    """Everything needed to fetch one repository.

    Attributes:
        repository_owner: Owner of the repository.
        repository_name: Repository name.
        ref: Branch, tag or commit SHA to check out.
        path: Absolute destination directory.
        token: Token used for the fetch.
        server_url: GitHub server URL.
        fetch_depth: Commits to fetch; 0 fetches all history.
    """

    model_config = ConfigDict(frozen=True)

    repository_owner: str = Field(..., min_length=1)
    repository_name: str = Field(..., min_length=1)
    ref: str = Field(..., min_length=1)
    path: Path
    token: str = Field(..., min_length=1, repr=False)
    server_url: str = "https://github.com"
    fetch_depth: int = Field(default=1, ge=0)

    @property
    def full_name(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def remote_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.full_name}"


class GitSourceProvider:
    """Checks out a repository with git.

    The basic-auth header is written to the destination repository's
    local config, the way ``actions/checkout`` persists credentials.

    Attributes:
        runtime: Actions runtime used to mask the basic credential.
        git_factory: Builds a command manager for a destination directory.
    """

    def __init__(
        self,
        runtime: ActionsRuntime,
        git_factory: Optional[GitFactory] = None,
    ):
        self.runtime = runtime
        self.git_factory = git_factory or GitCommandManager

    async def get_source(self, settings: SourceSettings) -> None:
        """Fetch ``settings.ref`` of the repository into ``settings.path``.

        Raises:
            GitCommandError: If any git command fails.
            OSError: If the destination cannot be created.
        """
        settings.path.mkdir(parents=True, exist_ok=True)
        git = self.git_factory(settings.path)

        if not git.is_repository():
            await git.init()
        await git.set_remote(REMOTE_NAME, settings.remote_url)

        basic_credential = encode_basic_credential(settings.token)
        self.runtime.set_secret(basic_credential)
        origin = ServerOrigin.from_url(settings.server_url)
        await git.config(
            extra_header_key(origin),
            extra_header_value(basic_credential),
        )

        logger.info(
            "Fetching repository",
            extra={
                "repository": settings.full_name,
                "ref": settings.ref,
                "path": str(settings.path),
            },
        )
        await git.fetch(REMOTE_NAME, settings.ref, depth=settings.fetch_depth)
        await git.checkout("FETCH_HEAD")
