"""Installation token broker.

Turns a GitHub App credential and a requested permission set into one
installation access token for the current repository. The exchange has
three steps, each with its own error so operators can tell a bad app
credential from a missing installation from a refused token:

1. Authenticate as the app (signed JWT, verified with ``GET /app``)
2. Resolve the installation, first by organization then by repository
3. Mint an installation token narrowed to the requested permissions

Source:
- src/app_checkout/github/client.py (GitHubAppClient)
- src/app_checkout/inputs/app.py (AppCredential, PermissionSet)
- src/app_checkout/runtime/context.py (ActionsRuntime.set_secret)
"""

import logging
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.app_checkout.github.client import GitHubAPIError, GitHubAppClient, RateLimitError
from src.app_checkout.inputs.app import AppCredential, PermissionSet
from src.app_checkout.runtime.context import ActionsRuntime, RepositoryContext

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AppCredential], GitHubAppClient]


class TokenBrokerError(Exception):
    """Base class for installation token acquisition failures.

    Attributes:
        step: Which step of the exchange failed.
    """

    step = "token exchange"

    def __init__(self, message: str):
        super().__init__(f"[{self.step}] {message}")


class AuthConfigurationError(TokenBrokerError):
    """Raised when step 1 fails.

    The message says whether the credential was rejected or the check
    itself could not complete (rate limit, unreachable API, server error).
    """

    step = "app authentication"


class InstallationNotFoundError(TokenBrokerError):
    """Raised when the app has no usable installation for the repository.

    Attributes:
        scope: "organization" or "repository", the lookup that failed.
    """

    step = "installation lookup"

    def __init__(self, message: str, scope: str):
        self.scope = scope
        super().__init__(message)


class TokenMintError(TokenBrokerError):
    """Raised when GitHub refuses to mint the installation token."""

    step = "token minting"


class InstallationToken(BaseModel):
    """Short-lived installation access token.

    The value is a secret: it is excluded from ``repr`` and ``str``.

    Attributes:
        value: Token string used as the git/API credential.
        installation_id: Installation the token belongs to.
        scope: Permissions that were requested for the token.
        expires_at: Expiry timestamp as returned by GitHub, if any.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, repr=False)
    installation_id: int
    scope: PermissionSet
    expires_at: Optional[str] = None


def _describe_auth_failure(app_id: str, exc: Exception) -> str:
    """Say whether app authentication failed on the credential or around it."""
    if isinstance(exc, RateLimitError):
        reset = f" (resets at {exc.reset_at})" if exc.reset_at else ""
        return (
            f"GitHub API rate limit exceeded while authenticating as GitHub App "
            f"{app_id}{reset}; retry later"
        )
    if isinstance(exc, GitHubAPIError) and exc.status_code is None:
        return (
            f"could not reach the GitHub API to authenticate GitHub App {app_id}; "
            f"check network access and GITHUB_API_URL"
        )
    if isinstance(exc, GitHubAPIError) and exc.status_code >= 500:
        return (
            f"GitHub API returned {exc.status_code} while authenticating as "
            f"GitHub App {app_id}; retry later"
        )
    return (
        f"could not authenticate as GitHub App {app_id}; "
        f"check the app id and private key"
    )


def default_client_factory(api_url: str) -> ClientFactory:
    """Build a factory producing clients against ``api_url``."""

    def factory(credential: AppCredential) -> GitHubAppClient:
        return GitHubAppClient(
            app_id=credential.app_id,
            private_key=credential.private_key,
            base_url=api_url,
        )

    return factory


class InstallationTokenBroker:
    """Obtains one permission-scoped installation token per run.

    Attributes:
        runtime: Actions runtime used to mask the minted token.
        client_factory: Builds an app-level API client from a credential.
    """

    def __init__(
        self,
        runtime: ActionsRuntime,
        client_factory: ClientFactory,
    ):
        self.runtime = runtime
        self.client_factory = client_factory

    async def installation_token(
        self,
        credential: AppCredential,
        permissions: PermissionSet,
        repository: RepositoryContext,
    ) -> InstallationToken:
        """Run the full three-step exchange.

        Args:
            credential: App id and decoded private key.
            permissions: Capabilities the token should carry.
            repository: Repository of the current run.

        Returns:
            The minted InstallationToken, already registered as a secret.

        Raises:
            AuthConfigurationError: If app authentication fails.
            InstallationNotFoundError: If either installation lookup fails.
            TokenMintError: If the token cannot be minted.
        """
        app = await self._authenticate_app(credential)
        async with app:
            installation_id = await self._resolve_installation(app, repository)
            return await self._mint_token(app, installation_id, permissions)

    async def _authenticate_app(self, credential: AppCredential) -> GitHubAppClient:
        """Step 1: build an app-level client and prove the credential works."""
        app = self.client_factory(credential)
        try:
            await app.get_authenticated_app()
        except Exception as exc:
            await app.close()
            logger.error(
                "GitHub App authentication failed",
                extra={"app_id": credential.app_id, "error_type": type(exc).__name__},
            )
            raise AuthConfigurationError(
                f"{_describe_auth_failure(credential.app_id, exc)} : {exc}"
            ) from exc
        return app

    async def _resolve_installation(
        self,
        app: GitHubAppClient,
        repository: RepositoryContext,
    ) -> int:
        """Step 2: resolve the installation id, broad lookup then narrow.

        The repository-scoped id overwrites the organization-scoped one.
        """
        try:
            installation = await app.get_org_installation(repository.owner)
            installation_id = installation["id"]
        except Exception as exc:
            raise InstallationNotFoundError(
                f"could not get the installation for {repository.owner}. "
                f"Is the app installed on this organization? : {exc}",
                scope="organization",
            ) from exc

        logger.debug(
            "Resolved organization installation",
            extra={"org": repository.owner, "installation_id": installation_id},
        )

        try:
            installation = await app.get_repo_installation(
                repository.owner, repository.repo
            )
            installation_id = installation["id"]
        except Exception as exc:
            raise InstallationNotFoundError(
                f"this app is not authorized for {repository.full_name}. "
                f"Ask an administrator of {repository.owner} to grant the app "
                f"access to this repository : {exc}",
                scope="repository",
            ) from exc

        logger.info(
            "Resolved repository installation",
            extra={
                "repository": repository.full_name,
                "installation_id": installation_id,
            },
        )
        return installation_id

    async def _mint_token(
        self,
        app: GitHubAppClient,
        installation_id: int,
        permissions: PermissionSet,
    ) -> InstallationToken:
        """Step 3: mint the token and mask it before anything else."""
        try:
            data = await app.create_installation_token(
                installation_id, permissions.to_request()
            )
            value = data["token"]
        except Exception as exc:
            raise TokenMintError(
                f"could not create an access token for installation "
                f"{installation_id} with permissions "
                f"{permissions.to_request()} : {exc}"
            ) from exc

        self.runtime.set_secret(value)

        logger.info(
            "Installation token created",
            extra={
                "installation_id": installation_id,
                "expires_at": data.get("expires_at"),
            },
        )
        return InstallationToken(
            value=value,
            installation_id=installation_id,
            scope=permissions,
            expires_at=data.get("expires_at"),
        )
