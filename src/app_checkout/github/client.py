"""GitHub App REST client.

This module provides an async wrapper around the GitHub API for the calls
a GitHub App makes as itself (authenticated with a signed JWT):
- Verifying the app's own identity
- Resolving an installation by organization or by repository
- Minting installation access tokens

The client never retries; a failed call surfaces immediately so the
caller can say which step failed.

Source:
- src/app_checkout/config.py (github_api_url)
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import httpx
import jwt

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs valid for more than 10 minutes
JWT_LIFETIME_SECONDS = 9 * 60
# Backdated to tolerate clock drift between runner and GitHub
JWT_CLOCK_DRIFT_SECONDS = 60


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at


def generate_app_jwt(
    app_id: str,
    private_key: str,
    now: Optional[int] = None,
) -> str:
    """Sign a short-lived RS256 JWT identifying the GitHub App.

    Args:
        app_id: GitHub App id, used as the issuer.
        private_key: PEM private key registered for the app.
        now: Unix timestamp to sign at; defaults to the current time.

    Returns:
        Encoded JWT.

    Raises:
        jwt.PyJWTError, ValueError: If the key cannot sign RS256.
    """
    issued_at = int(time.time()) if now is None else now
    payload = {
        "iat": issued_at - JWT_CLOCK_DRIFT_SECONDS,
        "exp": issued_at + JWT_LIFETIME_SECONDS,
        "iss": app_id,
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class GitHubAppClient:
    """Async GitHub API client authenticated as a GitHub App.

    Attributes:
        app_id: GitHub App id.
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubAppClient(app_id="123", private_key=pem) as app:
        ...     installation = await app.get_repo_installation("acme", "widgets")
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub App client.

        Args:
            app_id: GitHub App id.
            private_key: PEM private key for signing the app JWT.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        self.app_id = app_id
        self._private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def __repr__(self) -> str:
        return f"GitHubAppClient(app_id={self.app_id!r}, base_url={self.base_url!r})"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, signing a fresh app JWT if necessary.

        Raises:
            jwt.PyJWTError, ValueError: If the private key cannot sign.
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        """Build default headers for GitHub API requests.

        Returns:
            Dictionary of HTTP headers.
        """
        app_jwt = generate_app_jwt(self.app_id, self._private_key)
        return {
            "Authorization": f"Bearer {app_jwt}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "app-checkout-action/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubAppClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit - close the client."""
        await self.close()

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        """Parse an integer header value.

        Returns:
            Integer value or None if not present/invalid.
        """
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            remaining = self._parse_int_header(
                response.headers, "x-ratelimit-remaining"
            )
            return remaining == 0
        return False

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request.

        Args:
            method: HTTP method (GET, POST).
            path: API path (e.g., /repos/owner/repo/installation).
            json_data: Optional JSON body for the request.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails or returns an error status.
            RateLimitError: If rate limit is exceeded.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
            )
        except httpx.RequestError as e:
            logger.error(
                "GitHub API request failed",
                extra={"path": path, "method": method, "error": str(e)},
            )
            raise GitHubAPIError(
                message=f"Request to {path} failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if self._is_rate_limited(response):
            reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")
            logger.warning(
                "GitHub API rate limit exceeded",
                extra={"path": path, "reset_at": reset_at},
            )
            raise RateLimitError(
                message="GitHub API rate limit exceeded",
                status_code=response.status_code,
                reset_at=reset_at,
                request_url=str(response.url),
            )

        if response.status_code >= 400:
            error_body = response.text
            logger.error(
                "GitHub API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "method": method,
                    "response_body": error_body[:500],
                },
            )
            raise GitHubAPIError(
                message=f"GitHub API error: {response.status_code} "
                f"{_error_detail(error_body)}".rstrip(),
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        return response

    async def get_authenticated_app(self) -> Dict[str, Any]:
        """Get the app the JWT authenticates as.

        Returns:
            App data from GitHub API.

        Raises:
            GitHubAPIError: If the JWT is rejected.
        """
        response = await self._request(method="GET", path="/app")
        result = response.json()
        logger.info(
            "Authenticated as GitHub App",
            extra={"app_id": self.app_id, "app_slug": result.get("slug")},
        )
        return result

    async def get_org_installation(self, org: str) -> Dict[str, Any]:
        """Get the app's installation on an organization.

        Args:
            org: Organization login.

        Returns:
            Installation data from GitHub API.

        Raises:
            GitHubAPIError: If the app is not installed on the organization.
        """
        logger.debug("Resolving organization installation", extra={"org": org})
        response = await self._request(method="GET", path=f"/orgs/{org}/installation")
        return response.json()

    async def get_repo_installation(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get the app's installation for a single repository.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.

        Returns:
            Installation data from GitHub API.

        Raises:
            GitHubAPIError: If the app cannot access the repository.
        """
        logger.debug(
            "Resolving repository installation",
            extra={"owner": owner, "repo": repo},
        )
        response = await self._request(
            method="GET", path=f"/repos/{owner}/{repo}/installation"
        )
        return response.json()

    async def create_installation_token(
        self,
        installation_id: int,
        permissions: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Mint an installation access token.

        Args:
            installation_id: Installation to mint the token for.
            permissions: Capability-to-level mapping to narrow the token to.
                         None or empty requests the installation's defaults.

        Returns:
            Token data (``token``, ``expires_at``, ``permissions``).

        Raises:
            GitHubAPIError: If the token cannot be minted.
        """
        logger.info(
            "Creating installation access token",
            extra={"installation_id": installation_id, "permissions": permissions},
        )
        response = await self._request(
            method="POST",
            path=f"/app/installations/{installation_id}/access_tokens",
            json_data={"permissions": permissions} if permissions else None,
        )
        return response.json()


def _error_detail(body: str) -> str:
    """Pull GitHub's ``message`` field out of an error body, if any."""
    try:
        return str(json.loads(body).get("message", ""))
    except (ValueError, AttributeError):
        return ""
