"""GitHub App authentication.

This module exchanges a GitHub App identity for an installation token:
- App JWT signing and the GitHub App REST calls
- Installation lookup by organization and by repository
- Permission-scoped installation token minting
"""

from src.app_checkout.github.broker import (
    AuthConfigurationError,
    InstallationNotFoundError,
    InstallationToken,
    InstallationTokenBroker,
    TokenBrokerError,
    TokenMintError,
    default_client_factory,
)
from src.app_checkout.github.client import (
    GitHubAPIError,
    GitHubAppClient,
    RateLimitError,
    generate_app_jwt,
)

__all__ = [
    "AuthConfigurationError",
    "GitHubAPIError",
    "GitHubAppClient",
    "InstallationNotFoundError",
    "InstallationToken",
    "InstallationTokenBroker",
    "RateLimitError",
    "TokenBrokerError",
    "TokenMintError",
    "default_client_factory",
    "generate_app_jwt",
]
