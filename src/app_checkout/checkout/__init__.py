"""Repository checkout and git credential configuration.

This module handles everything that touches git:
- Async git subprocess execution
- Fetching one repository into one destination
- Concurrent multi-target dispatch with per-target failure isolation
- Global git credential rewriting for later steps in the job
"""

from src.app_checkout.checkout.credentials import (
    CredentialConfigError,
    CredentialRewriter,
    ServerOrigin,
)
from src.app_checkout.checkout.dispatcher import CheckoutDispatcher, CheckoutOutcome
from src.app_checkout.checkout.git import GitCommandError, GitCommandManager
from src.app_checkout.checkout.source import GitSourceProvider, SourceSettings

__all__ = [
    "CheckoutDispatcher",
    "CheckoutOutcome",
    "CredentialConfigError",
    "CredentialRewriter",
    "GitCommandError",
    "GitCommandManager",
    "GitSourceProvider",
    "ServerOrigin",
    "SourceSettings",
]
