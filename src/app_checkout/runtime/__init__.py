"""GitHub Actions runtime primitives.

This module talks to the Actions runner through workflow commands:
- Secret masking (::add-mask::)
- Error and warning annotations (::error::, ::warning::)
- Collapsible log groups (::group::)

It also tracks the run-level failure flag and redacts registered
secrets from Python log records.
"""

from src.app_checkout.runtime.context import (
    ActionsRuntime,
    RepositoryContext,
    SecretRedactingFilter,
)

__all__ = [
    "ActionsRuntime",
    "RepositoryContext",
    "SecretRedactingFilter",
]
