"""Step input parsing.

This module turns raw step inputs into validated values:
- App credential and requested permission set
- Ordered checkout targets from the multi-line checkout input
"""

from src.app_checkout.inputs.app import (
    AppCredential,
    AppInput,
    PermissionLevel,
    PermissionSet,
    decode_private_key,
    parse_permissions,
    prepare_app_input,
)
from src.app_checkout.inputs.targets import (
    CheckoutTarget,
    ParseError,
    parse_checkout_targets,
)

__all__ = [
    "AppCredential",
    "AppInput",
    "CheckoutTarget",
    "ParseError",
    "PermissionLevel",
    "PermissionSet",
    "decode_private_key",
    "parse_checkout_targets",
    "parse_permissions",
    "prepare_app_input",
]
