"""GitHub App credential and permission input parsing.

Resolves the app id and private key from step inputs (falling back to
runner environment variables), decodes base64-wrapped keys, and maps the
comma-separated permission request onto a PermissionSet.

Source:
- src/app_checkout/config.py (ActionInputs, RunnerEnvironment)
"""

import base64
import binascii
import logging
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.app_checkout.config import (
    ActionInputs,
    ConfigurationError,
    RunnerEnvironment,
)

logger = logging.getLogger(__name__)

PEM_HEADER = "-----BEGIN"

READ_SUFFIX = "-ro"
WRITE_SUFFIX = "-rw"


class PermissionLevel(str, Enum):
    """Access level requested for a single capability."""

    READ = "read"
    WRITE = "write"


class PermissionSet(BaseModel):
    """Capabilities requested when minting an installation token.

    A capability left as None is not requested at all.
    """

    model_config = ConfigDict(frozen=True)

    contents: Optional[PermissionLevel] = None
    actions: Optional[PermissionLevel] = None
    checks: Optional[PermissionLevel] = None
    administration: Optional[PermissionLevel] = None
    pull_requests: Optional[PermissionLevel] = None
    issues: Optional[PermissionLevel] = None
    workflows: Optional[PermissionLevel] = None

    @classmethod
    def capabilities(cls) -> tuple[str, ...]:
        return tuple(cls.model_fields)

    def to_request(self) -> Dict[str, str]:
        """Render the REST ``permissions`` body, omitting absent capabilities."""
        return {
            name: level.value
            for name, level in self.model_dump(exclude_none=True).items()
        }

    def __bool__(self) -> bool:
        return bool(self.to_request())


class AppCredential(BaseModel):
    """Identity of the GitHub App used to mint tokens.

    Attributes:
        app_id: Numeric app id as a string.
        private_key: Decoded PEM private key.
    """

    model_config = ConfigDict(frozen=True)

    app_id: str = Field(..., min_length=1)
    private_key: str = Field(..., min_length=1, repr=False)


class AppInput(BaseModel):
    """Parsed app block: credential plus requested permissions."""

    model_config = ConfigDict(frozen=True)

    credential: AppCredential
    permissions: PermissionSet


def parse_permissions(permission_input: str) -> PermissionSet:
    """Map a comma-separated capability list onto a PermissionSet.

    Tokens look like ``contents-rw`` or ``issues-ro``; a dash in the
    capability name stands for an underscore (``pull-requests-rw``).
    Unknown capabilities and unrecognised suffixes are ignored so newer
    capability names do not break older steps. Asking for both levels
    of one capability yields write.

    Args:
        permission_input: Raw ``app_permission`` input.

    Returns:
        The requested PermissionSet.
    """
    known = set(PermissionSet.capabilities())
    levels: Dict[str, PermissionLevel] = {}

    for raw_token in permission_input.split(","):
        token = raw_token.strip()
        if token.endswith(WRITE_SUFFIX):
            level = PermissionLevel.WRITE
        elif token.endswith(READ_SUFFIX):
            level = PermissionLevel.READ
        else:
            if token:
                logger.debug("Ignoring permission token", extra={"token": token})
            continue

        name = token.rsplit("-", 1)[0].replace("-", "_")
        if name not in known:
            logger.debug("Ignoring unknown capability", extra={"token": token})
            continue

        if levels.get(name) is not PermissionLevel.WRITE:
            levels[name] = level

    return PermissionSet(**levels)


def decode_private_key(private_key_input: str) -> str:
    """Return the PEM text of a raw or base64-encoded private key.

    Text that already carries a PEM header is never treated as base64.
    Otherwise the input is decoded only when it is strictly valid base64
    whose payload is itself PEM text; anything else is returned as given.

    Args:
        private_key_input: Raw ``app_private_key`` input.

    Returns:
        PEM private key text.
    """
    text = private_key_input.strip()

    if PEM_HEADER in text:
        return text.replace("\\n", "\n")

    compact = "".join(text.split())
    try:
        decoded = base64.b64decode(compact, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return text

    if PEM_HEADER not in decoded:
        return text
    return decoded.strip()


def prepare_app_input(
    inputs: ActionInputs,
    environment: RunnerEnvironment,
) -> AppInput:
    """Build the validated app credential and permission set.

    Args:
        inputs: Step inputs.
        environment: Runner environment with GITHUB_APP_* fallbacks.

    Returns:
        AppInput with decoded credential and permissions.

    Raises:
        ConfigurationError: If the app id or private key is empty.
    """
    app_id = (inputs.app_id or environment.github_app_id).strip()
    private_key_input = (
        inputs.app_private_key or environment.github_app_private_key
    )

    if not app_id:
        raise ConfigurationError(
            "GitHub App id is empty: set the app_id input or GITHUB_APP_ID",
            field="app_id",
        )
    if not private_key_input.strip():
        raise ConfigurationError(
            "GitHub App private key is empty: set the app_private_key "
            "input or GITHUB_APP_PRIVATE_KEY",
            field="app_private_key",
        )

    permissions = parse_permissions(inputs.app_permission)
    logger.info(
        "Parsed app input",
        extra={"app_id": app_id, "permissions": permissions.to_request()},
    )

    return AppInput(
        credential=AppCredential(
            app_id=app_id,
            private_key=decode_private_key(private_key_input),
        ),
        permissions=permissions,
    )
