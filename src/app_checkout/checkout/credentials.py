"""Global git credential rewriting.

Makes the installation token usable by any later git command in the
job, not only the checkouts this step performs:
- An ``http.<origin>/.extraheader`` entry carrying a basic-auth header
- ``url.<origin>/.insteadOf`` rules sending SSH-style remotes to HTTPS

If any write fails the extra header, and any insteadOf rule written by
this step, is unset before the error is raised. insteadOf rules that
were already configured are left alone.

Source:
- src/app_checkout/checkout/git.py (GitCommandManager.config)
- src/app_checkout/runtime/context.py (ActionsRuntime.set_secret)
"""

import base64
import logging
from dataclasses import dataclass
from typing import List

import httpx

from src.app_checkout.checkout.git import GitCommandManager
from src.app_checkout.runtime.context import ActionsRuntime

logger = logging.getLogger(__name__)

TOKEN_USERNAME = "x-access-token"


class CredentialConfigError(Exception):
    """Raised when the global git credential configuration cannot be written."""

    pass


@dataclass(frozen=True)
class ServerOrigin:
    """Scheme, host and port of the GitHub server.

    Attributes:
        origin: ``scheme://host[:port]``.
        hostname: Host name without the port.
    """

    origin: str
    hostname: str

    @classmethod
    def from_url(cls, server_url: str) -> "ServerOrigin":
        url = httpx.URL(server_url)
        origin = f"{url.scheme}://{url.host}"
        if url.port is not None:
            origin = f"{origin}:{url.port}"
        return cls(origin=origin, hostname=url.host)


def encode_basic_credential(token: str) -> str:
    """Base64 of ``x-access-token:<token>`` for an HTTP basic header."""
    return base64.b64encode(f"{TOKEN_USERNAME}:{token}".encode("utf-8")).decode("ascii")


def extra_header_key(origin: ServerOrigin) -> str:
    return f"http.{origin.origin}/.extraheader"


def extra_header_value(basic_credential: str) -> str:
    return f"AUTHORIZATION: basic {basic_credential}"


def insteadof_key(origin: ServerOrigin) -> str:
    return f"url.{origin.origin}/.insteadOf"


def insteadof_values(origin: ServerOrigin) -> List[str]:
    """SSH-style remote prefixes rewritten to the HTTPS origin."""
    host = origin.hostname
    return [
        f"git@{host}:",
        f"ssh://git@{host}:",
        f"git@{host}/",
        f"ssh://git@{host}/",
    ]


class CredentialRewriter:
    """Writes global git config so later git commands authenticate as the app.

    Attributes:
        git: Command manager used for the global config writes.
        runtime: Actions runtime used to mask the basic credential.
    """

    def __init__(self, git: GitCommandManager, runtime: ActionsRuntime):
        self.git = git
        self.runtime = runtime

    async def update_global_credential(self, token: str, server_url: str) -> None:
        """Write the extra header and insteadOf rules for ``server_url``.

        Args:
            token: Installation token.
            server_url: GitHub server URL (e.g. https://github.com).

        Raises:
            CredentialConfigError: If any write fails; the extra header and
                the rewrite rules added here have been unset (best
                effort) by the time this is raised.
        """
        origin = ServerOrigin.from_url(server_url)

        basic_credential = encode_basic_credential(token)
        self.runtime.set_secret(basic_credential)

        header_key = extra_header_key(origin)
        rewrite_key = insteadof_key(origin)
        added: List[str] = []

        try:
            await self.git.config(
                header_key,
                extra_header_value(basic_credential),
                global_config=True,
            )
            for value in insteadof_values(origin):
                await self.git.config(
                    rewrite_key, value, global_config=True, add=True
                )
                added.append(value)
        except Exception as exc:
            logger.warning(
                "Failed to configure global git credential, attempting unconfigure",
                extra={"origin": origin.origin},
            )
            await self.git.try_config_unset(header_key, global_config=True)
            # Only the rules written here; existing insteadOf rules stay
            for value in added:
                await self.git.try_config_unset_value(
                    rewrite_key, value, global_config=True
                )
            raise CredentialConfigError(
                f"failed to configure git credentials for {origin.origin} : {exc}"
            ) from exc

        logger.info(
            "Configured global git credential",
            extra={"origin": origin.origin},
        )
