"""Multi-target checkout dispatch.

Runs one checkout per target concurrently and waits for all of them.
A failing target is reported and recorded without stopping its
siblings; the run is marked failed but never aborted from here.

Source:
- src/app_checkout/inputs/targets.py (CheckoutTarget)
- src/app_checkout/checkout/source.py (SourceSettings, GitSourceProvider)
- src/app_checkout/runtime/context.py (ActionsRuntime.set_failed)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from src.app_checkout.checkout.source import SourceSettings
from src.app_checkout.inputs.targets import CheckoutTarget
from src.app_checkout.runtime.context import ActionsRuntime

logger = logging.getLogger(__name__)


class SourceProvider(Protocol):
    """Anything that can fetch a repository from explicit settings."""

    async def get_source(self, settings: SourceSettings) -> None:
        ...


@dataclass
class CheckoutOutcome:
    """Result of one target's checkout.

    Attributes:
        target: The target that was checked out.
        succeeded: True when the checkout completed.
        reason: Failure description when it did not.
    """

    target: CheckoutTarget
    succeeded: bool
    reason: Optional[str] = None


class CheckoutDispatcher:
    """Checks out every target with the installation token.

    Attributes:
        source_provider: Performs the actual fetch for one target.
        runtime: Actions runtime for failure reporting.
        server_url: GitHub server URL the repositories live on.
    """

    def __init__(
        self,
        source_provider: SourceProvider,
        runtime: ActionsRuntime,
        server_url: str = "https://github.com",
    ):
        self.source_provider = source_provider
        self.runtime = runtime
        self.server_url = server_url

    def build_settings(self, token: str, target: CheckoutTarget) -> SourceSettings:
        """Map a target onto explicit source settings (ref defaults to main)."""
        return SourceSettings(
            repository_owner=target.owner,
            repository_name=target.repo_name,
            ref=target.effective_ref,
            path=target.location,
            token=token,
            server_url=self.server_url,
        )

    async def dispatch(
        self,
        token: str,
        targets: Sequence[CheckoutTarget],
    ) -> List[CheckoutOutcome]:
        """Check out all targets concurrently and collect every outcome.

        Args:
            token: Installation token value.
            targets: Parsed checkout targets.

        Returns:
            One outcome per target, in target order.
        """
        outcomes = await asyncio.gather(
            *(self._checkout_repository(token, target) for target in targets)
        )

        failed = [o for o in outcomes if not o.succeeded]
        logger.info(
            "Checkout dispatch complete",
            extra={"total": len(outcomes), "failed": len(failed)},
        )
        return list(outcomes)

    async def _checkout_repository(
        self,
        token: str,
        target: CheckoutTarget,
    ) -> CheckoutOutcome:
        """Check out a single target, converting any error into an outcome."""
        try:
            settings = self.build_settings(token, target)
            await self.source_provider.get_source(settings)
        except Exception as exc:
            reason = f"fail to checkout for {target.full_name} : {exc}"
            logger.error(
                "Checkout failed",
                extra={"repository": target.full_name, "path": str(target.location)},
            )
            self.runtime.set_failed(reason)
            return CheckoutOutcome(target=target, succeeded=False, reason=reason)

        logger.info(
            "Checked out repository",
            extra={
                "repository": target.full_name,
                "ref": target.effective_ref,
                "path": str(target.location),
            },
        )
        return CheckoutOutcome(target=target, succeeded=True)
