"""Entry point for the GitHub App checkout step.

Runs the step end to end:
input parsing → installation token → concurrent checkouts → optional
global git credential rewrite. Fatal errors and per-target checkout
failures are reported as workflow error annotations; the process exit
code is non-zero if anything failed.

Run through the ``app-checkout`` console script, or as
``python -m src.app_checkout.main``.

Source:
- src/app_checkout/config.py (get_inputs, get_environment)
- src/app_checkout/inputs (prepare_app_input, parse_checkout_targets)
- src/app_checkout/github/broker.py (InstallationTokenBroker)
- src/app_checkout/checkout (CheckoutDispatcher, CredentialRewriter)
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from src.app_checkout.checkout.credentials import (
    CredentialConfigError,
    CredentialRewriter,
)
from src.app_checkout.checkout.dispatcher import CheckoutDispatcher
from src.app_checkout.checkout.git import GitCommandManager
from src.app_checkout.checkout.source import GitSourceProvider
from src.app_checkout.config import (
    ActionInputs,
    ConfigurationError,
    RunnerEnvironment,
    get_environment,
    get_inputs,
)
from src.app_checkout.github.broker import (
    InstallationTokenBroker,
    TokenBrokerError,
    default_client_factory,
)
from src.app_checkout.inputs.app import prepare_app_input
from src.app_checkout.inputs.targets import ParseError, parse_checkout_targets
from src.app_checkout.runtime.context import ActionsRuntime

logger = logging.getLogger(__name__)

FATAL_ERRORS = (
    ConfigurationError,
    ParseError,
    TokenBrokerError,
    CredentialConfigError,
)


def _configure_logging(runtime: ActionsRuntime) -> None:
    """Configure root logging and redact the runtime's secrets from it."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(runtime.redacting_filter())


def _log_configuration(inputs: ActionInputs, environment: RunnerEnvironment) -> None:
    """Log step configuration without secrets."""
    logger.info("Step configuration:")
    logger.info(f"  App ID: {inputs.app_id or environment.github_app_id or '(empty)'}")
    logger.info(
        "  App Private Key: "
        f"{'provided' if inputs.app_private_key or environment.github_app_private_key else '(empty)'}"
    )
    logger.info(f"  App Permission: {inputs.app_permission}")
    logger.info(f"  Repository: {environment.github_repository}")
    logger.info(f"  GitHub API URL: {environment.github_api_url}")
    logger.info(f"  GitHub Server URL: {environment.github_server_url}")
    logger.info(f"  Working Directory: {inputs.cwd}")
    logger.info(f"  Add Git Config: {inputs.add_git_config}")


def _require_cwd(inputs: ActionInputs) -> str:
    cwd = inputs.cwd.strip()
    if not cwd:
        raise ConfigurationError("Input required and not supplied: cwd", field="cwd")
    return cwd


async def run(
    inputs: ActionInputs,
    environment: RunnerEnvironment,
    runtime: ActionsRuntime,
    broker: Optional[InstallationTokenBroker] = None,
    dispatcher: Optional[CheckoutDispatcher] = None,
    rewriter: Optional[CredentialRewriter] = None,
) -> int:
    """Run the step.

    Both input blocks are parsed before any network call, so a bad
    checkout line fails the step before a token is requested.

    Args:
        inputs: Step inputs.
        environment: Runner environment.
        runtime: Actions runtime for masking and failure reporting.
        broker: Token broker; built from the environment when omitted.
        dispatcher: Checkout dispatcher; built when omitted.
        rewriter: Credential rewriter; built when omitted.

    Returns:
        Process exit code: 0 on success, 1 if anything failed.
    """
    try:
        app_input = prepare_app_input(inputs, environment)
        runtime.set_secret(app_input.credential.private_key)

        cwd = _require_cwd(inputs)
        repository = runtime.repo
        targets = parse_checkout_targets(inputs.checkout, cwd, repository.owner)

        if broker is None:
            broker = InstallationTokenBroker(
                runtime=runtime,
                client_factory=default_client_factory(environment.github_api_url),
            )
        token = await broker.installation_token(
            app_input.credential, app_input.permissions, repository
        )

        if dispatcher is None:
            dispatcher = CheckoutDispatcher(
                source_provider=GitSourceProvider(runtime),
                runtime=runtime,
                server_url=environment.github_server_url,
            )
        with runtime.group(f"Checking out {len(targets)} repositories"):
            await dispatcher.dispatch(token.value, targets)

        if inputs.add_git_config:
            if rewriter is None:
                rewriter = CredentialRewriter(GitCommandManager(Path(cwd)), runtime)
            await rewriter.update_global_credential(
                token.value, environment.github_server_url
            )
    except FATAL_ERRORS as exc:
        logger.error("Step failed", extra={"error_type": type(exc).__name__})
        runtime.set_failed(str(exc))
        return 1

    return 1 if runtime.failed else 0


async def main() -> int:
    """Load configuration from the environment and run the step."""
    runtime = ActionsRuntime()
    _configure_logging(runtime)

    try:
        inputs = get_inputs()
        environment = get_environment()
    except ValidationError as exc:
        runtime.set_failed(f"invalid step configuration: {exc}")
        return 1

    runtime.repository = environment.github_repository
    _log_configuration(inputs, environment)

    try:
        return await run(inputs, environment, runtime)
    except Exception as exc:
        logger.exception("Unexpected step failure")
        runtime.set_failed(f"unexpected error: {exc}")
        return 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
