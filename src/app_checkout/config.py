"""Step configuration using pydantic-settings.

GitHub Actions exposes step inputs as ``INPUT_<NAME>`` environment
variables and runner context as ``GITHUB_*`` variables. Both surfaces are
read here; deciding whether a value is usable (an empty app id, an empty
cwd) is left to the input parsers so they can raise domain errors.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required step configuration is missing or invalid.

    Attributes:
        field: Name of the offending input or environment variable.
    """

    def __init__(self, message: str, field: str = ""):
        self.field = field
        super().__init__(message)


class ActionInputs(BaseSettings):
    """Step inputs declared in action.yml.

    All environment variables are prefixed with INPUT_ (e.g., INPUT_APP_ID).
    The Actions runner sets declared-but-unsupplied inputs to an empty
    string, so every field defaults to empty.
    """

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub App
    # -------------------------------------------------------------------------
    app_id: str = ""

    # Raw PEM or base64-encoded PEM
    app_private_key: str = ""

    # Comma-separated capability tokens, e.g. "contents-rw,issues-ro"
    app_permission: str = ""

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------
    # One "repoName[@ref] : location" entry per line
    checkout: str = ""

    # Directory that checkout locations are resolved against
    cwd: str = ""

    # Rewrite global git credentials after checkout
    add_git_config: bool = False

    @field_validator("add_git_config", mode="before")
    @classmethod
    def parse_add_git_config(cls, v: object) -> bool:
        """Treat only the string "true" (any case) as enabled."""
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() == "true"


class RunnerEnvironment(BaseSettings):
    """Ambient runner environment (GitHub Actions default variables)."""

    model_config = SettingsConfigDict(case_sensitive=False)

    # Fallbacks used when the corresponding step input is empty
    github_app_id: str = ""
    github_app_private_key: str = ""

    # "owner/repo" of the workflow run
    github_repository: str = ""

    # Supports GitHub Enterprise Server
    github_api_url: str = "https://api.github.com"
    github_server_url: str = "https://github.com"

    github_workspace: str = ""

    @field_validator("github_api_url", "github_server_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that URLs use http(s) and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")


def get_inputs() -> ActionInputs:
    """Create and return ActionInputs read from the environment."""
    return ActionInputs()


def get_environment() -> RunnerEnvironment:
    """Create and return RunnerEnvironment read from the environment.

    Raises:
        pydantic.ValidationError: If a URL variable is malformed.
    """
    return RunnerEnvironment()
