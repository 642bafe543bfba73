"""Multi-repository checkout input parsing.

Each non-blank line of the ``checkout`` input names one repository of the
current owner and where to put it::

    repoName[@ref] : location

Source:
- src/app_checkout/config.py (ActionInputs.checkout, ActionInputs.cwd)
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_REF = "main"


class ParseError(Exception):
    """Raised when a checkout input line cannot be parsed.

    Attributes:
        line_number: 1-based line number in the checkout input.
        line: The offending line as written.
    """

    def __init__(self, message: str, line_number: int, line: str):
        self.line_number = line_number
        self.line = line
        super().__init__(f"checkout line {line_number} ({line.strip()!r}): {message}")


class CheckoutTarget(BaseModel):
    """One repository-plus-destination entry.

    Attributes:
        owner: Owner of the current run; cross-owner checkout is unsupported.
        repo_name: Repository name without the owner prefix.
        ref: Branch, tag or SHA; None means the default ref.
        location: Absolute destination directory.
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1)
    repo_name: str = Field(..., min_length=1)
    ref: Optional[str] = None
    location: Path

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"

    @property
    def effective_ref(self) -> str:
        return self.ref or DEFAULT_REF


def parse_checkout_line(
    line: str,
    line_number: int,
    owner: str,
    cwd: Path,
) -> CheckoutTarget:
    """Parse a single non-blank ``repoName[@ref] : location`` line.

    Raises:
        ParseError: If the colon, repository name or location is missing.
    """
    repo_and_ref, colon, location = line.partition(":")
    if not colon:
        raise ParseError("expected 'repoName[@ref] : location'", line_number, line)

    repo_name, _, ref = repo_and_ref.strip().partition("@")
    repo_name = repo_name.strip()
    ref = ref.strip()
    location = location.strip()

    if not repo_name:
        raise ParseError("repository name is empty", line_number, line)
    if not location:
        raise ParseError("location is empty", line_number, line)

    return CheckoutTarget(
        owner=owner,
        repo_name=repo_name,
        ref=ref or None,
        location=Path(os.path.normpath(cwd / location)),
    )


def parse_checkout_targets(
    checkout_input: str,
    cwd: str,
    owner: str,
) -> List[CheckoutTarget]:
    """Parse the whole checkout input.

    Blank lines are skipped. Any malformed line fails the whole parse,
    as do two entries whose locations are equal or nested.

    Args:
        checkout_input: Raw ``checkout`` input.
        cwd: Directory that relative locations are resolved against.
        owner: Owner of the current run.

    Returns:
        Targets in input order.

    Raises:
        ParseError: On the first malformed or colliding line.
    """
    base = Path(cwd).resolve()
    targets: List[CheckoutTarget] = []
    seen: Dict[Path, int] = {}

    for index, line in enumerate(checkout_input.splitlines(), start=1):
        if not line.strip():
            continue

        target = parse_checkout_line(line, index, owner, base)
        if target.location in seen:
            raise ParseError(
                f"location {target.location} is already used by line "
                f"{seen[target.location]}",
                index,
                line,
            )
        # Checkouts run concurrently, so no tree may contain another
        for other, other_index in seen.items():
            if other in target.location.parents or target.location in other.parents:
                raise ParseError(
                    f"location {target.location} overlaps {other} "
                    f"from line {other_index}",
                    index,
                    line,
                )
        seen[target.location] = index
        targets.append(target)

    logger.info(
        "Parsed checkout targets",
        extra={"count": len(targets), "cwd": str(base)},
    )
    return targets
