"""Tagged result of attempting a single probe."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class Success:
    """The probe ran; ``exit_status`` may be non-zero for degraded states."""

    raw: str
    exit_status: int = 0
    status: ClassVar[str] = "success"


@dataclass(frozen=True)
class BinaryMissing:
    binary: str
    status: ClassVar[str] = "binary-missing"


@dataclass(frozen=True)
class ExecutionFailed:
    """Launch error or timeout. ``raw`` holds any output captured before it."""

    detail: str
    raw: str = ""
    status: ClassVar[str] = "failed"


@dataclass(frozen=True)
class Skipped:
    reason: str
    status: ClassVar[str] = "skipped"


Outcome = Union[Success, BinaryMissing, ExecutionFailed, Skipped]


def raw_text(outcome: Outcome | None) -> str:
    """Return the probe output for a successful outcome, else an empty string."""
    if isinstance(outcome, Success):
        return outcome.raw
    return ""
