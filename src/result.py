"""Execution result model for pipesh.

Every stage, and every pipeline as a whole, produces one ExecutionResult.
The outcome is a tagged value; the two-flag view (``interrupted`` /
``terminated``) is derived from it for callers that want the flat shape.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

PARSE_ERROR_MESSAGE = "Error: failed to parse command sequence"


class Outcome(Enum):
    CONTINUE = "continue"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ExecutionResult:
    outcome: Outcome
    text: str = ""

    @classmethod
    def success(cls, text: str = "") -> "ExecutionResult":
        return cls(Outcome.CONTINUE, text)

    @classmethod
    def failure(cls, message: str) -> "ExecutionResult":
        return cls(Outcome.FAILED, message)

    @classmethod
    def termination(cls) -> "ExecutionResult":
        return cls(Outcome.TERMINATED, "")

    @property
    def interrupted(self) -> bool:
        """True when no further stage may run (error or exit request)."""
        return self.outcome is not Outcome.CONTINUE

    @property
    def terminated(self) -> bool:
        """True only for a clean stop requested by the session (``exit``)."""
        return self.outcome is Outcome.TERMINATED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "interrupted": self.interrupted,
            "text": self.text,
            "terminated": self.terminated,
        }


PARSE_ERROR = ExecutionResult.failure(PARSE_ERROR_MESSAGE)
