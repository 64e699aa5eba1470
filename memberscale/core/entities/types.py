"""
Common type definitions shared by the scalers, the reconcile worker and callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from memberscale.core.entities.topology import Topology
from memberscale.core.errors import FAILURE_KINDS, RequeueError, ScalingError


class ScaleDirection(str, Enum):
    OUT = "out"
    IN = "in"
    NONE = "none"


@dataclass(frozen=True)
class ScaleStep:
    """The single ordinal change between an observed and a desired topology."""

    direction: ScaleDirection
    ordinal: Optional[int]
    topology: Topology

    @property
    def is_noop(self) -> bool:
        return self.direction is ScaleDirection.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "ordinal": self.ordinal,
            "topology": self.topology.to_dict(),
        }


class ScaleOutcome(str, Enum):
    """Outcome of one ``Scaler.scale`` call."""

    OK = "ok"
    REQUEUE = "requeue"
    FAILED = "failed"


@dataclass(frozen=True)
class ScaleResult:
    """
    Tagged result of a scaling attempt.

    ``OK`` means the step was committed (or nothing had to change), ``REQUEUE`` is
    an expected wait that must not trigger failure backoff, ``FAILED`` carries the
    failure ``kind`` and the underlying exception.
    """

    outcome: ScaleOutcome
    step: Optional[ScaleStep] = None
    reason: str = ""
    kind: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, step: Optional[ScaleStep] = None) -> "ScaleResult":
        return cls(outcome=ScaleOutcome.OK, step=step)

    @classmethod
    def requeue(
        cls,
        reason: str,
        step: Optional[ScaleStep] = None,
        error: Optional[RequeueError] = None,
    ) -> "ScaleResult":
        return cls(outcome=ScaleOutcome.REQUEUE, step=step, reason=reason, error=error or RequeueError(reason))

    @classmethod
    def failed(cls, error: ScalingError, step: Optional[ScaleStep] = None) -> "ScaleResult":
        return cls(outcome=ScaleOutcome.FAILED, step=step, reason=str(error), kind=error.kind, error=error)

    @property
    def succeeded(self) -> bool:
        return self.outcome is ScaleOutcome.OK

    @property
    def committed(self) -> bool:
        """True when the desired topology object was mutated."""
        return self.succeeded and self.step is not None and not self.step.is_noop

    @property
    def backoff(self) -> bool:
        """Whether the caller should apply its failure-rate backoff."""
        return self.outcome is ScaleOutcome.FAILED

    def raise_for_failure(self) -> None:
        if self.outcome is ScaleOutcome.OK:
            return
        if self.error is not None:
            raise self.error
        if self.outcome is ScaleOutcome.REQUEUE:
            raise RequeueError(self.reason)
        raise FAILURE_KINDS.get(self.kind or "", ScalingError)(self.reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "step": self.step.to_dict() if self.step else None,
            "reason": self.reason,
            "kind": self.kind,
        }
