"""
CONVERGENCE: Verdicts of the refinement loop and its trajectory

The loop unfolds the observation table until a fixed point:

    (S₀, E₀) → (S₁, E₁) → ... → (S*, E*)   closed ∧ consistent

NotClosed and NotConsistent are not errors: they are the two loop states
that trigger table growth. The trace records every step so a run can be
inspected after the fact.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from .categorical_core import Morphism, Point, QueryInput
from .category import Commutation


# ============================================================================
# VERDICTS
# ============================================================================

class Verdict(Enum):
    """Outcome of one predicate check"""
    CLOSED = "closed"
    NOT_CLOSED = "not_closed"
    CONSISTENT = "consistent"
    NOT_CONSISTENT = "not_consistent"


@dataclass
class ClosednessResult:
    """
    Closedness of the wrapper: closeW: FS → H exists with m ∘ closeW = row_FS.
    On failure, ``witnesses`` are the points of S×A whose rows H lacks.
    """
    verdict: Verdict
    witnesses: List[Point] = field(default_factory=list)
    morphism: Optional[Morphism] = None

    @property
    def is_closed(self) -> bool:
        return self.verdict == Verdict.CLOSED

    @staticmethod
    def closed(morphism: Morphism) -> 'ClosednessResult':
        return ClosednessResult(verdict=Verdict.CLOSED, morphism=morphism)

    @staticmethod
    def not_closed(witnesses: List[Point]) -> 'ClosednessResult':
        return ClosednessResult(verdict=Verdict.NOT_CLOSED, witnesses=list(witnesses))


@dataclass(frozen=True)
class Inconsistency:
    """
    Two extensions s₁·a, s₂·a collapsed onto the same point of FH whose rows
    differ at suffix e. The experiment a·e separates s₁ from s₂.
    """
    first: Point
    second: Point
    symbol: str
    suffix: QueryInput
    experiment: QueryInput

    def __str__(self) -> str:
        return f"{self.first} / {self.second} differ on {self.suffix} after {self.symbol}"


@dataclass
class ConsistencyResult:
    """
    Consistency of the wrapper: row_FS factors through F(e): S×A → FH.
    """
    verdict: Verdict
    witnesses: List[Inconsistency] = field(default_factory=list)
    morphism: Optional[Morphism] = None
    commutation: Optional[Commutation] = None

    @property
    def is_consistent(self) -> bool:
        return self.verdict == Verdict.CONSISTENT

    @staticmethod
    def consistent(
        morphism: Morphism,
        commutation: Optional[Commutation] = None
    ) -> 'ConsistencyResult':
        return ConsistencyResult(
            verdict=Verdict.CONSISTENT,
            morphism=morphism,
            commutation=commutation
        )

    @staticmethod
    def not_consistent(witnesses: List[Inconsistency]) -> 'ConsistencyResult':
        return ConsistencyResult(verdict=Verdict.NOT_CONSISTENT, witnesses=list(witnesses))


# ============================================================================
# TRAJECTORY
# ============================================================================

@dataclass
class RefinementStep:
    """One pass of the loop"""
    iteration: int
    verdict: Verdict
    prefix_size: int
    suffix_size: int
    states: int
    added: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "verdict": self.verdict.value,
            "prefix_size": self.prefix_size,
            "suffix_size": self.suffix_size,
            "states": self.states,
            "added": list(self.added),
        }


class RefinementTrace:
    """Trajectory of the refinement loop plus oracle statistics"""

    def __init__(self):
        self.steps: List[RefinementStep] = []
        self.converged = False
        self.membership_queries = 0
        self.cache_hits = 0

    def record(self, step: RefinementStep) -> None:
        self.steps.append(step)
        if step.verdict == Verdict.CONSISTENT:
            self.converged = True

    @property
    def iterations(self) -> int:
        return len(self.steps)

    def count(self, verdict: Verdict) -> int:
        return sum(1 for s in self.steps if s.verdict == verdict)

    def is_monotone(self) -> bool:
        """|S| and |E| never decrease along the trajectory"""
        for before, after in zip(self.steps, self.steps[1:]):
            if after.prefix_size < before.prefix_size or after.suffix_size < before.suffix_size:
                return False
        return True

    def get_convergence_info(self) -> Dict[str, Any]:
        """Summary of the run"""
        last = self.steps[-1] if self.steps else None
        return {
            "converged": self.converged,
            "iterations": self.iterations,
            "closedness_repairs": self.count(Verdict.NOT_CLOSED),
            "consistency_repairs": self.count(Verdict.NOT_CONSISTENT),
            "prefix_size": last.prefix_size if last else 0,
            "suffix_size": last.suffix_size if last else 0,
            "states": last.states if last else 0,
            "membership_queries": self.membership_queries,
            "cache_hits": self.cache_hits,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.get_convergence_info(),
            "steps": [s.to_dict() for s in self.steps],
        }
