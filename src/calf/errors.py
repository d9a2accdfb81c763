"""
ERRORS: Fatal conditions of a learning run

Closedness and consistency failures are loop states, not errors. Everything
in this module terminates the run and propagates to the caller of
``CALF.run``. Each error names the broken invariant and carries the
identities of the witnessing objects, morphisms or points.
"""

from typing import Any, List, Optional, Sequence


class CalfError(Exception):
    """Base class for every fatal learner, store and oracle condition"""

    kind: str = "unknown"

    def __init__(self, message: str, witnesses: Optional[Sequence[Any]] = None):
        self.witnesses: List[Any] = list(witnesses or [])
        if self.witnesses:
            message = f"{message} (witnesses: {', '.join(str(w) for w in self.witnesses)})"
        super().__init__(message)


# ============================================================================
# LEARNER INVARIANT VIOLATIONS
# ============================================================================

class MultipleMorphismsError(CalfError):
    """More than one morphism between two objects where at most one may exist"""

    kind = "multiplicity"

    def __init__(self, source: Any, target: Any, count: int, role: str = ""):
        self.source = source
        self.target = target
        self.count = count
        self.role = role
        label = f" {role}" if role else ""
        super().__init__(
            f"Found {count} morphisms{label} from {source} to {target}; at most one may exist",
            witnesses=[source, target],
        )


class MissingMorphismError(CalfError):
    """An expected morphism is absent from the store"""

    kind = "missing-morphism"

    def __init__(self, source: Any, target: Any, role: str = ""):
        self.source = source
        self.target = target
        self.role = role
        label = f" {role}" if role else ""
        super().__init__(
            f"No morphism{label} from {source} to {target}",
            witnesses=[source, target],
        )


class InvalidMappingError(CalfError):
    """Two paths of a diagram that must agree disagree"""

    kind = "mapping-inconsistency"

    def __init__(self, description: str, witnesses: Optional[Sequence[Any]] = None):
        super().__init__(f"Invalid mapping: {description}", witnesses=witnesses)


class MembershipRowNotFoundError(CalfError):
    """A computed observation row has no point in the power-set object"""

    kind = "label-lookup"

    def __init__(self, label: Any, power_set: Any):
        self.label = label
        self.power_set = power_set
        super().__init__(
            f"Observation row {label!r} has no matching point in {power_set}; "
            "the power-set object is stale",
            witnesses=[power_set],
        )


class IterationLimitError(CalfError):
    """The refinement loop exceeded the configured iteration bound"""

    kind = "iteration-limit"

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(f"Refinement loop did not converge within {iterations} iterations")


# ============================================================================
# STORE ERRORS
# ============================================================================

class StoreError(CalfError):
    """Category store contract violation"""

    kind = "store"


class DuplicateMorphismError(StoreError):
    """A morphism with the same identity is already registered"""

    def __init__(self, identity: Any):
        self.identity = identity
        super().__init__(f"Morphism {identity} is already registered", witnesses=[identity])


class UnknownObjectError(StoreError):
    """An object identity is not registered in the store"""

    def __init__(self, identity: Any):
        self.identity = identity
        super().__init__(f"Object {identity} is not registered", witnesses=[identity])


class CompositionError(StoreError):
    """A morphism path does not compose"""


# ============================================================================
# ORACLE ERRORS
# ============================================================================

class OracleError(CalfError):
    """Oracle failure"""

    kind = "oracle"


class InvalidRegexPatternError(OracleError):
    def __init__(self, pattern: str, reason: str = ""):
        self.pattern = pattern
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid regex pattern {pattern!r}{detail}")


class MembershipQueryError(OracleError):
    pass


class EquivalenceQueryError(OracleError):
    pass
