"""
CALF: Categorical Automata Learning Framework

Angluin-style active learning of finite automata where the observation
table is a diagram in a category and the hypothesis is read off an
epic–monic factorization.
"""

__version__ = "0.1.0"

from .categorical_core import (
    EPSILON,
    QueryInput,
    Word,
    Point,
    CategoricalObject,
    Morphism,
    alphabet_object,
    word_object,
    prefix_closure,
    suffix_closure,
    power_set_object,
)

from .category import (
    CategoryStore,
    InMemoryCategory,
    Commutation,
)

from .product import (
    apply_product,
    ProductEndofunctor,
)

from .oracle import (
    Oracle,
    RegexOracle,
    HttpOracle,
)

from .convergence import (
    Verdict,
    ClosednessResult,
    ConsistencyResult,
    Inconsistency,
    RefinementStep,
    RefinementTrace,
)

from .hypothesis import (
    State,
    Hypothesis,
)

from .config import LearnerConfig

from .errors import (
    CalfError,
    MultipleMorphismsError,
    MissingMorphismError,
    InvalidMappingError,
    MembershipRowNotFoundError,
    IterationLimitError,
    StoreError,
    DuplicateMorphismError,
    UnknownObjectError,
    CompositionError,
    OracleError,
    InvalidRegexPatternError,
    MembershipQueryError,
    EquivalenceQueryError,
)

from .learner import CALF

__all__ = [
    # Core
    "EPSILON",
    "QueryInput",
    "Word",
    "Point",
    "CategoricalObject",
    "Morphism",
    "alphabet_object",
    "word_object",
    "prefix_closure",
    "suffix_closure",
    "power_set_object",

    # Store
    "CategoryStore",
    "InMemoryCategory",
    "Commutation",
    "apply_product",
    "ProductEndofunctor",

    # Oracles
    "Oracle",
    "RegexOracle",
    "HttpOracle",

    # Learning
    "CALF",
    "LearnerConfig",
    "Verdict",
    "ClosednessResult",
    "ConsistencyResult",
    "Inconsistency",
    "RefinementStep",
    "RefinementTrace",
    "State",
    "Hypothesis",

    # Errors
    "CalfError",
    "MultipleMorphismsError",
    "MissingMorphismError",
    "InvalidMappingError",
    "MembershipRowNotFoundError",
    "IterationLimitError",
    "StoreError",
    "DuplicateMorphismError",
    "UnknownObjectError",
    "CompositionError",
    "OracleError",
    "InvalidRegexPatternError",
    "MembershipQueryError",
    "EquivalenceQueryError",
]
