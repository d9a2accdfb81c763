"""
Learner configuration.

Module-level defaults, overridable per run through ``LearnerConfig`` or the
``CALF_*`` environment variables.
"""

from typing import Dict, List, Mapping, Optional
from dataclasses import dataclass, field
import os

# ============================================================================
# CONFIGURATION
# ============================================================================

STRICT_CONSISTENCY = True  # False reproduces the unconditional "consistent" verdict
MAX_ITERATIONS = None  # no bound; termination follows from a regular target
CACHE_QUERIES = True  # memoize membership answers by query text
EQUIVALENCE_DEPTH = 6  # longest word checked by the bounded equivalence query
HTTP_TIMEOUT = 10.0  # seconds, remote oracle

ENV_PREFIX = "CALF_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_optional_int(name: str, raw: str) -> Optional[int]:
    value = raw.strip().lower()
    if value in ("", "none"):
        return None
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


@dataclass
class LearnerConfig:
    """Settings for one learning run"""
    strict_consistency: bool = STRICT_CONSISTENCY
    max_iterations: Optional[int] = MAX_ITERATIONS
    cache_queries: bool = CACHE_QUERIES
    equivalence_depth: int = EQUIVALENCE_DEPTH
    http_timeout: float = HTTP_TIMEOUT
    initial_prefixes: List[str] = field(default_factory=list)
    initial_suffixes: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'LearnerConfig':
        """
        Build a config from CALF_STRICT_CONSISTENCY, CALF_MAX_ITERATIONS,
        CALF_CACHE_QUERIES, CALF_EQUIVALENCE_DEPTH and CALF_HTTP_TIMEOUT.
        Keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, object] = {}

        raw = env.get(ENV_PREFIX + "STRICT_CONSISTENCY")
        if raw is not None:
            values["strict_consistency"] = _parse_bool(ENV_PREFIX + "STRICT_CONSISTENCY", raw)

        raw = env.get(ENV_PREFIX + "MAX_ITERATIONS")
        if raw is not None:
            values["max_iterations"] = _parse_optional_int(ENV_PREFIX + "MAX_ITERATIONS", raw)

        raw = env.get(ENV_PREFIX + "CACHE_QUERIES")
        if raw is not None:
            values["cache_queries"] = _parse_bool(ENV_PREFIX + "CACHE_QUERIES", raw)

        raw = env.get(ENV_PREFIX + "EQUIVALENCE_DEPTH")
        if raw is not None:
            depth = _parse_optional_int(ENV_PREFIX + "EQUIVALENCE_DEPTH", raw)
            values["equivalence_depth"] = EQUIVALENCE_DEPTH if depth is None else depth

        raw = env.get(ENV_PREFIX + "HTTP_TIMEOUT")
        if raw is not None:
            try:
                values["http_timeout"] = float(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}HTTP_TIMEOUT must be a number, got {raw!r}") from None

        values.update(overrides)
        return cls(**values)
