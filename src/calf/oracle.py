"""
ORACLES: Membership and equivalence queries

The black box the learner interrogates. Membership answers must be a pure
function of the word for the duration of a run.
"""

from typing import Any, Iterator, Optional, Sequence, Tuple
from abc import ABC, abstractmethod
from itertools import product
import logging
import re

import requests

from .config import EQUIVALENCE_DEPTH, HTTP_TIMEOUT
from .errors import EquivalenceQueryError, InvalidRegexPatternError, MembershipQueryError

logger = logging.getLogger(__name__)


def words_up_to(alphabet: Sequence[str], max_length: int) -> Iterator[Tuple[str, ...]]:
    """All words over ``alphabet`` of length 0..max_length, shortest first"""
    for length in range(max_length + 1):
        yield from product(alphabet, repeat=length)


class Oracle(ABC):
    """
    Oracle contract.

    ``equivalence_query`` defaults to a bounded exhaustive comparison: every
    word up to ``equivalence_depth`` symbols is classified by both the
    hypothesis and ``membership_query``; the first disagreement is returned.
    """

    equivalence_depth: int = EQUIVALENCE_DEPTH

    @abstractmethod
    def membership_query(self, word: str) -> bool:
        pass

    def equivalence_query(self, hypothesis: Any, max_length: Optional[int] = None) -> Optional[str]:
        depth = self.equivalence_depth if max_length is None else max_length
        for symbols in words_up_to(hypothesis.alphabet, depth):
            expected = self.membership_query("".join(symbols))
            if hypothesis.accepts(symbols) != expected:
                counterexample = "".join(symbols)
                logger.info("Counterexample %r (target says %s)", counterexample, expected)
                return counterexample
        return None


class RegexOracle(Oracle):
    """Membership by regular expression search; anchor the pattern to match whole words"""

    def __init__(self, pattern: str, equivalence_depth: int = EQUIVALENCE_DEPTH):
        try:
            self.regex = re.compile(pattern)
        except re.error as e:
            raise InvalidRegexPatternError(pattern, str(e)) from e
        self.pattern = pattern
        self.equivalence_depth = equivalence_depth

    def matches(self, word: str) -> bool:
        return self.regex.search(word) is not None

    def membership_query(self, word: str) -> bool:
        return self.matches(word)

    def __repr__(self) -> str:
        return f"RegexOracle({self.pattern!r})"


class HttpOracle(Oracle):
    """
    Remote black box over HTTP.

        GET  {base_url}/membership?word=...   → {"member": bool}
        POST {base_url}/equivalence  (hypothesis JSON) → {"counterexample": str | null}
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def membership_query(self, word: str) -> bool:
        endpoint = f"{self.base_url}/membership"
        try:
            response = self.session.get(endpoint, params={"word": word}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise MembershipQueryError(f"Membership query for {word!r} failed: {e}") from e

        member = payload.get("member") if isinstance(payload, dict) else None
        if not isinstance(member, bool):
            raise MembershipQueryError(f"Malformed membership answer for {word!r}: {payload!r}")
        return member

    def equivalence_query(self, hypothesis: Any, max_length: Optional[int] = None) -> Optional[str]:
        endpoint = f"{self.base_url}/equivalence"
        try:
            response = self.session.post(endpoint, json=hypothesis.to_dict(), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise EquivalenceQueryError(f"Equivalence query failed: {e}") from e

        if not isinstance(payload, dict) or "counterexample" not in payload:
            raise EquivalenceQueryError(f"Malformed equivalence answer: {payload!r}")
        counterexample = payload["counterexample"]
        if counterexample is not None and not isinstance(counterexample, str):
            raise EquivalenceQueryError(f"Counterexample must be a string, got {counterexample!r}")
        return counterexample

    def __repr__(self) -> str:
        return f"HttpOracle({self.base_url!r})"
