"""
CATEGORICAL CORE: Objects, points and morphisms of the learning category

The observation table of L* lives in a category of finite sets:
- Objects are named collections of points, each point with its own identity
- Morphisms carry an explicit point-to-point mapping keyed by identities
- Extending an object yields a NEW object with fresh identities, so a
  morphism computed against an older version can never resolve against it
- Words are the query inputs: anything that can append a symbol and concat
"""

from typing import (
    Any, Dict, FrozenSet, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple
)
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from itertools import product as cartesian
from uuid import UUID, uuid4


# ============================================================================
# QUERY INPUTS (words over the alphabet)
# ============================================================================

class QueryInput(ABC):
    """
    Capability required from the elements of S, E and S×A:
    appendable-with-symbol and concatenable. The oracle only sees ``text``.
    """

    @abstractmethod
    def append_symbol(self, symbol: str) -> 'QueryInput':
        """Extend by one symbol: w ↦ w·a"""
        pass

    @abstractmethod
    def concat(self, other: 'QueryInput') -> 'QueryInput':
        """Concatenate: (u, v) ↦ u·v"""
        pass

    @property
    @abstractmethod
    def text(self) -> str:
        """Rendering submitted to the oracle"""
        pass


@dataclass(frozen=True)
class Word(QueryInput):
    """
    Finite word as a tuple of symbols.
    Symbols may be longer than one character; ``text`` joins them.
    """
    symbols: Tuple[str, ...] = ()

    def append_symbol(self, symbol: str) -> 'Word':
        return Word(self.symbols + (symbol,))

    def concat(self, other: QueryInput) -> 'Word':
        if not isinstance(other, Word):
            raise TypeError(f"Cannot concatenate Word with {type(other).__name__}")
        return Word(self.symbols + other.symbols)

    @property
    def text(self) -> str:
        return "".join(self.symbols)

    def is_empty(self) -> bool:
        return not self.symbols

    def __iter__(self) -> Iterator[str]:
        return iter(self.symbols)

    def __len__(self) -> int:
        return len(self.symbols)

    def __str__(self) -> str:
        return self.text if self.symbols else "ε"

    def prefixes(self) -> List['Word']:
        """ε, w[:1], ..., w"""
        return [Word(self.symbols[:i]) for i in range(len(self.symbols) + 1)]

    def suffixes(self) -> List['Word']:
        """ε, w[-1:], ..., w"""
        n = len(self.symbols)
        return [Word(self.symbols[n - i:]) for i in range(n + 1)]

    @staticmethod
    def parse(text: str, alphabet: Optional[Sequence[str]] = None) -> 'Word':
        """
        Tokenize ``text`` into symbols of ``alphabet`` (longest match first).
        Without an alphabet every character is a symbol.
        """
        if alphabet is None:
            return Word(tuple(text))

        ordered = sorted(set(alphabet), key=len, reverse=True)
        symbols: List[str] = []
        position = 0
        while position < len(text):
            match = next((s for s in ordered if s and text.startswith(s, position)), None)
            if match is None:
                raise ValueError(
                    f"Cannot tokenize {text!r} at position {position} over alphabet {list(alphabet)}"
                )
            symbols.append(match)
            position += len(match)
        return Word(tuple(symbols))


EPSILON = Word()


# ============================================================================
# POINTS AND OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Point:
    """
    Element of a categorical object.
    ``label`` is unique within its object; ``identity`` is unique everywhere.
    """
    label: Hashable
    value: Any = None
    identity: UUID = field(default_factory=uuid4)

    def __str__(self) -> str:
        return str(self.value) if self.value is not None else str(self.label)


class CategoricalObject:
    """
    Object in the category: an ordered, finite collection of points.

    Objects are immutable. ``extend`` produces a successor object with a
    fresh identity and fresh point identities; nothing computed against the
    predecessor can silently match the successor.
    """

    def __init__(self, name: str, points: Iterable[Point] = (), identity: Optional[UUID] = None):
        self.name = name
        self.identity = identity or uuid4()
        self._points: Tuple[Point, ...] = tuple(points)
        self._by_label: Dict[Hashable, Point] = {}
        self._by_identity: Dict[UUID, Point] = {}

        for point in self._points:
            if point.label in self._by_label:
                raise ValueError(f"Duplicate label {point.label!r} in object {name}")
            self._by_label[point.label] = point
            self._by_identity[point.identity] = point

    @classmethod
    def from_values(cls, name: str, values: Iterable[Any]) -> 'CategoricalObject':
        """Object whose points are labelled by their own (hashable) values"""
        seen = []
        for value in values:
            if value not in seen:
                seen.append(value)
        return cls(name, [Point(label=value, value=value) for value in seen])

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, label: Hashable) -> bool:
        return label in self._by_label

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoricalObject):
            return False
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __repr__(self) -> str:
        return f"CategoricalObject({self.name!r}, {len(self)} points, {str(self.identity)[:8]})"

    def __str__(self) -> str:
        return f"{self.name}[{str(self.identity)[:8]}]"

    @property
    def points(self) -> Tuple[Point, ...]:
        return self._points

    def labels(self) -> List[Hashable]:
        return [p.label for p in self._points]

    def values(self) -> List[Any]:
        return [p.value for p in self._points]

    def point_ids(self) -> FrozenSet[UUID]:
        return frozenset(self._by_identity)

    def get(self, label: Hashable) -> Optional[Point]:
        """Lookup by label"""
        return self._by_label.get(label)

    def by_identity(self, identity: UUID) -> Point:
        """Lookup by point identity"""
        try:
            return self._by_identity[identity]
        except KeyError:
            raise KeyError(f"Point {identity} does not belong to {self}") from None

    def index_of(self, label: Hashable) -> int:
        point = self._by_label.get(label)
        if point is None:
            raise KeyError(f"Label {label!r} does not belong to {self}")
        return self._points.index(point)

    def extend(self, values: Iterable[Any]) -> 'CategoricalObject':
        """
        Union with new values under a fresh identity.
        Existing points keep their order; every point gets a new identity.
        """
        merged = list(self.values())
        for value in values:
            if value not in self._by_label and value not in merged:
                merged.append(value)
        return CategoricalObject.from_values(self.name, merged)


def alphabet_object(symbols: Iterable[str]) -> CategoricalObject:
    """Alphabet A: one point per symbol"""
    return CategoricalObject.from_values("A", symbols)


def word_object(name: str, words: Iterable[QueryInput]) -> CategoricalObject:
    """Prefix S or suffix E: one point per word, ε first"""
    ordered: List[QueryInput] = [EPSILON]
    ordered.extend(w for w in words if w != EPSILON)
    return CategoricalObject.from_values(name, ordered)


def prefix_closure(words: Iterable[Word]) -> List[Word]:
    """Every prefix of every word, first occurrence order"""
    closed: List[Word] = []
    for word in words:
        for prefix in word.prefixes():
            if prefix not in closed:
                closed.append(prefix)
    return closed


def suffix_closure(words: Iterable[Word]) -> List[Word]:
    """Every suffix of every word, first occurrence order"""
    closed: List[Word] = []
    for word in words:
        for suffix in word.suffixes():
            if suffix not in closed:
                closed.append(suffix)
    return closed


def power_set_object(suffix: CategoricalObject, name: str = "2^E") -> CategoricalObject:
    """
    Power set 2^E: one point per boolean vector of length |E|.
    Labels are bit strings in the order of E's points ("0110").
    """
    points = []
    for bits in cartesian("01", repeat=len(suffix)):
        label = "".join(bits)
        points.append(Point(label=label, value=tuple(b == "1" for b in bits)))
    return CategoricalObject(name, points)


# ============================================================================
# MORPHISMS
# ============================================================================

class Morphism:
    """
    Structure-preserving map f: X → Y between two objects.

    Endpoints are held by identity (the store resolves them); ``mapping``
    sends a source point identity to a target point identity.
    """

    def __init__(
        self,
        source: UUID,
        target: UUID,
        mapping: Dict[UUID, UUID],
        name: str = "",
        identity: Optional[UUID] = None
    ):
        self.source = source
        self.target = target
        self.mapping: Dict[UUID, UUID] = dict(mapping)
        self.name = name
        self.identity = identity or uuid4()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Morphism):
            return False
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __repr__(self) -> str:
        return f"Morphism({self.name!r}, {str(self.source)[:8]} → {str(self.target)[:8]})"

    def __call__(self, point: UUID) -> UUID:
        return self.mapping[point]

    def same_mapping(self, other: 'Morphism') -> bool:
        """Value equality: same endpoints, same point-to-point mapping"""
        return (
            self.source == other.source and
            self.target == other.target and
            self.mapping == other.mapping
        )

    def image(self) -> FrozenSet[UUID]:
        return frozenset(self.mapping.values())

    def is_injective(self) -> bool:
        """Monic in FinSet: no two source points share a target"""
        return len(set(self.mapping.values())) == len(self.mapping)

    def is_total_on(self, source: CategoricalObject) -> bool:
        return set(self.mapping) == set(source.point_ids())

    def is_surjective_on(self, target: CategoricalObject) -> bool:
        """Epic in FinSet: every target point is hit"""
        return self.image() == target.point_ids()
