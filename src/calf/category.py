"""
CATEGORY STORE: Registry of objects and morphisms

Arena-with-identifiers: objects and morphisms are keyed by UUID, morphisms
refer to their endpoints by identity. The store supplies what the learner
needs and nothing more:
- hom-set lookup Hom(X, Y)
- canonical epic/monic (image) factorization f = m ∘ e
- commuting-diagram verification of two morphism paths

Every operation is a coroutine: a store backed by a remote or persistent
medium suspends here, and only here.
"""

from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from uuid import UUID
import logging

from .categorical_core import CategoricalObject, Morphism, Point
from .errors import CompositionError, DuplicateMorphismError, UnknownObjectError

logger = logging.getLogger(__name__)


# ============================================================================
# COMMUTATION RESULT
# ============================================================================

@dataclass(frozen=True)
class Commutation:
    """
    Outcome of comparing two paths X → ... → Y point by point.
    ``witnesses`` are the source points where the composites disagree.
    """
    commutative: bool
    witnesses: Tuple[UUID, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return self.commutative

    @staticmethod
    def commutes() -> 'Commutation':
        return Commutation(commutative=True)

    @staticmethod
    def fails(witnesses: Sequence[UUID]) -> 'Commutation':
        return Commutation(commutative=False, witnesses=tuple(witnesses))


# ============================================================================
# STORE CONTRACT
# ============================================================================

class CategoryStore(ABC):
    """
    Abstract category store consumed by the learner.
    Implementations must keep add_object idempotent by identity and refuse
    a second morphism with the same identity.
    """

    @abstractmethod
    async def add_object(self, obj: CategoricalObject) -> None:
        pass

    @abstractmethod
    async def add_morphism(self, morphism: Morphism) -> None:
        pass

    @abstractmethod
    async def get_object(self, identity: UUID) -> CategoricalObject:
        pass

    @abstractmethod
    async def get_hom_set(
        self,
        source: CategoricalObject,
        target: CategoricalObject
    ) -> FrozenSet[Morphism]:
        pass

    @abstractmethod
    async def morphism_factors(self, morphism: Morphism) -> Tuple[Morphism, Morphism]:
        """Canonical image factorization: returns (epic, monic)"""
        pass

    @abstractmethod
    async def compose(self, path: Sequence[Morphism]) -> Dict[UUID, UUID]:
        """Composite mapping of a path given in application order"""
        pass

    @abstractmethod
    async def morphism_commute(
        self,
        path_a: Sequence[Morphism],
        path_b: Sequence[Morphism]
    ) -> Commutation:
        pass


# ============================================================================
# IN-MEMORY STORE
# ============================================================================

class InMemoryCategory(CategoryStore):
    """Category store held in process memory"""

    def __init__(self, name: str = "Set"):
        self.name = name
        self._objects: Dict[UUID, CategoricalObject] = {}
        self._morphisms: Dict[UUID, Morphism] = {}
        self._hom: Dict[Tuple[UUID, UUID], List[UUID]] = {}
        self._factorizations: Dict[UUID, Tuple[UUID, UUID]] = {}

    async def add_object(self, obj: CategoricalObject) -> None:
        if obj.identity in self._objects:
            return
        self._objects[obj.identity] = obj
        logger.debug("Registered object %s with %d points", obj, len(obj))

    async def add_morphism(self, morphism: Morphism) -> None:
        if morphism.identity in self._morphisms:
            raise DuplicateMorphismError(morphism.identity)
        for endpoint in (morphism.source, morphism.target):
            if endpoint not in self._objects:
                raise UnknownObjectError(endpoint)

        self._morphisms[morphism.identity] = morphism
        self._hom.setdefault((morphism.source, morphism.target), []).append(morphism.identity)
        logger.debug("Registered morphism %r", morphism)

    async def get_object(self, identity: UUID) -> CategoricalObject:
        try:
            return self._objects[identity]
        except KeyError:
            raise UnknownObjectError(identity) from None

    async def get_hom_set(
        self,
        source: CategoricalObject,
        target: CategoricalObject
    ) -> FrozenSet[Morphism]:
        ids = self._hom.get((source.identity, target.identity), [])
        return frozenset(self._morphisms[i] for i in ids)

    async def morphism_factors(self, morphism: Morphism) -> Tuple[Morphism, Morphism]:
        """
        Image factorization in FinSet.

            X ----f----> Y
             \\          ^
              e        m
               \\      /
                im(f)

        The image's points are ordered by first occurrence along X's order
        and carry the label and value of the Y point they embed at, so the
        result is deterministic for a given mapping. Cached per morphism.
        """
        cached = self._factorizations.get(morphism.identity)
        if cached is not None:
            epic_id, monic_id = cached
            return self._morphisms[epic_id], self._morphisms[monic_id]

        source = await self.get_object(morphism.source)
        target = await self.get_object(morphism.target)

        if not morphism.is_total_on(source):
            raise CompositionError(f"{morphism!r} is not total on {source}")

        image_points: List[Point] = []
        embedded: Dict[UUID, Point] = {}
        epic_mapping: Dict[UUID, UUID] = {}

        for point in source:
            target_id = morphism.mapping[point.identity]
            image_point = embedded.get(target_id)
            if image_point is None:
                target_point = target.by_identity(target_id)
                image_point = Point(label=target_point.label, value=target_point.value)
                embedded[target_id] = image_point
                image_points.append(image_point)
            epic_mapping[point.identity] = image_point.identity

        image = CategoricalObject(f"im({morphism.name})", image_points)
        monic_mapping = {p.identity: t for t, p in embedded.items()}

        epic = Morphism(source.identity, image.identity, epic_mapping, name=f"e({morphism.name})")
        monic = Morphism(image.identity, target.identity, monic_mapping, name=f"m({morphism.name})")

        await self.add_object(image)
        await self.add_morphism(epic)
        await self.add_morphism(monic)
        self._factorizations[morphism.identity] = (epic.identity, monic.identity)

        logger.debug(
            "Factored %r through image of %d points (source %d, target %d)",
            morphism, len(image), len(source), len(target)
        )
        return epic, monic

    async def compose(self, path: Sequence[Morphism]) -> Dict[UUID, UUID]:
        if not path:
            raise CompositionError("Cannot compose an empty path")

        for first, second in zip(path, path[1:]):
            if first.target != second.source:
                raise CompositionError(
                    f"{first!r} does not compose with {second!r}: "
                    f"target {first.target} differs from source {second.source}"
                )

        composite: Dict[UUID, UUID] = {}
        for start, current in path[0].mapping.items():
            for step in path[1:]:
                if current not in step.mapping:
                    raise CompositionError(f"{step!r} is undefined on point {current}")
                current = step.mapping[current]
            composite[start] = current
        return composite

    async def morphism_commute(
        self,
        path_a: Sequence[Morphism],
        path_b: Sequence[Morphism]
    ) -> Commutation:
        """
        Check that two parallel paths agree on every source point.
        Paths are listed in application order: [f, g] means g ∘ f.
        """
        if not path_a or not path_b:
            raise CompositionError("Cannot compare empty paths")
        if path_a[0].source != path_b[0].source or path_a[-1].target != path_b[-1].target:
            raise CompositionError("Paths do not share endpoints")

        source = await self.get_object(path_a[0].source)
        composite_a = await self.compose(path_a)
        composite_b = await self.compose(path_b)

        witnesses = [
            point.identity for point in source
            if composite_a.get(point.identity) != composite_b.get(point.identity)
        ]
        if witnesses:
            logger.debug("Diagram does not commute on %d points", len(witnesses))
            return Commutation.fails(witnesses)
        return Commutation.commutes()

    def objects(self) -> List[CategoricalObject]:
        return list(self._objects.values())

    def morphisms(self) -> List[Morphism]:
        return list(self._morphisms.values())

    def summary(self) -> Dict[str, int]:
        """Sizes for postmortem reports"""
        return {
            "objects": len(self._objects),
            "morphisms": len(self._morphisms),
            "factorizations": len(self._factorizations),
        }
