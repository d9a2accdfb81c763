"""
PRODUCT ENDOFUNCTOR: F(X) = X × A

The one-symbol-extension structure of L*:
- F(S) = S × A holds every s·a
- F(e): S×A → H×A lifts the epic e: S → H symbol-wise, f × id_A
"""

from typing import Any, Dict, Tuple
from uuid import UUID
import logging

from .categorical_core import CategoricalObject, Morphism, Point, QueryInput
from .category import CategoryStore
from .errors import CompositionError

logger = logging.getLogger(__name__)


def _pair_value(left: Point, right: Point) -> Any:
    # words extend by the symbol; anything else becomes a plain pair
    if isinstance(left.value, QueryInput):
        return left.value.append_symbol(right.value)
    return (left.value, right.value)


async def apply_product(
    store: CategoryStore,
    left: CategoricalObject,
    right: CategoricalObject,
    name: str = ""
) -> Tuple[CategoricalObject, Dict[UUID, Tuple[UUID, UUID]]]:
    """
    Build and register the cartesian object left × right.

    Returns:
        (product, pairs) where pairs maps a product point identity to the
        (left point identity, right point identity) it was built from
    """
    points = []
    pairs: Dict[UUID, Tuple[UUID, UUID]] = {}

    for l_point in left:
        for r_point in right:
            point = Point(label=(l_point.label, r_point.label), value=_pair_value(l_point, r_point))
            points.append(point)
            pairs[point.identity] = (l_point.identity, r_point.identity)

    product = CategoricalObject(name or f"{left.name}×{right.name}", points)
    await store.add_object(product)
    return product, pairs


class ProductEndofunctor:
    """
    Endofunctor F = (−) × A on the learning category.
    Caches F(X) per object identity and F(f) per morphism identity, so each
    lifted object and morphism exists once in the store.
    """

    def __init__(self, store: CategoryStore, right: CategoricalObject):
        self.store = store
        self.right = right
        self._objects: Dict[UUID, CategoricalObject] = {}
        self._pairs: Dict[UUID, Dict[UUID, Tuple[UUID, UUID]]] = {}
        self._morphisms: Dict[UUID, Morphism] = {}

    async def fmap_object(self, obj: CategoricalObject) -> CategoricalObject:
        """F(X) = X × A"""
        cached = self._objects.get(obj.identity)
        if cached is not None:
            return cached

        product, pairs = await apply_product(self.store, obj, self.right)
        self._objects[obj.identity] = product
        self._pairs[product.identity] = pairs
        logger.debug("F(%s) = %s with %d points", obj, product, len(product))
        return product

    def pairs(self, product: CategoricalObject) -> Dict[UUID, Tuple[UUID, UUID]]:
        """Projections of a product built by this functor"""
        try:
            return self._pairs[product.identity]
        except KeyError:
            raise CompositionError(f"{product} was not built by this functor") from None

    async def fmap_morphism(self, morphism: Morphism) -> Morphism:
        """
        F(f): X×A → Y×A, (x, a) ↦ (f(x), a)
        """
        cached = self._morphisms.get(morphism.identity)
        if cached is not None:
            return cached

        source = await self.fmap_object(await self.store.get_object(morphism.source))
        target = await self.fmap_object(await self.store.get_object(morphism.target))

        target_index = {pair: point_id for point_id, pair in self._pairs[target.identity].items()}
        mapping: Dict[UUID, UUID] = {}
        for point_id, (x, a) in self._pairs[source.identity].items():
            if x not in morphism.mapping:
                raise CompositionError(f"{morphism!r} is undefined on point {x}")
            mapping[point_id] = target_index[(morphism.mapping[x], a)]

        lifted = Morphism(source.identity, target.identity, mapping, name=f"F({morphism.name})")
        await self.store.add_morphism(lifted)
        self._morphisms[morphism.identity] = lifted
        return lifted
