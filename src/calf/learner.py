"""
LEARNER: Categorical L* (CALF)

Observation-table learning where the table is a diagram in a category:

    S ---------α---------> 2^E          row_S(s)(i)    = L(s·eᵢ)
    S×A -------β---------> 2^E          row_FS(s,a)(i) = L(s·a·eᵢ)

Factor row_S = m ∘ e with e: S ↠ H epic and m: H ↣ 2^E monic. Then

    closed      ⇔ ∃ closeW: S×A → H  with  m ∘ closeW = row_FS

         S×A ----row_FS----> 2^E
           \\                 ^
          closeW             m
             \\              /
              ------> H ----

    consistent  ⇔ row_FS factors through F(e): S×A → H×A

         S×A ----row_FS----> 2^E
           \\                 ^
           F(e)            FH → 2^E
             \\              /
              ----> H×A ----

Once both hold, δ: H×A → H with δ ∘ F(e) = closeW is the transition
function of the hypothesis.

All structural state lives in the category store. The learner only holds
the current handles (A, S, E, S×A, 2^E), which growth replaces with
freshly identified objects.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID
import asyncio
import logging

from .categorical_core import (
    EPSILON, CategoricalObject, Morphism, Point, QueryInput, Word,
    alphabet_object, power_set_object, prefix_closure, suffix_closure, word_object
)
from .category import CategoryStore, InMemoryCategory
from .config import LearnerConfig
from .convergence import (
    ClosednessResult, ConsistencyResult, Inconsistency, RefinementStep, RefinementTrace, Verdict
)
from .errors import (
    CalfError, InvalidMappingError, IterationLimitError, MembershipRowNotFoundError,
    MissingMorphismError, MultipleMorphismsError
)
from .hypothesis import Hypothesis, State
from .oracle import Oracle
from .product import ProductEndofunctor

logger = logging.getLogger(__name__)

WordLike = Union[str, QueryInput]


class CALF:
    """
    Categorical Automata Learning Framework: the refinement engine.

    Usage:
        learner = CALF(["a", "b"], RegexOracle("^b*(ab*)(ab*ab*)*$"))
        hypothesis = learner.learn()          # or: await learner.run()
    """

    def __init__(
        self,
        alphabet: Union[Sequence[str], CategoricalObject],
        oracle: Oracle,
        config: Optional[LearnerConfig] = None,
        store: Optional[CategoryStore] = None
    ):
        self.oracle = oracle
        self.config = config or LearnerConfig()
        self.store = store or InMemoryCategory()

        if isinstance(alphabet, CategoricalObject):
            self.alphabet = alphabet
        else:
            self.alphabet = alphabet_object(alphabet)
        if len(self.alphabet) == 0:
            raise ValueError("Alphabet must contain at least one symbol")
        self.symbols: List[str] = [str(v) for v in self.alphabet.values()]

        # S stays prefix-closed and E suffix-closed
        self.prefix = word_object(
            "S", prefix_closure(self._coerce(w) for w in self.config.initial_prefixes)
        )
        self.suffix = word_object(
            "E", suffix_closure(self._coerce(w) for w in self.config.initial_suffixes)
        )
        self.suffix_power_set = power_set_object(self.suffix)
        self.fprefix: Optional[CategoricalObject] = None

        self.functor = ProductEndofunctor(self.store, self.alphabet)
        self.generation = 0
        self.trace = RefinementTrace()
        self.hypothesis: Optional[Hypothesis] = None

        self._answers: Dict[str, bool] = {}
        self._initialized = False

    @classmethod
    async def create(cls, *args, **kwargs) -> 'CALF':
        learner = cls(*args, **kwargs)
        await learner.initialize()
        return learner

    async def initialize(self) -> None:
        """Register A, S, E, 2^E and build S×A; idempotent"""
        if self._initialized:
            return
        for obj in (self.alphabet, self.prefix, self.suffix, self.suffix_power_set):
            await self.store.add_object(obj)
        self.fprefix = await self.functor.fmap_object(self.prefix)
        self._initialized = True
        logger.info(
            "Initialized learner: |A|=%d |S|=%d |E|=%d",
            len(self.alphabet), len(self.prefix), len(self.suffix)
        )

    def _coerce(self, word: WordLike) -> QueryInput:
        if isinstance(word, QueryInput):
            return word
        return Word.parse(word, self.symbols)

    # ========================================================================
    # MEMBERSHIP
    # ========================================================================

    def membership(self, word: QueryInput) -> bool:
        """L(w), memoized by query text when caching is enabled"""
        text = word.text
        if self.config.cache_queries and text in self._answers:
            self.trace.cache_hits += 1
            return self._answers[text]

        answer = bool(self.oracle.membership_query(text))
        self.trace.membership_queries += 1
        if self.config.cache_queries:
            self._answers[text] = answer
        logger.debug("MQ(%r) = %s", text, answer)
        return answer

    def observation_row(self, word: QueryInput) -> str:
        """row(w) as a bit string in E's order"""
        return "".join(
            "1" if self.membership(word.concat(e.value)) else "0"
            for e in self.suffix
        )

    # ========================================================================
    # ROW MORPHISMS  O → 2^E
    # ========================================================================

    async def _single_morphism(
        self,
        source: CategoricalObject,
        target: CategoricalObject,
        role: str
    ) -> Optional[Morphism]:
        """The unique morphism source → target, None if absent"""
        hom = await self.store.get_hom_set(source, target)
        if len(hom) > 1:
            raise MultipleMorphismsError(source, target, len(hom), role)
        return next(iter(hom), None)

    async def _require_morphism(
        self,
        source: CategoricalObject,
        target: CategoricalObject,
        role: str
    ) -> Morphism:
        morphism = await self._single_morphism(source, target, role)
        if morphism is None:
            raise MissingMorphismError(source, target, role)
        return morphism

    def build_row_morphism(self, obj: CategoricalObject) -> Morphism:
        """
        Fresh, unregistered O → 2^E: each point x goes to the point of 2^E
        labelled by row(x).
        """
        mapping: Dict[UUID, UUID] = {}
        for point in obj:
            label = self.observation_row(point.value)
            target = self.suffix_power_set.get(label)
            if target is None:
                raise MembershipRowNotFoundError(label, self.suffix_power_set)
            mapping[point.identity] = target.identity
        return Morphism(
            obj.identity,
            self.suffix_power_set.identity,
            mapping,
            name=f"row_{obj.name}"
        )

    async def row_morphism(self, obj: CategoricalObject) -> Morphism:
        """The registered O → 2^E, built on first use"""
        existing = await self._single_morphism(obj, self.suffix_power_set, f"{obj.name} -> 2^E")
        if existing is not None:
            return existing

        morphism = self.build_row_morphism(obj)
        await self.store.add_morphism(morphism)
        logger.debug("Built %s over %d points", morphism.name, len(obj))
        return morphism

    async def factorization(self) -> Tuple[Morphism, Morphism, CategoricalObject]:
        """(e: S ↠ H, m: H ↣ 2^E, H) for the current table"""
        row_s = await self.row_morphism(self.prefix)
        epic, monic = await self.store.morphism_factors(row_s)
        if not monic.is_injective():
            raise InvalidMappingError("monic half of row_S is not injective", [monic.identity])
        hypothesis_object = await self.store.get_object(epic.target)
        return epic, monic, hypothesis_object

    # ========================================================================
    # CLOSEDNESS
    # ========================================================================

    async def is_closed(self) -> ClosednessResult:
        """
        Closed iff every row of S×A is the row of some state of H.
        Builds and registers closeW: S×A → H on success.
        """
        await self.initialize()
        row_fs = await self.row_morphism(self.fprefix)
        epic, monic, hyp = await self.factorization()

        close_w = await self._single_morphism(self.fprefix, hyp, "FS -> H")
        if close_w is None:
            state_of_row = {row: state for state, row in monic.mapping.items()}
            mapping: Dict[UUID, UUID] = {}
            witnesses: List[Point] = []

            for point in self.fprefix:
                state = state_of_row.get(row_fs.mapping[point.identity])
                if state is None:
                    witnesses.append(point)
                else:
                    mapping[point.identity] = state

            if witnesses:
                logger.info("Not closed: %s", ", ".join(str(w) for w in witnesses))
                return ClosednessResult.not_closed(witnesses)

            close_w = Morphism(self.fprefix.identity, hyp.identity, mapping, name="closeW")
            await self.store.add_morphism(close_w)

        commutation = await self.store.morphism_commute([close_w, monic], [row_fs])
        if not commutation:
            witnesses = [self.fprefix.by_identity(i) for i in commutation.witnesses]
            logger.info("Not closed: m ∘ closeW ≠ row_FS on %d points", len(witnesses))
            return ClosednessResult.not_closed(witnesses)

        return ClosednessResult.closed(close_w)

    async def make_closed(self, result: Optional[ClosednessResult] = None) -> List[QueryInput]:
        """
        Grow S by the witnesses of a failed closedness check, one per
        missing row. Returns the added prefixes.
        """
        result = result or await self.is_closed()
        if result.is_closed:
            return []

        added: List[QueryInput] = []
        seen_rows = set()
        for point in result.witnesses:
            row = self.observation_row(point.value)
            if row not in seen_rows:
                seen_rows.add(row)
                added.append(point.value)

        await self._grow_prefix(added)
        return added

    async def _grow_prefix(self, words: Iterable[QueryInput]) -> None:
        grown = self.prefix.extend(words)
        if len(grown) <= len(self.prefix):
            raise InvalidMappingError("growth of S added no prefix", [self.prefix.identity])

        await self.store.add_object(grown)
        previous, self.prefix = self.prefix, grown
        self.fprefix = await self.functor.fmap_object(self.prefix)
        self.generation += 1
        logger.info(
            "S grew %d → %d (%s replaced by %s)",
            len(previous), len(grown), previous, grown
        )

    # ========================================================================
    # CONSISTENCY
    # ========================================================================

    async def is_consistent(self) -> ConsistencyResult:
        """
        Consistent iff points of S×A identified by F(e) share their rows.
        Builds and registers FH → 2^E on success.
        """
        await self.initialize()
        row_fs = await self.row_morphism(self.fprefix)
        epic, monic, hyp = await self.factorization()
        fhyp = await self.functor.fmap_object(hyp)
        lifted = await self.functor.fmap_morphism(epic)
        strict = self.config.strict_consistency

        induced = await self._single_morphism(fhyp, self.suffix_power_set, "FH -> 2^E")
        if induced is None:
            mapping: Dict[UUID, UUID] = {}
            first_seen: Dict[UUID, Point] = {}
            conflicts: List[Inconsistency] = []

            for point in self.fprefix:
                image = lifted.mapping[point.identity]
                row = row_fs.mapping[point.identity]
                if image not in mapping:
                    mapping[image] = row
                    first_seen[image] = point
                elif mapping[image] != row:
                    conflicts.append(self._inconsistency(first_seen[image], point, mapping[image], row))

            if conflicts:
                if strict:
                    logger.info("Not consistent: %s", "; ".join(str(c) for c in conflicts))
                    return ConsistencyResult.not_consistent(conflicts)
                logger.warning(
                    "Lenient consistency: ignoring %d conflicting extensions (%s)",
                    len(conflicts), "; ".join(str(c) for c in conflicts)
                )

            induced = Morphism(fhyp.identity, self.suffix_power_set.identity, mapping, name="FH -> 2^E")
            await self.store.add_morphism(induced)

        commutation = await self.store.morphism_commute([lifted, induced], [row_fs])
        if not strict:
            # lenient mode: the commutation result is computed and not acted upon
            return ConsistencyResult.consistent(induced, commutation)

        if not commutation:
            conflicts = self._conflicts_for(commutation.witnesses, lifted, induced, row_fs)
            return ConsistencyResult.not_consistent(conflicts)

        return ConsistencyResult.consistent(induced, commutation)

    def _inconsistency(self, first: Point, second: Point, row_a: UUID, row_b: UUID) -> Inconsistency:
        bits_a = self.suffix_power_set.by_identity(row_a).label
        bits_b = self.suffix_power_set.by_identity(row_b).label
        index = next(i for i, (x, y) in enumerate(zip(bits_a, bits_b)) if x != y)
        suffix = self.suffix.points[index].value

        # both points share the symbol: their images agree on the A component
        _, symbol = second.label
        experiment = EPSILON.append_symbol(symbol).concat(suffix)
        return Inconsistency(first=first, second=second, symbol=symbol, suffix=suffix, experiment=experiment)

    def _conflicts_for(
        self,
        witnesses: Sequence[UUID],
        lifted: Morphism,
        induced: Morphism,
        row_fs: Morphism
    ) -> List[Inconsistency]:
        """Pair each non-commuting point with a partner that disagrees with it"""
        conflicts = []
        for witness in witnesses:
            image = lifted.mapping[witness]
            partner = next(
                (p for p in self.fprefix
                 if lifted.mapping[p.identity] == image
                 and row_fs.mapping[p.identity] != row_fs.mapping[witness]),
                None
            )
            if partner is None:
                raise InvalidMappingError(
                    "registered FH -> 2^E disagrees with row_FS without a conflicting extension",
                    [witness, induced.identity]
                )
            conflicts.append(self._inconsistency(
                partner, self.fprefix.by_identity(witness),
                row_fs.mapping[partner.identity], row_fs.mapping[witness]
            ))
        return conflicts

    async def make_consistent(self, result: Optional[ConsistencyResult] = None) -> List[QueryInput]:
        """Grow E by the separating experiments of a failed consistency check"""
        result = result or await self.is_consistent()
        if result.is_consistent:
            return []

        added: List[QueryInput] = []
        for conflict in result.witnesses:
            if conflict.experiment not in self.suffix and conflict.experiment not in added:
                added.append(conflict.experiment)

        await self._grow_suffix(added)
        return added

    async def _grow_suffix(self, words: Iterable[QueryInput]) -> None:
        grown = self.suffix.extend(words)
        if len(grown) <= len(self.suffix):
            raise InvalidMappingError("growth of E added no suffix", [self.suffix.identity])

        power_set = power_set_object(grown)
        await self.store.add_object(grown)
        await self.store.add_object(power_set)
        previous, self.suffix, self.suffix_power_set = self.suffix, grown, power_set
        self.generation += 1
        logger.info(
            "E grew %d → %d (%s replaced by %s); 2^E rebuilt with %d points",
            len(previous), len(grown), previous, grown, len(power_set)
        )

    # ========================================================================
    # REFINEMENT LOOP
    # ========================================================================

    def _step(self, iteration: int, verdict: Verdict, states: int, added: List[QueryInput]) -> None:
        self.trace.record(RefinementStep(
            iteration=iteration,
            verdict=verdict,
            prefix_size=len(self.prefix),
            suffix_size=len(self.suffix),
            states=states,
            added=[str(w) for w in added]
        ))

    async def run(self) -> Hypothesis:
        """
        Iterate until closed and consistent in the same pass, then extract.

            CheckClosed --NotClosed--> grow S --> CheckClosed
                 | Closed
            CheckConsistent --NotConsistent--> grow E --> CheckClosed
                 | Consistent
               extract δ
        """
        await self.initialize()
        iteration = 0

        while True:
            iteration += 1
            limit = self.config.max_iterations
            if limit is not None and iteration > limit:
                raise IterationLimitError(limit)

            closed = await self.is_closed()
            if not closed.is_closed:
                states = len((await self.factorization())[2])
                added = await self.make_closed(closed)
                self._step(iteration, Verdict.NOT_CLOSED, states, added)
                continue

            consistent = await self.is_consistent()
            states = len((await self.factorization())[2])
            if not consistent.is_consistent:
                added = await self.make_consistent(consistent)
                self._step(iteration, Verdict.NOT_CONSISTENT, states, added)
                continue

            self._step(iteration, Verdict.CONSISTENT, states, [])
            break

        self.hypothesis = await self.extract_hypothesis()
        logger.info(
            "Converged after %d iterations: %d states, |S|=%d |E|=%d, %d membership queries",
            iteration, len(self.hypothesis), len(self.prefix), len(self.suffix),
            self.trace.membership_queries
        )
        return self.hypothesis

    def learn(self) -> Hypothesis:
        """Blocking entry point"""
        return asyncio.run(self.run())

    # ========================================================================
    # HYPOTHESIS EXTRACTION
    # ========================================================================

    async def extract_hypothesis(self) -> Hypothesis:
        """
        δ: FH → H with δ ∘ F(e) = closeW and m ∘ δ ∘ F(e) = row_FS.
        Fails fatally if the table does not support a well-defined δ.
        """
        row_s = await self._require_morphism(self.prefix, self.suffix_power_set, "S -> 2^E")
        row_fs = await self._require_morphism(self.fprefix, self.suffix_power_set, "FS -> 2^E")
        epic, monic = await self.store.morphism_factors(row_s)
        hyp = await self.store.get_object(epic.target)
        fhyp = await self.functor.fmap_object(hyp)
        lifted = await self._require_morphism(self.fprefix, fhyp, "FS -> FH")
        close_w = await self._require_morphism(self.fprefix, hyp, "FS -> H")

        delta: Dict[UUID, UUID] = {}
        for point in self.fprefix:
            image = lifted.mapping.get(point.identity)
            state = close_w.mapping.get(point.identity)
            if image is None or state is None:
                raise InvalidMappingError(f"extension {point} is not mapped into FH and H", [point.identity])
            if delta.setdefault(image, state) != state:
                raise InvalidMappingError(
                    f"δ is not well defined: extensions of one state disagree at {point}",
                    [point.identity, image]
                )

        if set(delta) != set(fhyp.point_ids()):
            raise InvalidMappingError("F(e) is not surjective onto FH", [lifted.identity])

        transition = await self._single_morphism(fhyp, hyp, "FH -> H")
        if transition is None:
            transition = Morphism(fhyp.identity, hyp.identity, delta, name="delta")
            await self.store.add_morphism(transition)
        elif transition.mapping != delta:
            raise InvalidMappingError("registered FH -> H differs from δ", [transition.identity])

        if not await self.store.morphism_commute([lifted, transition], [close_w]):
            raise InvalidMappingError("δ ∘ F(e) ≠ closeW", [transition.identity])
        if not await self.store.morphism_commute([lifted, transition, monic], [row_fs]):
            raise InvalidMappingError("m ∘ δ ∘ F(e) ≠ row_FS", [transition.identity])

        return self._assemble(epic, hyp, fhyp, transition)

    def _assemble(
        self,
        epic: Morphism,
        hyp: CategoricalObject,
        fhyp: CategoricalObject,
        transition: Morphism
    ) -> Hypothesis:
        access: Dict[UUID, str] = {}
        for point in sorted(self.prefix, key=lambda p: (len(p.value.text), p.value.text)):
            access.setdefault(epic.mapping[point.identity], point.value.text)

        epsilon_index = self.suffix.index_of(EPSILON)
        states = [
            State(key=str(p.identity), access=access[p.identity], row=p.label)
            for p in hyp
        ]
        accepting = {str(p.identity) for p in hyp if p.label[epsilon_index] == "1"}

        pairs = self.functor.pairs(fhyp)
        transitions: Dict[Tuple[str, str], str] = {}
        for fh, target in transition.mapping.items():
            state, symbol_id = pairs[fh]
            symbol = str(self.alphabet.by_identity(symbol_id).value)
            transitions[(str(state), symbol)] = str(target)

        epsilon_point = self.prefix.get(EPSILON)
        if epsilon_point is None:
            raise CalfError("S lost the empty word", [self.prefix.identity])

        return Hypothesis(
            states=states,
            alphabet=list(self.symbols),
            transitions=transitions,
            initial=str(epic.mapping[epsilon_point.identity]),
            accepting=accepting,
            suffixes=[str(e.value) for e in self.suffix]
        )

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def observation_table(self) -> Dict[str, object]:
        """Rows of S and S×A over E, for reports and postmortems"""
        return {
            "suffixes": [str(e.value) for e in self.suffix],
            "prefixes": {str(p.value): self.observation_row(p.value) for p in self.prefix},
            "extensions": {
                str(p.value): self.observation_row(p.value) for p in (self.fprefix or [])
            },
        }


if __name__ == "__main__":
    from .oracle import RegexOracle

    print("Testing categorical L*...")

    learner = CALF(["a", "b"], RegexOracle("^b*(ab*)(ab*ab*)*$"))
    hypothesis = learner.learn()
    print(f"Odd number of a's: {len(hypothesis)} states")
    for word in ["a", "aab", "bab", "", "bb", "aa"]:
        print(f"  {word or 'ε':<5} → {hypothesis.accepts(word)}")

    seeded = CALF(["a", "b"], RegexOracle("ab$"), LearnerConfig(initial_prefixes=["a"]))
    hypothesis = seeded.learn()
    info = seeded.trace.get_convergence_info()
    print(f"\nEnds with ab (seeded): {len(hypothesis)} states")
    print(f"  E = {seeded.observation_table()['suffixes']}")
    print(f"  Consistency repairs: {info['consistency_repairs']}")

    print("\n✓ Learner validated")
