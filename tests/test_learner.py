"""
TESTS FOR THE LEARNING ENGINE

Validates:
1. Growth on closedness failure (witness, fresh identity, monotonicity)
2. Growth on consistency failure and the lenient consistency mode
3. Termination with a correct hypothesis
4. Closedness / consistency correctness of the final table
5. Row-morphism idempotence and factorization soundness
6. Fatal conditions: stale power set, multiplicity, missing morphisms
7. Membership caching and the iteration bound
8. Seed closure and multi-character symbols
9. Registered morphisms that break commutation
"""

import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.calf import learner as learner_module
from src.calf.learner import CALF
from src.calf.categorical_core import EPSILON, Morphism, Word
from src.calf.config import LearnerConfig
from src.calf.convergence import Verdict
from src.calf.oracle import RegexOracle
from src.calf.errors import (
    InvalidMappingError, IterationLimitError, MembershipRowNotFoundError,
    MissingMorphismError, MultipleMorphismsError
)

ODD_AS = "^b*(ab*)(ab*ab*)*$"
ENDS_WITH_AB = "ab$"
ONLY_A = "^a$"


class CountingOracle(RegexOracle):
    """Regex oracle that records every query it answers"""

    def __init__(self, pattern: str):
        super().__init__(pattern)
        self.calls = []

    def membership_query(self, word: str) -> bool:
        self.calls.append(word)
        return super().membership_query(word)


def texts(obj):
    return [str(v) for v in obj.values()]


class TestClosedness(unittest.IsolatedAsyncioTestCase):
    """Closedness check and S growth"""

    async def test_initial_table_not_closed_with_witness_a(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ONLY_A))
        self.assertEqual(texts(learner.prefix), ["ε"])
        self.assertEqual(texts(learner.suffix), ["ε"])

        result = await learner.is_closed()

        self.assertEqual(result.verdict, Verdict.NOT_CLOSED)
        self.assertEqual([w.value.text for w in result.witnesses], ["a"])

        added = await learner.make_closed(result)
        self.assertEqual([str(w) for w in added], ["a"])
        self.assertEqual(texts(learner.prefix), ["ε", "a"])

    async def test_growth_gives_fresh_identity(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ONLY_A))
        old_prefix, old_fprefix = learner.prefix, learner.fprefix
        old_row = await learner.row_morphism(old_prefix)

        await learner.make_closed()

        self.assertNotEqual(old_prefix.identity, learner.prefix.identity)
        self.assertNotEqual(old_fprefix.identity, learner.fprefix.identity)
        self.assertTrue(old_prefix.point_ids().isdisjoint(learner.prefix.point_ids()))

        # the stale row morphism stays attached to the old object only
        hom_new = await learner.store.get_hom_set(learner.prefix, learner.suffix_power_set)
        self.assertEqual(len(hom_new), 0)
        new_row = await learner.row_morphism(learner.prefix)
        self.assertNotEqual(new_row, old_row)
        self.assertEqual(new_row.source, learner.prefix.identity)

    async def test_closed_table_registers_close_w(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ONLY_A))
        await learner.make_closed()

        result = await learner.is_closed()
        self.assertTrue(result.is_closed)
        self.assertIsNotNone(result.morphism)
        self.assertEqual(result.morphism.source, learner.fprefix.identity)

        # a second check reuses the registered closeW
        again = await learner.is_closed()
        self.assertEqual(again.morphism, result.morphism)

    async def test_make_closed_on_closed_table_is_noop(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ONLY_A))
        await learner.make_closed()
        before = learner.prefix
        self.assertEqual(await learner.make_closed(), [])
        self.assertIs(learner.prefix, before)


class TestConsistency(unittest.IsolatedAsyncioTestCase):
    """Consistency check and E growth on a seeded table"""

    async def asyncSetUp(self):
        # ε and a share the row over E = {ε} but ε·b and a·b do not
        self.learner = await CALF.create(
            ["a", "b"],
            RegexOracle(ENDS_WITH_AB),
            config=LearnerConfig(initial_prefixes=["a"])
        )

    async def test_not_consistent_seeds_separating_suffix(self):
        learner = self.learner
        self.assertFalse((await learner.is_closed()).is_closed)
        await learner.make_closed()
        self.assertTrue((await learner.is_closed()).is_closed)

        result = await learner.is_consistent()

        self.assertEqual(result.verdict, Verdict.NOT_CONSISTENT)
        self.assertEqual(len(result.witnesses), 1)
        conflict = result.witnesses[0]
        self.assertEqual(conflict.first.value.text, "b")
        self.assertEqual(conflict.second.value.text, "ab")
        self.assertEqual(conflict.symbol, "b")
        self.assertEqual(conflict.suffix, EPSILON)
        self.assertEqual(conflict.experiment.text, "b")

    async def test_suffix_growth_rebuilds_power_set(self):
        learner = self.learner
        await learner.make_closed()
        old_suffix, old_power_set = learner.suffix, learner.suffix_power_set

        added = await learner.make_consistent()

        self.assertEqual([str(w) for w in added], ["b"])
        self.assertEqual(texts(learner.suffix), ["ε", "b"])
        self.assertNotEqual(old_suffix.identity, learner.suffix.identity)
        self.assertNotEqual(old_power_set.identity, learner.suffix_power_set.identity)
        self.assertEqual(len(learner.suffix_power_set), 4)

    async def test_strict_run_learns_three_states(self):
        hypothesis = await self.learner.run()

        self.assertEqual(len(hypothesis), 3)
        self.assertEqual(self.learner.trace.count(Verdict.NOT_CONSISTENT), 1)
        self.assertIsNone(self.learner.oracle.equivalence_query(hypothesis, max_length=6))

    async def test_consistent_table_after_run(self):
        learner = self.learner
        await learner.run()

        rows = {str(p.value): learner.observation_row(p.value) for p in learner.prefix}
        prefixes = list(learner.prefix.values())
        for s1 in prefixes:
            for s2 in prefixes:
                if rows[str(s1)] != rows[str(s2)]:
                    continue
                for symbol in learner.symbols:
                    self.assertEqual(
                        learner.observation_row(s1.append_symbol(symbol)),
                        learner.observation_row(s2.append_symbol(symbol))
                    )


class TestLenientConsistency(unittest.IsolatedAsyncioTestCase):
    """strict_consistency=False reports consistency unconditionally"""

    async def asyncSetUp(self):
        self.learner = await CALF.create(
            ["a", "b"],
            RegexOracle(ENDS_WITH_AB),
            config=LearnerConfig(initial_prefixes=["a"], strict_consistency=False)
        )

    async def test_commutation_failure_is_discarded(self):
        learner = self.learner
        await learner.make_closed()

        with self.assertLogs(learner_module.logger, level="WARNING"):
            result = await learner.is_consistent()

        self.assertTrue(result.is_consistent)
        self.assertIsNotNone(result.commutation)
        self.assertFalse(result.commutation.commutative)
        self.assertEqual(texts(learner.suffix), ["ε"])

    async def test_extraction_rejects_ill_defined_transitions(self):
        with self.assertRaises(InvalidMappingError):
            await self.learner.run()

    async def test_lenient_matches_strict_when_no_conflict(self):
        learner = await CALF.create(
            ["a", "b"],
            RegexOracle(ODD_AS),
            config=LearnerConfig(strict_consistency=False)
        )
        hypothesis = await learner.run()
        self.assertEqual(len(hypothesis), 2)


class TestTermination(unittest.TestCase):
    """Blocking entry point on the odd-number-of-a language"""

    def setUp(self):
        self.oracle = RegexOracle(ODD_AS)
        self.learner = CALF(["a", "b"], self.oracle)
        self.hypothesis = self.learner.learn()

    def test_hypothesis_classifies_check_set(self):
        h = self.hypothesis
        for word in ["a", "aaab", "bab", "ba"]:
            self.assertTrue(h.accepts(word), word)
        # "aab" holds two a's
        for word in ["", "bb", "aa", "aab"]:
            self.assertFalse(h.accepts(word), word)

    def test_hypothesis_agrees_with_target(self):
        self.assertEqual(len(self.hypothesis), 2)
        self.assertIsNone(self.oracle.equivalence_query(self.hypothesis, max_length=7))

    def test_closed_table_after_run(self):
        table = self.learner.observation_table()
        prefix_rows = set(table["prefixes"].values())
        for word, row in table["extensions"].items():
            self.assertIn(row, prefix_rows, word)

    def test_trace_is_monotone(self):
        trace = self.learner.trace
        self.assertTrue(trace.converged)
        self.assertTrue(trace.is_monotone())
        self.assertEqual(trace.steps[-1].verdict, Verdict.CONSISTENT)

        # steps record sizes after their repair; the table starts at |S| = |E| = 1
        sizes = [(1, 1)] + [(s.prefix_size, s.suffix_size) for s in trace.steps]
        for i, step in enumerate(trace.steps):
            if step.verdict == Verdict.CONSISTENT:
                continue
            (s0, e0), (s1, e1) = sizes[i], sizes[i + 1]
            self.assertGreaterEqual((s1 - s0) + (e1 - e0), 1)

    def test_unknown_symbol_is_rejected(self):
        self.assertFalse(self.hypothesis.accepts("ac"))

    def test_hypothesis_serialization(self):
        data = self.hypothesis.to_dict()
        self.assertEqual(data["initial"], "")
        self.assertEqual(data["accepting"], ["a"])
        self.assertEqual(len(data["transitions"]), 4)

        dot = self.hypothesis.to_dot()
        self.assertTrue(dot.startswith("digraph hypothesis {"))
        self.assertIn("doublecircle", dot)


class TestRowMorphisms(unittest.IsolatedAsyncioTestCase):
    """Row materialization, factorization and fatal conditions"""

    async def asyncSetUp(self):
        self.learner = await CALF.create(["a", "b"], RegexOracle(ODD_AS))

    async def test_row_rebuild_is_idempotent(self):
        first = self.learner.build_row_morphism(self.learner.prefix)
        second = self.learner.build_row_morphism(self.learner.prefix)
        self.assertNotEqual(first, second)
        self.assertTrue(first.same_mapping(second))

        registered = await self.learner.row_morphism(self.learner.prefix)
        self.assertIs(await self.learner.row_morphism(self.learner.prefix), registered)

    async def test_factorization_soundness(self):
        await self.learner.run()
        epic, monic, hyp = await self.learner.factorization()
        self.assertTrue(monic.is_injective())
        self.assertTrue(epic.is_surjective_on(hyp))
        self.assertTrue(epic.is_total_on(self.learner.prefix))

    async def test_stale_power_set_is_fatal(self):
        self.learner.suffix = self.learner.suffix.extend([Word.parse("a")])
        with self.assertRaises(MembershipRowNotFoundError):
            self.learner.build_row_morphism(self.learner.prefix)

    async def test_second_row_morphism_is_fatal(self):
        learner = self.learner
        await learner.row_morphism(learner.prefix)
        await learner.store.add_morphism(learner.build_row_morphism(learner.prefix))

        with self.assertRaises(MultipleMorphismsError) as ctx:
            await learner.is_closed()
        self.assertEqual(ctx.exception.count, 2)

    async def test_extraction_without_table_is_fatal(self):
        with self.assertRaises(MissingMorphismError):
            await self.learner.extract_hypothesis()


class TestQueriesAndLimits(unittest.IsolatedAsyncioTestCase):
    """Membership cache and iteration bound"""

    async def test_cache_answers_each_word_once(self):
        oracle = CountingOracle(ENDS_WITH_AB)
        learner = await CALF.create(["a", "b"], oracle, config=LearnerConfig(initial_prefixes=["a"]))
        await learner.run()

        self.assertEqual(len(oracle.calls), len(set(oracle.calls)))
        self.assertGreater(learner.trace.cache_hits, 0)
        self.assertEqual(learner.trace.membership_queries, len(oracle.calls))

    async def test_disabled_cache_repeats_queries(self):
        oracle = CountingOracle(ENDS_WITH_AB)
        learner = await CALF.create(
            ["a", "b"], oracle,
            config=LearnerConfig(initial_prefixes=["a"], cache_queries=False)
        )
        await learner.run()

        self.assertGreater(len(oracle.calls), len(set(oracle.calls)))
        self.assertEqual(learner.trace.cache_hits, 0)

    async def test_iteration_limit(self):
        learner = await CALF.create(
            ["a", "b"], RegexOracle(ONLY_A),
            config=LearnerConfig(max_iterations=1)
        )
        with self.assertRaises(IterationLimitError):
            await learner.run()

    async def test_seed_must_tokenize(self):
        with self.assertRaises(ValueError):
            CALF(["a", "b"], RegexOracle(ONLY_A), config=LearnerConfig(initial_prefixes=["ac"]))


class TestSeeding(unittest.TestCase):
    """Seeded tables stay prefix-closed and suffix-closed"""

    def test_seed_prefixes_are_prefix_closed(self):
        learner = CALF(["a", "b"], RegexOracle("bb"), config=LearnerConfig(initial_prefixes=["bb"]))
        self.assertEqual(texts(learner.prefix), ["ε", "b", "bb"])

    def test_seed_suffixes_are_suffix_closed(self):
        learner = CALF(["a", "b"], RegexOracle("bb"), config=LearnerConfig(initial_suffixes=["bba", "aba"]))
        self.assertEqual(texts(learner.suffix), ["ε", "a", "ba", "bba", "aba"])

    def test_hypothesis_agrees_with_seeded_table(self):
        for prefixes, suffixes in [(["bb"], []), (["bb"], ["bba", "aba"]), (["aba", "b"], ["ab"])]:
            oracle = RegexOracle("bb")
            learner = CALF(
                ["a", "b"], oracle,
                config=LearnerConfig(initial_prefixes=prefixes, initial_suffixes=suffixes)
            )
            h = learner.learn()

            words = list(learner.prefix.values()) + list(learner.fprefix.values())
            for word in words:
                for suffix in learner.suffix.values():
                    text = word.concat(suffix).text
                    self.assertEqual(h.accepts(text), oracle.membership_query(text), (prefixes, suffixes, text))

    def test_access_words_reach_their_states(self):
        learner = CALF(["a", "b"], RegexOracle("bb"), config=LearnerConfig(initial_prefixes=["bb"]))
        h = learner.learn()
        for state in h.states:
            self.assertEqual(h.run(Word.parse(state.access)), state.key, str(state))

    def test_multi_character_symbols(self):
        h = CALF(["ab", "c"], RegexOracle("^ab$")).learn()
        self.assertTrue(h.accepts("ab"))
        self.assertFalse(h.accepts("c"))
        self.assertFalse(h.accepts("abx"))


class TestCorruptedDiagrams(unittest.IsolatedAsyncioTestCase):
    """Registered morphisms that disagree with row_FS"""

    async def test_corrupted_close_w_is_not_closed(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ODD_AS))
        await learner.make_closed()
        epic, _, hyp = await learner.factorization()
        initial = epic.mapping[learner.prefix.get(EPSILON).identity]

        constant = Morphism(
            learner.fprefix.identity, hyp.identity,
            {p.identity: initial for p in learner.fprefix}, name="closeW"
        )
        await learner.store.add_morphism(constant)

        result = await learner.is_closed()
        self.assertEqual(result.verdict, Verdict.NOT_CLOSED)
        self.assertEqual(sorted(p.value.text for p in result.witnesses), ["a", "ab"])

    async def test_corrupted_induced_row_is_not_consistent(self):
        learner = await CALF.create(
            ["a", "b"], RegexOracle(ENDS_WITH_AB),
            config=LearnerConfig(initial_prefixes=["a"])
        )
        await learner.make_closed()
        await self._register_constant_row(learner)

        result = await learner.is_consistent()
        self.assertEqual(result.verdict, Verdict.NOT_CONSISTENT)
        self.assertEqual([c.experiment.text for c in result.witnesses], ["b"])
        self.assertEqual(result.witnesses[0].second.value.text, "ab")

    async def test_corrupted_induced_row_without_conflict_is_fatal(self):
        learner = await CALF.create(["a", "b"], RegexOracle(ODD_AS))
        await learner.make_closed()
        await self._register_constant_row(learner)

        with self.assertRaises(InvalidMappingError):
            await learner.is_consistent()

    async def test_lenient_mode_ignores_corrupted_induced_row(self):
        learner = await CALF.create(
            ["a", "b"], RegexOracle(ODD_AS),
            config=LearnerConfig(strict_consistency=False)
        )
        await learner.make_closed()
        await self._register_constant_row(learner)

        result = await learner.is_consistent()
        self.assertTrue(result.is_consistent)
        self.assertFalse(result.commutation.commutative)

    async def _register_constant_row(self, learner):
        _, _, hyp = await learner.factorization()
        fhyp = await learner.functor.fmap_object(hyp)
        zero = learner.suffix_power_set.get("0")
        await learner.store.add_morphism(Morphism(
            fhyp.identity, learner.suffix_power_set.identity,
            {p.identity: zero.identity for p in fhyp}, name="FH -> 2^E"
        ))


if __name__ == "__main__":
    unittest.main()
