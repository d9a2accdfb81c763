#!/usr/bin/env python3
"""
CALF command line

Learns an automaton from a regular-expression oracle or a remote HTTP
oracle and prints the hypothesis.

Usage:
  calf --regex '^b*(ab*)(ab*ab*)*$' --alphabet a,b
  calf --url http://localhost:8000 --alphabet 0,1 --dot hypothesis.dot
"""

from typing import List, Optional
import argparse
import json
import logging
import sys

from .config import LearnerConfig
from .errors import CalfError
from .hypothesis import Hypothesis
from .learner import CALF
from .oracle import HttpOracle, Oracle, RegexOracle

DEFAULT_REGEX = "^b*(ab*)(ab*ab*)*$"


def print_header(title: str):
    """Print formatted header"""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calf",
        description="Categorical L*: learn a finite automaton from membership queries",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--regex", default=None, help=f"Target language as a regex (default {DEFAULT_REGEX!r})")
    source.add_argument("--url", default=None, help="Base URL of a remote membership oracle")

    parser.add_argument("--alphabet", default="a,b", help="Comma-separated input symbols")
    parser.add_argument("--prefix", action="append", default=[], help="Seed prefix for S (repeatable)")
    parser.add_argument("--suffix", action="append", default=[], help="Seed suffix for E (repeatable)")
    parser.add_argument(
        "--lenient-consistency",
        action="store_true",
        help="Report consistency unconditionally (historical behaviour)"
    )
    parser.add_argument("--max-iterations", type=int, default=None, help="Abort after N loop passes")
    parser.add_argument(
        "--check-depth",
        type=int,
        default=None,
        help="Run a bounded equivalence query up to this word length"
    )
    parser.add_argument("--dot", default=None, help="Write the hypothesis as Graphviz DOT to this file")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")
    return parser


def make_oracle(args: argparse.Namespace, config: LearnerConfig) -> Oracle:
    if args.url:
        return HttpOracle(args.url, timeout=config.http_timeout)
    return RegexOracle(args.regex or DEFAULT_REGEX, equivalence_depth=config.equivalence_depth)


def report(hypothesis: Hypothesis, learner: CALF, counterexample: Optional[str], checked: bool):
    print_header("HYPOTHESIS")
    print(f"States: {len(hypothesis)}")
    for state in hypothesis.states:
        marker = "*" if state.key in hypothesis.accepting else " "
        initial = "→" if state.key == hypothesis.initial else " "
        print(f"  {initial}{marker} {str(state):<12} row={state.row}")

    print("\nTransitions:")
    for (src, symbol), dst in sorted(hypothesis.transitions.items(),
                                     key=lambda item: (hypothesis.state(item[0][0]).access, item[0][1])):
        print(f"  δ({hypothesis.state(src)}, {symbol}) = {hypothesis.state(dst)}")

    info = learner.trace.get_convergence_info()
    print_header("CONVERGENCE")
    print(f"  Iterations: {info['iterations']}")
    print(f"  Closedness repairs: {info['closedness_repairs']}")
    print(f"  Consistency repairs: {info['consistency_repairs']}")
    print(f"  |S| = {info['prefix_size']}, |E| = {info['suffix_size']}")
    print(f"  Membership queries: {info['membership_queries']} (cache hits: {info['cache_hits']})")

    if checked:
        if counterexample is None:
            print("\n✓ No counterexample up to the checked depth")
        else:
            print(f"\n✗ Counterexample: {counterexample!r}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    symbols = [s for s in args.alphabet.split(",") if s]
    if not symbols:
        parser.error("--alphabet must name at least one symbol")

    try:
        overrides = {"initial_prefixes": args.prefix, "initial_suffixes": args.suffix}
        if args.lenient_consistency:
            overrides["strict_consistency"] = False
        if args.max_iterations is not None:
            overrides["max_iterations"] = args.max_iterations
        config = LearnerConfig.from_env(**overrides)
    except ValueError as e:
        parser.error(str(e))

    try:
        oracle = make_oracle(args, config)
        learner = CALF(symbols, oracle, config=config)
        hypothesis = learner.learn()

        counterexample = None
        checked = args.check_depth is not None
        if checked:
            counterexample = oracle.equivalence_query(hypothesis, max_length=args.check_depth)
    except CalfError as e:
        print(f"✗ Learning failed [{e.kind}]: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"✗ Invalid input: {e}", file=sys.stderr)
        return 2

    if args.dot:
        with open(args.dot, "w", encoding="utf-8") as handle:
            handle.write(hypothesis.to_dot())

    if args.json:
        print(json.dumps({
            "hypothesis": hypothesis.to_dict(),
            "trace": learner.trace.to_dict(),
            "counterexample": counterexample,
        }, indent=2))
    else:
        report(hypothesis, learner, counterexample, checked)
    return 0


if __name__ == "__main__":
    sys.exit(main())
