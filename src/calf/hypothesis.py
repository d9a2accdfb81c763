"""
HYPOTHESIS: Automaton read off the extracted transition morphism δ: FH → H

States are the points of H (distinct observation rows), the initial state
is e(ε), and a state accepts when its row has the bit of the empty suffix set.
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union
from dataclasses import dataclass, field

from .categorical_core import Word


@dataclass(frozen=True)
class State:
    """State of the hypothesis, named by its shortest access word"""
    key: str
    access: str
    row: str

    def __str__(self) -> str:
        return self.access or "ε"


@dataclass
class Hypothesis:
    """Deterministic finite automaton (Q, Σ, δ, q₀, F)"""
    states: List[State]
    alphabet: List[str]
    transitions: Dict[Tuple[str, str], str]
    initial: str
    accepting: Set[str] = field(default_factory=set)
    suffixes: List[str] = field(default_factory=list)

    def state(self, key: str) -> State:
        for s in self.states:
            if s.key == key:
                return s
        raise KeyError(f"Unknown state {key}")

    def step(self, key: str, symbol: str) -> Optional[str]:
        return self.transitions.get((key, symbol))

    def run(self, word: Iterable[str]) -> Optional[str]:
        """State reached after reading ``word``; None on a symbol outside Σ"""
        current = self.initial
        for symbol in word:
            current = self.step(current, symbol)
            if current is None:
                return None
        return current

    def accepts(self, word: Union[str, Iterable[str]]) -> bool:
        """
        Classify a word given as text or as a symbol sequence. Text is
        tokenized over Σ, so multi-character symbols read as one step.
        """
        if isinstance(word, str):
            try:
                word = Word.parse(word, self.alphabet)
            except ValueError:
                return False
        final = self.run(word)
        return final is not None and final in self.accepting

    def __len__(self) -> int:
        return len(self.states)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize; states are referred to by access word"""
        names = {s.key: s.access for s in self.states}
        return {
            "alphabet": list(self.alphabet),
            "states": [s.access for s in self.states],
            "initial": names[self.initial],
            "accepting": sorted(names[k] for k in self.accepting),
            "transitions": [
                {"from": names[src], "symbol": symbol, "to": names[dst]}
                for (src, symbol), dst in sorted(
                    self.transitions.items(),
                    key=lambda item: (names[item[0][0]], item[0][1])
                )
            ],
            "suffixes": list(self.suffixes),
        }

    def to_dot(self, name: str = "hypothesis") -> str:
        """Graphviz rendering"""
        lines = [f"digraph {name} {{", "    rankdir=LR;", '    __start [shape=point, label=""];']
        for s in self.states:
            shape = "doublecircle" if s.key in self.accepting else "circle"
            lines.append(f'    "{s}" [shape={shape}];')
        lines.append(f'    __start -> "{self.state(self.initial)}";')

        edges: Dict[Tuple[str, str], List[str]] = {}
        for (src, symbol), dst in self.transitions.items():
            edges.setdefault((src, dst), []).append(symbol)
        for (src, dst), symbols in edges.items():
            label = ",".join(sorted(symbols))
            lines.append(f'    "{self.state(src)}" -> "{self.state(dst)}" [label="{label}"];')

        lines.append("}")
        return "\n".join(lines) + "\n"
