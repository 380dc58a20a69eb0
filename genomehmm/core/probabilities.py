"""
genomehmm probability tables

A ProbabilityTable holds the three parameter families of the model
(initiation, transition, emission) for states 1..n_states-1. State 0 is the
virtual start state: it never emits and its outgoing transitions are the
initiation probabilities.

Every value is stored twice, as a probability and as its extended log,
and the two are only ever updated together through the setters.
"""

import math
from typing import Any, Dict, Iterable, Sequence

import numpy as np

from genomehmm.core.logmath import LOG_ZERO, extended_ln

# Re-estimation can overshoot 1.0 by a rounding error
_PROB_TOLERANCE = 1e-9


class MissingProbabilityError(LookupError):
    """Raised when a probability is requested for an unknown state or symbol."""


def _validate_probability(p: float) -> float:
    p = float(p)
    if math.isnan(p) or p < 0.0 or p > 1.0 + _PROB_TOLERANCE:
        raise ValueError(f"Probability must be in [0, 1], got {p}")
    return min(p, 1.0)


def _read_only(a: np.ndarray) -> np.ndarray:
    view = a.view()
    view.flags.writeable = False
    return view


class ProbabilityTable:
    """
    Initiation, transition and emission probabilities for one model.

    Args:
        n_states: Number of states including the start state 0
        alphabet: Emission symbols (e.g. 'ACGT' or a list of codons)
    """

    def __init__(self, n_states: int, alphabet: Sequence[str]):
        if n_states < 2:
            raise ValueError(f"A model needs at least one real state, got n_states={n_states}")
        alphabet = tuple(alphabet)
        if len(set(alphabet)) != len(alphabet):
            raise ValueError("Alphabet contains duplicate symbols")

        self.n_states = n_states
        self.alphabet = alphabet
        self.symbol_index: Dict[str, int] = {s: i for i, s in enumerate(alphabet)}

        self._initiation = np.zeros(n_states)
        self._transition = np.zeros((n_states, n_states))
        self._emission = np.zeros((n_states, len(alphabet)))

        self._log_initiation = np.full(n_states, LOG_ZERO)
        self._log_transition = np.full((n_states, n_states), LOG_ZERO)
        self._log_emission = np.full((n_states, len(alphabet)), LOG_ZERO)

    @property
    def states(self) -> range:
        """The real (emitting) states."""
        return range(1, self.n_states)

    def _check_state(self, state: int) -> int:
        if not 1 <= state < self.n_states:
            raise MissingProbabilityError(
                f"No probabilities for state {state} (model has states 1..{self.n_states - 1})"
            )
        return state

    def _column(self, symbol: str) -> int:
        try:
            return self.symbol_index[symbol]
        except KeyError:
            raise MissingProbabilityError(
                f"No emission probability for symbol {symbol!r}"
            ) from None

    # =========================================================================
    # Getters
    # =========================================================================

    def initiation(self, state: int) -> float:
        return float(self._initiation[self._check_state(state)])

    def transition(self, from_state: int, to_state: int) -> float:
        return float(self._transition[self._check_state(from_state),
                                      self._check_state(to_state)])

    def emission(self, state: int, symbol: str) -> float:
        return float(self._emission[self._check_state(state), self._column(symbol)])

    def log_initiation(self, state: int) -> float:
        return float(self._log_initiation[self._check_state(state)])

    def log_transition(self, from_state: int, to_state: int) -> float:
        return float(self._log_transition[self._check_state(from_state),
                                          self._check_state(to_state)])

    def log_emission(self, state: int, symbol: str) -> float:
        return float(self._log_emission[self._check_state(state), self._column(symbol)])

    # =========================================================================
    # Setters
    # =========================================================================

    def set_initiation(self, state: int, p: float):
        state = self._check_state(state)
        p = _validate_probability(p)
        self._initiation[state] = p
        self._log_initiation[state] = extended_ln(p)

    def set_transition(self, from_state: int, to_state: int, p: float):
        from_state = self._check_state(from_state)
        to_state = self._check_state(to_state)
        p = _validate_probability(p)
        self._transition[from_state, to_state] = p
        self._log_transition[from_state, to_state] = extended_ln(p)

    def set_emission(self, state: int, symbol: str, p: float):
        state = self._check_state(state)
        column = self._column(symbol)
        p = _validate_probability(p)
        self._emission[state, column] = p
        self._log_emission[state, column] = extended_ln(p)

    # =========================================================================
    # Whole-array access for the trellis kernels (read-only views)
    # =========================================================================

    @property
    def initiation_(self) -> np.ndarray:
        return _read_only(self._initiation)

    @property
    def transition_(self) -> np.ndarray:
        return _read_only(self._transition)

    @property
    def emission_(self) -> np.ndarray:
        return _read_only(self._emission)

    @property
    def log_initiation_(self) -> np.ndarray:
        return _read_only(self._log_initiation)

    @property
    def log_transition_(self) -> np.ndarray:
        return _read_only(self._log_transition)

    @property
    def log_emission_(self) -> np.ndarray:
        return _read_only(self._log_emission)

    def encode(self, symbols: Iterable[str]) -> np.ndarray:
        """
        Map emission symbols to emission-matrix columns.

        Raises:
            MissingProbabilityError: if a symbol is not in the alphabet
        """
        return np.array([self._column(s) for s in symbols], dtype=np.intp)

    def copy(self) -> 'ProbabilityTable':
        table = ProbabilityTable(self.n_states, self.alphabet)
        table._initiation = self._initiation.copy()
        table._transition = self._transition.copy()
        table._emission = self._emission.copy()
        table._log_initiation = self._log_initiation.copy()
        table._log_transition = self._log_transition.copy()
        table._log_emission = self._log_emission.copy()
        return table

    def report(self) -> str:
        """Textual model block (see genomehmm.reporting.report)."""
        from genomehmm.reporting.report import probabilities_report
        return probabilities_report(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize table to dictionary (start-state row/column omitted)."""
        return {
            'n_states': self.n_states,
            'alphabet': list(self.alphabet),
            'initiation': self._initiation[1:].tolist(),
            'transition': self._transition[1:, 1:].tolist(),
            'emission': self._emission[1:].tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ProbabilityTable':
        """Deserialize table from dictionary, validating every value."""
        table = cls(n_states=d['n_states'], alphabet=d['alphabet'])
        initiation = np.asarray(d['initiation'], dtype=float)
        transition = np.asarray(d['transition'], dtype=float)
        emission = np.asarray(d['emission'], dtype=float)

        n_real = table.n_states - 1
        if (initiation.shape != (n_real,) or transition.shape != (n_real, n_real)
                or emission.shape != (n_real, len(table.alphabet))):
            raise ValueError(
                f"Probability arrays do not match n_states={table.n_states} "
                f"and an alphabet of {len(table.alphabet)} symbols"
            )

        for state in table.states:
            table.set_initiation(state, initiation[state - 1])
            for to_state in table.states:
                table.set_transition(state, to_state, transition[state - 1, to_state - 1])
            for column, symbol in enumerate(table.alphabet):
                table.set_emission(state, symbol, emission[state - 1, column])
        return table

    @classmethod
    def from_arrays(cls, alphabet: Sequence[str], initiation, transition,
                    emission) -> 'ProbabilityTable':
        """Build a table from arrays indexed by real state (state 1 at index 0)."""
        initiation = np.asarray(initiation, dtype=float)
        return cls.from_dict({
            'n_states': len(initiation) + 1,
            'alphabet': list(alphabet),
            'initiation': initiation,
            'transition': transition,
            'emission': emission,
        })

    def __repr__(self):
        return (f"ProbabilityTable(n_states={self.n_states}, "
                f"alphabet_size={len(self.alphabet)})")
