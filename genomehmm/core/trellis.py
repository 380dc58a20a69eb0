"""
genomehmm trellis

The trellis is the lattice of (position, state) nodes that every pass over a
sequence walks. It is stored as an arena: one numpy array per scratch value,
indexed by [position_id, state]. Node, Position and Transition are cheap
views that only hold indices into the arena, so there are no reference
cycles and no per-node Python objects kept alive.

Layout:
    position 0      synthetic start node, state 0 only, no symbol
    position i > 0  states 1..n_states-1, tagged with symbol i (1-based)

Transitions are implicit: every node at position i-1 connects to every node
at position i. Transitions leaving the start node carry initiation
probabilities, all others carry transition probabilities.
"""

from typing import Iterator, List, Optional, Sequence

import numpy as np

from genomehmm.core.logmath import (
    LOG_ZERO,
    is_log_zero,
    log_product,
    log_product_array,
)
from genomehmm.core.probabilities import ProbabilityTable

START_STATE = 0


class Trellis:
    """
    Arena of per-node scratch values for one sequence.

    Attributes:
        symbols: Emission symbols, symbols[i - 1] belongs to position i
        symbol_columns: Emission-matrix column per position (-1 at position 0)
        highest_weight: Viterbi score per node
        best_predecessor: Predecessor state on the best path (-1 for none)
        log_forward, log_backward, log_posterior: forward-backward values
        log_transition_normalizer: Per-position normaliser for transition
            posteriors (transitions ending at that position)
    """

    def __init__(self, symbols: Sequence[str], symbol_columns: np.ndarray, n_states: int):
        if len(symbols) != len(symbol_columns):
            raise ValueError("symbols and symbol_columns differ in length")
        self.symbols = tuple(symbols)
        self.n_states = n_states
        self.n_positions = len(self.symbols) + 1

        self.symbol_columns = np.full(self.n_positions, -1, dtype=np.intp)
        self.symbol_columns[1:] = symbol_columns

        shape = (self.n_positions, n_states)
        self.highest_weight = np.empty(shape)
        self.best_predecessor = np.empty(shape, dtype=np.intp)
        self.log_forward = np.empty(shape)
        self.log_backward = np.empty(shape)
        self.log_posterior = np.empty(shape)
        self.log_transition_normalizer = np.empty(self.n_positions)

        # Table the posterior values were computed with
        self.posterior_table: Optional[ProbabilityTable] = None

        self._start_states = np.array([START_STATE], dtype=np.intp)
        self._real_states = np.arange(1, n_states, dtype=np.intp)
        self.reset()

    @classmethod
    def build(cls, symbols: Sequence[str], table: ProbabilityTable) -> 'Trellis':
        """
        Build the trellis for a symbol sequence.

        Raises:
            MissingProbabilityError: if a symbol has no emission probability
        """
        return cls(symbols, table.encode(symbols), table.n_states)

    def reset(self):
        """Clear all scratch values, leaving only the start node's weight."""
        self.highest_weight.fill(LOG_ZERO)
        self.best_predecessor.fill(-1)
        self.log_forward.fill(LOG_ZERO)
        self.log_backward.fill(LOG_ZERO)
        self.log_posterior.fill(LOG_ZERO)
        self.log_transition_normalizer.fill(LOG_ZERO)
        self.highest_weight[0, START_STATE] = 0.0
        self.posterior_table = None

    def __len__(self) -> int:
        return self.n_positions

    @property
    def sequence_length(self) -> int:
        return self.n_positions - 1

    @property
    def last_position(self) -> int:
        return self.n_positions - 1

    @property
    def real_states(self) -> np.ndarray:
        return self._real_states

    @property
    def n_nodes(self) -> int:
        return 1 + self.sequence_length * (self.n_states - 1)

    @property
    def n_transitions(self) -> int:
        if self.sequence_length == 0:
            return 0
        n_real = self.n_states - 1
        return n_real + (self.sequence_length - 1) * n_real * n_real

    def states_at(self, position_id: int) -> np.ndarray:
        """States present at a position."""
        if position_id == 0:
            return self._start_states
        return self._real_states

    def _check_position(self, position_id: int):
        if not 0 <= position_id < self.n_positions:
            raise IndexError(f"Position {position_id} outside trellis of length {self.n_positions}")

    # =========================================================================
    # Views
    # =========================================================================

    def position(self, position_id: int) -> 'Position':
        self._check_position(position_id)
        return Position(self, position_id)

    def node(self, position_id: int, state: int) -> 'Node':
        self._check_position(position_id)
        if state not in self.states_at(position_id):
            raise IndexError(f"No node for state {state} at position {position_id}")
        return Node(self, position_id, state)

    def positions(self) -> Iterator['Position']:
        for position_id in range(self.n_positions):
            yield Position(self, position_id)

    def nodes(self) -> Iterator['Node']:
        for position in self.positions():
            yield from position.nodes

    def transitions(self) -> Iterator['Transition']:
        for position_id in range(1, self.n_positions):
            for node in Position(self, position_id).nodes:
                yield from node.in_transitions

    # =========================================================================
    # Log-probability slices used by the passes
    # =========================================================================

    def incoming_log_probabilities(self, position_id: int, table: ProbabilityTable) -> np.ndarray:
        """
        Log-probabilities of the transitions ending at position_id.

        Returns:
            (n_predecessors, n_states - 1) array, rows follow states_at(position_id - 1)
        """
        if position_id == 1:
            return table.log_initiation_[np.newaxis, 1:]
        return table.log_transition_[1:, 1:]

    def log_emissions(self, position_id: int, table: ProbabilityTable) -> np.ndarray:
        """Log-emission of the symbol at position_id for every real state."""
        return table.log_emission_[1:, self.symbol_columns[position_id]]

    def log_transition_weights(self, table: ProbabilityTable,
                               start: int, stop: int) -> np.ndarray:
        """
        Unnormalised transition posteriors for positions start..stop-1.

        For the transition s -> s' ending at position i the weight is
        forward(i-1, s) * P(s -> s') * emission(i, s') * backward(i, s').

        Returns:
            (stop - start, n_predecessors, n_states - 1) array
        """
        if start == 1:
            if stop != 2:
                raise ValueError("Transitions out of the start node form their own block")
            forward = self.log_forward[0:1, self._start_states]
        else:
            forward = self.log_forward[start - 1:stop - 1, 1:]
        emission = table.log_emission_[1:, self.symbol_columns[start:stop]].T
        successor = log_product_array(emission, self.log_backward[start:stop, 1:])
        transition = self.incoming_log_probabilities(start, table)
        weights = log_product_array(forward[:, :, np.newaxis], transition[np.newaxis, :, :])
        return log_product_array(weights, successor[:, np.newaxis, :])

    def transition_log_posteriors(self, position_id: int) -> np.ndarray:
        """
        Normalised transition posteriors (epsilon) for transitions ending at position_id.

        Raises:
            RuntimeError: if posteriors have not been computed
        """
        if self.posterior_table is None:
            raise RuntimeError("Posteriors have not been computed for this trellis")
        self._check_position(position_id)
        if position_id == 0:
            raise IndexError("No transitions end at the start position")
        weights = self.log_transition_weights(self.posterior_table, position_id, position_id + 1)[0]
        return log_product_array(weights, -self.log_transition_normalizer[position_id])


class Node:
    """View of one (position, state) node."""

    __slots__ = ('trellis', 'position_id', 'state')

    def __init__(self, trellis: Trellis, position_id: int, state: int):
        self.trellis = trellis
        self.position_id = position_id
        self.state = state

    @property
    def is_start(self) -> bool:
        return self.position_id == 0

    @property
    def symbol(self) -> Optional[str]:
        if self.is_start:
            return None
        return self.trellis.symbols[self.position_id - 1]

    @property
    def highest_weight(self) -> float:
        return float(self.trellis.highest_weight[self.position_id, self.state])

    @property
    def best_predecessor(self) -> Optional['Node']:
        state = int(self.trellis.best_predecessor[self.position_id, self.state])
        if state < 0:
            return None
        return Node(self.trellis, self.position_id - 1, state)

    @property
    def log_forward(self) -> float:
        return float(self.trellis.log_forward[self.position_id, self.state])

    @property
    def log_backward(self) -> float:
        return float(self.trellis.log_backward[self.position_id, self.state])

    @property
    def log_posterior(self) -> float:
        return float(self.trellis.log_posterior[self.position_id, self.state])

    def log_emission(self, table: ProbabilityTable) -> float:
        """Log-probability of this node emitting its symbol (log 1 for the start node)."""
        if self.is_start:
            return 0.0
        column = self.trellis.symbol_columns[self.position_id]
        return float(table.log_emission_[self.state, column])

    @property
    def in_transitions(self) -> List['Transition']:
        if self.is_start:
            return []
        return [Transition(Node(self.trellis, self.position_id - 1, int(s)), self)
                for s in self.trellis.states_at(self.position_id - 1)]

    @property
    def out_transitions(self) -> List['Transition']:
        if self.position_id == self.trellis.last_position:
            return []
        return [Transition(self, Node(self.trellis, self.position_id + 1, int(s)))
                for s in self.trellis.real_states]

    def _key(self):
        return (id(self.trellis), self.position_id, self.state)

    def __eq__(self, other):
        return isinstance(other, Node) and self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"Node(position={self.position_id}, state={self.state}, symbol={self.symbol!r})"


class Transition:
    """View of one edge between adjacent nodes."""

    __slots__ = ('start', 'end')

    def __init__(self, start: Node, end: Node):
        self.start = start
        self.end = end

    def log_probability(self, table: ProbabilityTable) -> float:
        if self.start.is_start:
            return float(table.log_initiation_[self.end.state])
        return float(table.log_transition_[self.start.state, self.end.state])

    @property
    def log_posterior(self) -> float:
        """Normalised posterior of taking this transition (epsilon)."""
        trellis = self.start.trellis
        table = trellis.posterior_table
        if table is None:
            raise RuntimeError("Posteriors have not been computed for this trellis")
        weight = log_product(
            self.start.log_forward,
            log_product(self.log_probability(table),
                        log_product(self.end.log_emission(table), self.end.log_backward)))
        normalizer = float(trellis.log_transition_normalizer[self.end.position_id])
        if is_log_zero(normalizer):
            return LOG_ZERO
        return log_product(weight, -normalizer)

    def __repr__(self):
        return f"Transition({self.start!r} -> {self.end!r})"


class Position:
    """View of one column of the trellis."""

    __slots__ = ('trellis', 'position_id')

    def __init__(self, trellis: Trellis, position_id: int):
        self.trellis = trellis
        self.position_id = position_id

    @property
    def symbol(self) -> Optional[str]:
        if self.position_id == 0:
            return None
        return self.trellis.symbols[self.position_id - 1]

    @property
    def nodes(self) -> List[Node]:
        return [Node(self.trellis, self.position_id, int(s))
                for s in self.trellis.states_at(self.position_id)]

    @property
    def log_transition_normalizer(self) -> float:
        return float(self.trellis.log_transition_normalizer[self.position_id])

    def highest_scoring_node(self) -> Optional[Node]:
        """
        Node with the largest highest_weight; the first one wins ties.

        Returns None when every node at this position is impossible.
        """
        best = None
        best_weight = LOG_ZERO
        for node in self.nodes:
            weight = node.highest_weight
            if is_log_zero(weight):
                continue
            if best is None or weight > best_weight:
                best, best_weight = node, weight
        return best

    def __repr__(self):
        return f"Position({self.position_id}, symbol={self.symbol!r})"
