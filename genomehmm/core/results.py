"""
genomehmm training results

IterationResults summarises one Viterbi-training iteration: how often each
state and each transition occurs on the decoded path, the runs of states it
contains (segments, or genes for topologies with gene states) and the
probability table re-estimated from those counts.

BaumWelchResult is the summary of a full Baum-Welch run.
"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from genomehmm.core.logmath import LOG_ZERO
from genomehmm.core.probabilities import ProbabilityTable
from genomehmm.core.topology import StateTopology

UNREACHABLE_POLICIES = ('hold', 'raise')


class UnreachableStateError(ArithmeticError):
    """Raised when a state has no observations to re-estimate its probabilities from."""

    def __init__(self, state: int, family: str):
        self.state = state
        self.family = family
        super().__init__(
            f"State {state} is unreachable; cannot re-estimate its {family} probabilities"
        )


class UnreachableStateWarning(RuntimeWarning):
    """Issued when re-estimation keeps a state's previous probabilities."""


def handle_unreachable(error: UnreachableStateError, policy: str, held: Set[int]):
    """
    Apply the unreachable-state policy to a failed re-estimation.

    'hold' records the state and warns so the caller can keep the previous
    values; 'raise' raises the error.
    """
    if policy == 'raise':
        raise error
    warnings.warn(f"{error}; keeping previous values", UnreachableStateWarning, stacklevel=3)
    held.add(error.state)


@dataclass(frozen=True)
class Gene:
    """Gene call in 1-based inclusive nucleotide coordinates."""
    start: int
    end: int
    strand: str

    def __str__(self):
        return f"({self.start},{self.end},{self.strand})"


class IterationResults:
    """Statistics of the Viterbi path of one training iteration."""

    def __init__(self, iteration: int, topology: StateTopology, sequence_length: int):
        self.iteration = iteration
        self.topology = topology
        self.sequence_length = sequence_length

        n_states = topology.n_states
        self.state_counts = np.zeros(n_states, dtype=np.int64)
        self.transition_counts = np.zeros((n_states, n_states), dtype=np.int64)
        self.segments: Dict[int, List[Tuple[int, int]]] = {s: [] for s in range(1, n_states)}
        self.genes: List[Gene] = []
        self.probabilities: Optional[ProbabilityTable] = None
        self.held_states: Set[int] = set()

    @classmethod
    def from_path(cls, iteration: int, path: np.ndarray, topology: StateTopology,
                  sequence_length: int, previous: ProbabilityTable,
                  on_unreachable: str = 'hold') -> 'IterationResults':
        """
        Accumulate the statistics of a decoded path and re-estimate from them.

        Args:
            iteration: 1-based iteration number
            path: State per symbol position
            topology: Model topology
            sequence_length: Nucleotides in the sequence (for gene coordinates)
            previous: Table the path was decoded with
            on_unreachable: 'hold' or 'raise'
        """
        results = cls(iteration, topology, sequence_length)
        results.accumulate(path)
        results.probabilities = results.calculate_probabilities(previous, on_unreachable)
        return results

    def accumulate(self, path: np.ndarray):
        """Walk the path from the last position back to the first."""
        n = len(path)
        if n == 0:
            return

        by_genes = self.topology.interval_kind == 'genes'
        later = None
        segment_end = n
        strand = None
        gene_end = None

        for position in range(n, 0, -1):
            state = int(path[position - 1])
            self.state_counts[state] += 1
            if later is not None:
                self.transition_counts[state, later] += 1
                if state != later:
                    self.segments[later].append((position + 1, segment_end))
                    segment_end = position
            later = state

            if by_genes:
                current = self.topology.strand_of(state)
                if current != strand:
                    if strand is not None:
                        self._add_gene(position + 1, gene_end, strand)
                    gene_end = position
                    strand = current

        self.segments[later].append((1, segment_end))
        if by_genes and strand is not None:
            self._add_gene(1, gene_end, strand)

        for intervals in self.segments.values():
            intervals.reverse()
        self.genes.reverse()

    def _add_gene(self, first_symbol: int, last_symbol: int, strand: str):
        # The last symbol covers symbol_length nucleotides
        end = min(last_symbol + self.topology.symbol_length - 1, self.sequence_length)
        self.genes.append(Gene(first_symbol, end, strand))

    # =========================================================================
    # Summaries
    # =========================================================================

    @property
    def state_histogram(self) -> Dict[int, int]:
        return {s: int(self.state_counts[s]) for s in range(1, self.topology.n_states)}

    @property
    def segment_histogram(self) -> Dict[int, int]:
        return {s: len(intervals) for s, intervals in self.segments.items()}

    @property
    def gene_histogram(self) -> Dict[str, int]:
        histogram = {strand: 0 for strand in self.topology.strands}
        for gene in self.genes:
            histogram[gene.strand] += 1
        return histogram

    # =========================================================================
    # Viterbi re-estimation
    # =========================================================================

    def calculate_probabilities(self, previous: ProbabilityTable,
                                on_unreachable: str = 'hold') -> ProbabilityTable:
        """
        Re-estimate transition probabilities from the path counts.

        P(s -> s') is the number of s -> s' steps divided by the number of
        steps leaving s. Initiation and emission probabilities are carried
        over unchanged.

        Raises:
            UnreachableStateError: if on_unreachable is 'raise' and a state
                never has a successor on the path
        """
        table = previous.copy()
        for state in table.states:
            counts = self.transition_counts[state, 1:]
            outgoing = int(counts.sum())
            if outgoing == 0:
                handle_unreachable(UnreachableStateError(state, 'transition'),
                                   on_unreachable, self.held_states)
                continue
            for to_state, count in zip(table.states, counts):
                table.set_transition(state, to_state, count / outgoing)
        return table

    def report(self, include_intervals: bool = False) -> str:
        from genomehmm.reporting.report import iteration_report
        return iteration_report(self, include_intervals=include_intervals)

    def __repr__(self):
        return (f"IterationResults(iteration={self.iteration}, "
                f"states={self.state_histogram})")


@dataclass
class BaumWelchResult:
    """Outcome of a Baum-Welch run."""
    iterations: int
    log_likelihood: float
    probabilities: ProbabilityTable
    converged: bool
    history: List[float] = field(default_factory=list)
    held_states: Set[int] = field(default_factory=set)

    @classmethod
    def empty(cls, probabilities: ProbabilityTable) -> 'BaumWelchResult':
        return cls(iterations=0, log_likelihood=LOG_ZERO,
                   probabilities=probabilities, converged=False)

    def report(self) -> str:
        from genomehmm.reporting.report import baum_welch_report
        return baum_welch_report(self)
