"""
genomehmm state topologies

A StateTopology fixes everything about a model except its probabilities:
how many states it has, how a DNA string is cut into emission symbols, what
the states are called, and which states make up a gene on each strand.

Two topologies ship with the package:
- gc-content: 2 real states (AT-rich, GC-rich) over single nucleotides
- gene: 11 real states (intergenic plus start/coding/stop on both strands)
  over overlapping codons
"""

import itertools
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from genomehmm.core.probabilities import ProbabilityTable

NUCLEOTIDES = ('A', 'C', 'G', 'T')
CODONS = tuple(''.join(c) for c in itertools.product(NUCLEOTIDES, repeat=3))


@dataclass(frozen=True)
class StateTopology:
    """
    Fixed structure of a model.

    Attributes:
        name: Registry key
        n_states: Number of states including the start state 0
        symbol_length: Nucleotides per emission symbol
        alphabet: Emission symbols, sorted
        state_labels: Human-readable name per state (index 0 is the start state)
        initial_table_factory: Builds the starting ProbabilityTable
        gene_states: (strand, states) pairs; empty for segment topologies
    """
    name: str
    n_states: int
    symbol_length: int
    alphabet: Tuple[str, ...]
    state_labels: Tuple[str, ...]
    initial_table_factory: Callable[[], ProbabilityTable]
    gene_states: Tuple[Tuple[str, Tuple[int, ...]], ...] = ()

    @property
    def interval_kind(self) -> str:
        return 'genes' if self.gene_states else 'segments'

    @property
    def strands(self) -> Tuple[str, ...]:
        return tuple(strand for strand, _ in self.gene_states)

    def strand_of(self, state: int) -> Optional[str]:
        """Gene strand a state belongs to, or None for non-gene states."""
        for strand, states in self.gene_states:
            if state in states:
                return strand
        return None

    def symbols(self, sequence: str) -> List[str]:
        """Cut a nucleotide string into emission symbols (overlapping for k > 1)."""
        k = self.symbol_length
        if k == 1:
            return list(sequence)
        return [sequence[i:i + k] for i in range(len(sequence) - k + 1)]

    def initial_table(self) -> ProbabilityTable:
        return self.initial_table_factory()

    def label(self, state: int) -> str:
        return self.state_labels[state]


# =============================================================================
# GC-content model
# =============================================================================

AT_RICH, GC_RICH = 1, 2


def gc_content_table() -> ProbabilityTable:
    """Starting point for GC-content segmentation of a bacterial genome."""
    return ProbabilityTable.from_arrays(
        NUCLEOTIDES,
        initiation=[0.996, 0.004],
        transition=[[0.999, 0.001],
                    [0.01, 0.99]],
        #          A      C      G      T
        emission=[[0.291, 0.209, 0.209, 0.291],
                  [0.169, 0.331, 0.331, 0.169]],
    )


def viterbi_example_table() -> ProbabilityTable:
    """
    Textbook two-state example (H = high GC, L = low GC).

    With this table the sequence GGCACTGAA decodes to HHHLLLLLL.
    """
    return ProbabilityTable.from_arrays(
        NUCLEOTIDES,
        initiation=[0.5, 0.5],
        transition=[[0.5, 0.5],
                    [0.4, 0.6]],
        emission=[[0.2, 0.3, 0.3, 0.2],
                  [0.3, 0.2, 0.2, 0.3]],
    )


# =============================================================================
# Gene-structure model
# =============================================================================
# Each position is labelled with the role of the codon that starts there.
# Top-strand genes read left to right: start, then codon positions 2, 3, 1,
# 2, 3 ... and finally the stop codon. Bottom-strand genes appear reverse
# complemented: the stop codon comes first and the start codon last.

INTERGENIC = 1
TOP_START, TOP_CODON_1, TOP_CODON_2, TOP_CODON_3, TOP_STOP = 2, 3, 4, 5, 6
BOTTOM_STOP, BOTTOM_CODON_3, BOTTOM_CODON_2, BOTTOM_CODON_1, BOTTOM_START = 7, 8, 9, 10, 11

GENE_TRANSITIONS = {
    INTERGENIC: {INTERGENIC: 0.998, TOP_START: 0.001, BOTTOM_STOP: 0.001},
    TOP_START: {TOP_CODON_2: 1.0},
    TOP_CODON_1: {TOP_CODON_2: 1.0},
    TOP_CODON_2: {TOP_CODON_3: 1.0},
    TOP_CODON_3: {TOP_CODON_1: 0.997, TOP_STOP: 0.003},
    TOP_STOP: {INTERGENIC: 1.0},
    BOTTOM_STOP: {BOTTOM_CODON_2: 1.0},
    BOTTOM_CODON_3: {BOTTOM_CODON_2: 1.0},
    BOTTOM_CODON_2: {BOTTOM_CODON_1: 1.0},
    BOTTOM_CODON_1: {BOTTOM_CODON_3: 0.997, BOTTOM_START: 0.003},
    BOTTOM_START: {INTERGENIC: 1.0},
}

SIGNAL_CODONS = {
    TOP_START: {'ATG': 0.91, 'GTG': 0.05, 'TTG': 0.03},
    TOP_STOP: {'TAA': 0.4, 'TAG': 0.2, 'TGA': 0.39},
    BOTTOM_STOP: {'TTA': 0.4, 'CTA': 0.2, 'TCA': 0.39},
    BOTTOM_START: {'CAT': 0.91, 'CAC': 0.05, 'CAA': 0.03},
}


def _codon_distribution(peaks: Dict[str, float]) -> List[float]:
    """Given codons get their weight, the remaining mass is spread evenly."""
    rest = (1.0 - sum(peaks.values())) / (len(CODONS) - len(peaks))
    return [peaks.get(codon, rest) for codon in CODONS]


def gene_table() -> ProbabilityTable:
    """Starting point for gene finding on both strands."""
    n_real = 11
    coding = (TOP_CODON_1, TOP_CODON_2, TOP_CODON_3,
              BOTTOM_CODON_1, BOTTOM_CODON_2, BOTTOM_CODON_3)

    initiation = [0.0] * n_real
    initiation[INTERGENIC - 1] = 0.9
    for state in coding:
        initiation[state - 1] = 0.1 / len(coding)

    transition = [[0.0] * n_real for _ in range(n_real)]
    for from_state, row in GENE_TRANSITIONS.items():
        for to_state, p in row.items():
            transition[from_state - 1][to_state - 1] = p

    emission = []
    for state in range(1, n_real + 1):
        emission.append(_codon_distribution(SIGNAL_CODONS.get(state, {})))

    return ProbabilityTable.from_arrays(CODONS, initiation, transition, emission)


GC_CONTENT = StateTopology(
    name='gc-content',
    n_states=3,
    symbol_length=1,
    alphabet=NUCLEOTIDES,
    state_labels=('start', 'at_rich', 'gc_rich'),
    initial_table_factory=gc_content_table,
)

GENE = StateTopology(
    name='gene',
    n_states=12,
    symbol_length=3,
    alphabet=CODONS,
    state_labels=('start', 'intergenic',
                  'top_start', 'top_codon_1', 'top_codon_2', 'top_codon_3', 'top_stop',
                  'bottom_stop', 'bottom_codon_3', 'bottom_codon_2', 'bottom_codon_1',
                  'bottom_start'),
    initial_table_factory=gene_table,
    gene_states=(
        ('top', (TOP_START, TOP_CODON_1, TOP_CODON_2, TOP_CODON_3, TOP_STOP)),
        ('bottom', (BOTTOM_STOP, BOTTOM_CODON_3, BOTTOM_CODON_2, BOTTOM_CODON_1, BOTTOM_START)),
    ),
)

TOPOLOGIES = {t.name: t for t in (GC_CONTENT, GENE)}


def get_topology(name: str) -> StateTopology:
    """Look up a built-in topology by name."""
    try:
        return TOPOLOGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown topology '{name}'. Choices: {', '.join(sorted(TOPOLOGIES))}"
        ) from None
