"""Core log arithmetic, probability tables, trellis and HMM engine."""

from genomehmm.core.logmath import (
    LOG_ZERO,
    DomainError,
    extended_exp,
    extended_ln,
    is_log_zero,
    log_product,
    log_sum,
)
from genomehmm.core.probabilities import MissingProbabilityError, ProbabilityTable
from genomehmm.core.topology import GC_CONTENT, GENE, StateTopology, get_topology
from genomehmm.core.trellis import Node, Position, Transition, Trellis
from genomehmm.core.results import (
    BaumWelchResult,
    Gene,
    IterationResults,
    UnreachableStateError,
    UnreachableStateWarning,
)
from genomehmm.core.hmm import (
    HiddenMarkovModel,
    LikelihoodMismatchError,
    NonConvergenceWarning,
    TrainingConfig,
)
from genomehmm.core.model_io import (
    load_probabilities,
    load_probabilities_with_metadata,
    save_probabilities,
)
from genomehmm.core.sequence_reader import SequenceRecord, read_fasta
