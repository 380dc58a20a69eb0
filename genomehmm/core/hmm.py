"""
genomehmm HMM engine

Provides:
1. Trellis construction for one DNA sequence
2. Viterbi decoding (highest weights + best predecessors)
3. Forward, backward and posterior passes
4. Viterbi training and Baum-Welch training

All passes run in log space on the trellis arena. The recurrences are
sequential over positions, so each pass is a Python loop over positions with
a vectorised numpy step over states inside it. Transition posteriors are
handled in blocks of positions.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from genomehmm.core.logmath import (
    LOG_ZERO,
    extended_exp,
    extended_exp_array,
    is_log_zero,
    log_product_array,
    log_sum_array,
    log_sum_reduce,
    to_bits,
)
from genomehmm.core.probabilities import ProbabilityTable
from genomehmm.core.results import (
    UNREACHABLE_POLICIES,
    BaumWelchResult,
    IterationResults,
    UnreachableStateError,
    handle_unreachable,
)
from genomehmm.core.topology import StateTopology
from genomehmm.core.trellis import START_STATE, Trellis

logger = logging.getLogger(__name__)

# Positions per vectorised block of transition posteriors
TRANSITION_BLOCK = 4096

# Forward and backward likelihoods (bits) must agree this closely
LIKELIHOOD_REL_TOL = 1e-9
LIKELIHOOD_ABS_TOL = 1e-6


class LikelihoodMismatchError(ArithmeticError):
    """Raised when the forward and backward passes disagree on the likelihood."""


class NonConvergenceWarning(RuntimeWarning):
    """Issued when Baum-Welch stops at max_iterations without converging."""


@dataclass
class TrainingConfig:
    """
    Settings shared by both training loops.

    Attributes:
        convergence_threshold: Baum-Welch stops once the log-likelihood
            changes by less than this many bits
        max_iterations: Upper bound on Baum-Welch iterations
        on_unreachable: 'hold' keeps the previous probabilities of a state
            that cannot be re-estimated, 'raise' aborts training
        verbose: Show a progress bar
    """
    convergence_threshold: float = 0.1
    max_iterations: int = 1000
    on_unreachable: str = 'hold'
    verbose: bool = False

    def __post_init__(self):
        if self.convergence_threshold <= 0:
            raise ValueError("convergence_threshold must be positive")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.on_unreachable not in UNREACHABLE_POLICIES:
            raise ValueError(
                f"on_unreachable must be one of {UNREACHABLE_POLICIES}, got '{self.on_unreachable}'"
            )


def _first_maximum(scores: np.ndarray):
    """
    Column-wise maximum of a score matrix that may contain log-zero.

    np.argmax returns the first maximal row, so ties go to the lowest
    predecessor state.

    Returns:
        (row index per column, maximum per column with LOG_ZERO where no row is possible)
    """
    masked = np.where(np.isnan(scores), -np.inf, scores)
    best = np.argmax(masked, axis=0)
    weight = masked[best, np.arange(masked.shape[1])]
    return best, np.where(np.isneginf(weight), LOG_ZERO, weight)


def _reestimated_row(log_numerators: np.ndarray, log_denominator: float,
                     state: int, family: str) -> np.ndarray:
    if is_log_zero(log_denominator):
        raise UnreachableStateError(state, family)
    return extended_exp_array(log_product_array(log_numerators, -log_denominator))


class HiddenMarkovModel:
    """
    HMM over one DNA sequence.

    One instance processes one sequence end to end: build() creates the
    trellis once and every later pass reuses it. The passes need a built
    trellis; the training calls can build it themselves from a sequence
    argument. The active probability
    table is swapped wholesale between training iterations.

    Args:
        topology: State structure of the model
        probabilities: Starting table (default: the topology's initial table)
    """

    def __init__(self, topology: StateTopology,
                 probabilities: Optional[ProbabilityTable] = None):
        if probabilities is None:
            probabilities = topology.initial_table()
        if probabilities.n_states != topology.n_states:
            raise ValueError(
                f"Table has {probabilities.n_states} states, topology '{topology.name}' "
                f"needs {topology.n_states}"
            )
        if tuple(probabilities.alphabet) != tuple(topology.alphabet):
            raise ValueError(f"Table alphabet does not match topology '{topology.name}'")

        self.topology = topology
        self.probabilities = probabilities
        self.sequence: Optional[str] = None
        self.trellis_: Optional[Trellis] = None
        self.viterbi_results: List[IterationResults] = []
        self._weights_table: Optional[ProbabilityTable] = None

    # =========================================================================
    # Trellis
    # =========================================================================

    def build(self, sequence: str) -> Trellis:
        """
        Build the trellis for a nucleotide sequence.

        Calling build again with the same sequence returns the existing
        trellis.

        Raises:
            MissingProbabilityError: if the sequence contains a symbol the
                model has no emission probability for
            ValueError: if the model was already built for another sequence
        """
        if self.trellis_ is not None:
            if sequence != self.sequence:
                raise ValueError("Model is already built for a different sequence")
            return self.trellis_

        symbols = self.topology.symbols(sequence)
        self.trellis_ = Trellis.build(symbols, self.probabilities)
        self.sequence = sequence
        logger.info(f"Built trellis: {self.trellis_.n_nodes:,} nodes, "
                    f"{self.trellis_.n_transitions:,} transitions")
        return self.trellis_

    def _require_trellis(self) -> Trellis:
        if self.trellis_ is None:
            raise RuntimeError("Call build(sequence) first")
        return self.trellis_

    @property
    def sequence_length(self) -> int:
        return len(self.sequence) if self.sequence is not None else 0

    # =========================================================================
    # Viterbi
    # =========================================================================

    def calculate_highest_weights(self):
        """
        Viterbi pass: best path score and predecessor for every node.

        score = predecessor weight + transition log-prob + emission log-prob
        """
        trellis = self._require_trellis()
        table = self.probabilities
        weights = trellis.highest_weight
        predecessors = trellis.best_predecessor
        real = trellis.real_states

        weights.fill(LOG_ZERO)
        predecessors.fill(-1)
        weights[0, START_STATE] = 0.0

        for i in range(1, trellis.n_positions):
            previous = trellis.states_at(i - 1)
            scores = log_product_array(weights[i - 1, previous][:, np.newaxis],
                                       trellis.incoming_log_probabilities(i, table))
            scores = log_product_array(scores, trellis.log_emissions(i, table)[np.newaxis, :])
            best, weight = _first_maximum(scores)
            weights[i, real] = weight
            predecessors[i, real] = np.where(np.isnan(weight), -1, previous[best])

        self._weights_table = table

    def viterbi_path(self) -> np.ndarray:
        """
        Trace the best path back from the last position.

        Returns:
            State per symbol position (empty for an empty sequence)

        Raises:
            RuntimeError: if highest weights are stale or missing
            ValueError: if the sequence has zero probability under the model
        """
        trellis = self._require_trellis()
        if self._weights_table is not self.probabilities:
            raise RuntimeError("Highest weights are not computed for the current probabilities")

        n = trellis.sequence_length
        path = np.empty(n, dtype=np.intp)
        if n == 0:
            return path

        last = trellis.position(trellis.last_position).highest_scoring_node()
        if last is None:
            raise ValueError("Sequence has zero probability under the current model")

        state = last.state
        for i in range(n, 0, -1):
            path[i - 1] = state
            state = trellis.best_predecessor[i, state]
        return path

    def decode(self) -> np.ndarray:
        """Viterbi pass followed by the path trace."""
        self.calculate_highest_weights()
        return self.viterbi_path()

    # =========================================================================
    # Forward / backward / posteriors
    # =========================================================================

    def calculate_forward(self):
        trellis = self._require_trellis()
        table = self.probabilities
        forward = trellis.log_forward

        forward.fill(LOG_ZERO)
        forward[0, START_STATE] = 0.0
        for i in range(1, trellis.n_positions):
            previous = trellis.states_at(i - 1)
            incoming = log_product_array(forward[i - 1, previous][:, np.newaxis],
                                         trellis.incoming_log_probabilities(i, table))
            forward[i, 1:] = log_product_array(log_sum_reduce(incoming, axis=0),
                                               trellis.log_emissions(i, table))

    def calculate_backward(self):
        """Backward pass, continued down to the start node."""
        trellis = self._require_trellis()
        table = self.probabilities
        backward = trellis.log_backward
        last = trellis.last_position

        backward.fill(LOG_ZERO)
        backward[last, trellis.states_at(last)] = 0.0
        for i in range(last - 1, -1, -1):
            successor = log_product_array(trellis.log_emissions(i + 1, table),
                                          backward[i + 1, 1:])
            outgoing = log_product_array(trellis.incoming_log_probabilities(i + 1, table),
                                         successor[np.newaxis, :])
            backward[i, trellis.states_at(i)] = log_sum_reduce(outgoing, axis=1)

    def calculate_posteriors(self):
        """
        Node posteriors (gamma) and the per-position normalisers of the
        transition posteriors (epsilon). Needs forward and backward first.
        """
        trellis = self._require_trellis()
        table = self.probabilities
        n = trellis.sequence_length
        posterior = trellis.log_posterior
        normalizer = trellis.log_transition_normalizer

        posterior.fill(LOG_ZERO)
        normalizer.fill(LOG_ZERO)
        posterior[0, START_STATE] = 0.0
        if n > 0:
            joint = log_product_array(trellis.log_forward[1:, 1:], trellis.log_backward[1:, 1:])
            totals = log_sum_reduce(joint, axis=1)
            posterior[1:, 1:] = log_product_array(joint, -totals[:, np.newaxis])

            normalizer[1] = log_sum_reduce(trellis.log_transition_weights(table, 1, 2))
            for start in range(2, n + 1, TRANSITION_BLOCK):
                stop = min(start + TRANSITION_BLOCK, n + 1)
                weights = trellis.log_transition_weights(table, start, stop)
                normalizer[start:stop] = log_sum_reduce(weights.reshape(stop - start, -1), axis=1)

        trellis.posterior_table = table

    def forward_backward(self) -> float:
        """
        Forward, backward and posterior passes with the likelihood self-check.

        Returns:
            Log-likelihood in bits
        """
        self.calculate_forward()
        self.calculate_backward()
        log_likelihood = self.check_likelihood()
        self.calculate_posteriors()
        return log_likelihood

    def log_likelihood(self) -> float:
        """Log-likelihood (bits) from the forward values at the last position."""
        trellis = self._require_trellis()
        if trellis.sequence_length == 0:
            return LOG_ZERO
        return to_bits(log_sum_reduce(trellis.log_forward[trellis.last_position, 1:]))

    def log_likelihood_backward(self) -> float:
        """Log-likelihood (bits) from the backward values at the first position."""
        trellis = self._require_trellis()
        if trellis.sequence_length == 0:
            return LOG_ZERO
        table = self.probabilities
        first = log_product_array(table.log_initiation_[1:], trellis.log_emissions(1, table))
        return to_bits(log_sum_reduce(log_product_array(first, trellis.log_backward[1, 1:])))

    def check_likelihood(self) -> float:
        """
        Compare the forward and backward likelihoods.

        Returns:
            The forward log-likelihood in bits

        Raises:
            LikelihoodMismatchError: if the two disagree
        """
        forward = self.log_likelihood()
        backward = self.log_likelihood_backward()
        if is_log_zero(forward) and is_log_zero(backward):
            return forward
        if (is_log_zero(forward) or is_log_zero(backward)
                or not math.isclose(forward, backward, rel_tol=LIKELIHOOD_REL_TOL,
                                    abs_tol=LIKELIHOOD_ABS_TOL)):
            raise LikelihoodMismatchError(
                f"Forward log-likelihood {forward} bits != backward {backward} bits"
            )
        return forward

    def expected_transition_counts(self) -> np.ndarray:
        """
        Log of the summed transition posteriors between real states.

        Transitions leaving the start node are not included.

        Returns:
            (n_states - 1, n_states - 1) array indexed [from - 1, to - 1]
        """
        trellis = self._require_trellis()
        n_real = trellis.n_states - 1
        n = trellis.sequence_length
        total = np.full((n_real, n_real), LOG_ZERO)
        for start in range(2, n + 1, TRANSITION_BLOCK):
            stop = min(start + TRANSITION_BLOCK, n + 1)
            weights = trellis.log_transition_weights(trellis.posterior_table, start, stop)
            normalizer = trellis.log_transition_normalizer[start:stop]
            epsilon = log_product_array(weights, -normalizer[:, np.newaxis, np.newaxis])
            total = log_sum_array(total, log_sum_reduce(epsilon, axis=0))
        return total

    # =========================================================================
    # Training
    # =========================================================================

    def viterbi_training(self, n_iterations: int,
                         config: Optional[TrainingConfig] = None,
                         sequence: Optional[str] = None) -> List[IterationResults]:
        """
        Re-estimate transition probabilities from the Viterbi path.

        Each iteration decodes with the active table, collects path
        statistics and makes the re-estimated table active. Initiation and
        emission probabilities are not changed.

        Args:
            n_iterations: Number of iterations
            config: Training settings (default TrainingConfig())
            sequence: Builds the trellis first if given; otherwise build()
                must already have been called

        Returns:
            One IterationResults per iteration (also kept in viterbi_results)
        """
        if n_iterations < 1:
            raise ValueError("n_iterations must be at least 1")
        config = config or TrainingConfig()
        if sequence is not None:
            self.build(sequence)
        self._require_trellis()

        self.viterbi_results = []
        iterator = range(1, n_iterations + 1)
        if config.verbose:
            iterator = tqdm(iterator, desc="Viterbi", leave=False)

        for iteration in iterator:
            path = self.decode()
            results = IterationResults.from_path(
                iteration, path, self.topology, self.sequence_length,
                self.probabilities, on_unreachable=config.on_unreachable,
            )
            self.viterbi_results.append(results)
            self.probabilities = results.probabilities
            logger.info(f"Viterbi iteration {iteration}: states {results.state_histogram}")

        return self.viterbi_results

    def baum_welch_training(self, config: Optional[TrainingConfig] = None,
                            sequence: Optional[str] = None) -> BaumWelchResult:
        """
        Expectation-maximisation over all paths.

        Stops when the log-likelihood changes by less than
        config.convergence_threshold bits between iterations, or after
        config.max_iterations iterations with a NonConvergenceWarning.
        If sequence is given the trellis is built for it first.

        Raises:
            ValueError: if the sequence has zero probability under the model
            LikelihoodMismatchError: if the forward/backward self-check fails
        """
        config = config or TrainingConfig()
        if sequence is not None:
            self.build(sequence)
        trellis = self._require_trellis()
        if trellis.sequence_length == 0:
            logger.warning("Empty sequence; nothing to train on")
            return BaumWelchResult.empty(self.probabilities)

        history = []
        held = set()
        previous = None
        converged = False

        iterator = range(1, config.max_iterations + 1)
        if config.verbose:
            iterator = tqdm(iterator, desc="Baum-Welch", leave=False)

        for iteration in iterator:
            log_likelihood = self.forward_backward()
            if is_log_zero(log_likelihood):
                raise ValueError("Sequence has zero probability under the current model")

            self.probabilities = self._reestimate(config, held)
            history.append(log_likelihood)
            logger.info(f"Iteration: {iteration}  Likelihood: {log_likelihood}")

            delta = math.inf if previous is None else log_likelihood - previous
            if config.verbose and hasattr(iterator, 'set_postfix'):
                iterator.set_postfix({'logprob': f'{log_likelihood:.2e}',
                                      'delta': f'{delta:.2e}'})

            if previous is not None and abs(delta) < config.convergence_threshold:
                converged = True
                break
            previous = log_likelihood

        if not converged:
            warnings.warn(
                f"Baum-Welch did not converge within {config.max_iterations} iterations",
                NonConvergenceWarning,
            )

        return BaumWelchResult(
            iterations=len(history),
            log_likelihood=history[-1],
            probabilities=self.probabilities,
            converged=converged,
            history=history,
            held_states=held,
        )

    def _reestimate(self, config: TrainingConfig, held: set) -> ProbabilityTable:
        """Maximisation step from the current posteriors."""
        trellis = self._require_trellis()
        table = self.probabilities
        new = table.copy()
        gamma = trellis.log_posterior[1:, 1:]
        columns = trellis.symbol_columns[1:]

        # Emission: expected emissions of each symbol over expected visits
        visits = log_sum_reduce(gamma, axis=0)
        emitted = np.full((table.n_states - 1, len(table.alphabet)), LOG_ZERO)
        for column in np.unique(columns):
            emitted[:, column] = log_sum_reduce(gamma[columns == column], axis=0)
        for state in table.states:
            try:
                row = _reestimated_row(emitted[state - 1], visits[state - 1], state, 'emission')
            except UnreachableStateError as exc:
                handle_unreachable(exc, config.on_unreachable, held)
                continue
            for symbol, p in zip(table.alphabet, row):
                new.set_emission(state, symbol, p)

        # Initiation: posterior at the first position
        for state in table.states:
            new.set_initiation(state, extended_exp(gamma[0, state - 1]))

        # Transition: expected s -> s' steps over expected departures from s
        departures = log_sum_reduce(gamma[:-1], axis=0)
        steps = self.expected_transition_counts()
        for state in table.states:
            try:
                row = _reestimated_row(steps[state - 1], departures[state - 1], state, 'transition')
            except UnreachableStateError as exc:
                handle_unreachable(exc, config.on_unreachable, held)
                continue
            for to_state, p in zip(table.states, row):
                new.set_transition(state, to_state, p)

        return new
