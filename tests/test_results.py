"""
Tests for Viterbi iteration statistics and re-estimation.
"""
import numpy as np
import pytest

from genomehmm.core.results import (
    BaumWelchResult,
    Gene,
    IterationResults,
    UnreachableStateError,
    UnreachableStateWarning,
    handle_unreachable,
)
from genomehmm.core.logmath import is_log_zero
from genomehmm.core.topology import GC_CONTENT, GENE


@pytest.fixture
def gc_results():
    results = IterationResults(1, GC_CONTENT, 6)
    results.accumulate(np.array([1, 1, 2, 2, 2, 1]))
    return results


# Intergenic, a top-strand gene, intergenic, a bottom-strand gene, intergenic
GENE_PATH = np.array([1, 1, 2, 4, 5, 3, 4, 5, 6, 1, 1, 7, 9, 10, 11, 1])


class TestSegments:

    def test_state_counts(self, gc_results):
        assert gc_results.state_histogram == {1: 3, 2: 3}

    def test_transition_counts(self, gc_results):
        counts = gc_results.transition_counts
        assert counts[1, 1] == 1
        assert counts[1, 2] == 1
        assert counts[2, 2] == 2
        assert counts[2, 1] == 1
        assert counts.sum() == 5

    def test_segments_in_order(self, gc_results):
        assert gc_results.segments == {1: [(1, 2), (6, 6)], 2: [(3, 5)]}
        assert gc_results.segment_histogram == {1: 2, 2: 1}

    def test_single_run(self):
        results = IterationResults(1, GC_CONTENT, 4)
        results.accumulate(np.array([2, 2, 2, 2]))
        assert results.segments == {1: [], 2: [(1, 4)]}

    def test_empty_path(self):
        results = IterationResults(1, GC_CONTENT, 0)
        results.accumulate(np.array([], dtype=int))
        assert results.state_histogram == {1: 0, 2: 0}
        assert results.segment_histogram == {1: 0, 2: 0}


class TestGenes:

    def test_genes_in_nucleotide_coordinates(self):
        results = IterationResults(1, GENE, len(GENE_PATH) + 2)
        results.accumulate(GENE_PATH)
        assert results.genes == [Gene(3, 11, 'top'), Gene(12, 17, 'bottom')]
        assert results.gene_histogram == {'top': 1, 'bottom': 1}

    def test_gene_reaching_sequence_end(self):
        path = np.array([1, 2, 4, 5, 6])
        results = IterationResults(1, GENE, len(path) + 2)
        results.accumulate(path)
        assert results.genes == [Gene(2, 7, 'top')]

    def test_adjacent_genes_on_opposite_strands(self):
        path = np.array([2, 4, 5, 6, 7, 9, 10, 11])
        results = IterationResults(1, GENE, len(path) + 2)
        results.accumulate(path)
        assert [g.strand for g in results.genes] == ['top', 'bottom']
        assert results.genes[0] == Gene(1, 6, 'top')
        assert results.genes[1].start == 5

    def test_gene_str(self):
        assert str(Gene(3, 11, 'top')) == "(3,11,top)"

    def test_no_genes_on_intergenic_path(self):
        results = IterationResults(1, GENE, 10)
        results.accumulate(np.ones(8, dtype=int))
        assert results.genes == []
        assert results.gene_histogram == {'top': 0, 'bottom': 0}


class TestReestimation:

    def test_rows_from_counts(self, gc_results, toy_table):
        table = gc_results.calculate_probabilities(toy_table)
        assert table.transition(1, 1) == pytest.approx(0.5)
        assert table.transition(1, 2) == pytest.approx(0.5)
        assert table.transition(2, 1) == pytest.approx(1 / 3)
        assert table.transition(2, 2) == pytest.approx(2 / 3)

    def test_previous_table_untouched(self, gc_results, toy_table):
        gc_results.calculate_probabilities(toy_table)
        assert toy_table.transition(2, 1) == 0.4

    def test_emission_and_initiation_carried_over(self, gc_results, toy_table):
        table = gc_results.calculate_probabilities(toy_table)
        np.testing.assert_array_equal(table.emission_, toy_table.emission_)
        np.testing.assert_array_equal(table.initiation_, toy_table.initiation_)

    def test_unseen_transition_is_log_zero(self, toy_table):
        results = IterationResults(1, GC_CONTENT, 4)
        results.accumulate(np.array([1, 1, 2, 2]))
        table = results.calculate_probabilities(toy_table)
        assert table.transition(2, 1) == 0.0
        assert is_log_zero(table.log_transition(2, 1))

    def test_hold_keeps_previous_row(self, toy_table):
        results = IterationResults(1, GC_CONTENT, 3)
        results.accumulate(np.array([1, 1, 1]))
        with pytest.warns(UnreachableStateWarning):
            table = results.calculate_probabilities(toy_table, on_unreachable='hold')
        assert results.held_states == {2}
        assert table.transition(2, 1) == 0.4
        assert table.transition(1, 1) == 1.0

    def test_raise(self, toy_table):
        results = IterationResults(1, GC_CONTENT, 3)
        results.accumulate(np.array([1, 1, 1]))
        with pytest.raises(UnreachableStateError) as excinfo:
            results.calculate_probabilities(toy_table, on_unreachable='raise')
        assert excinfo.value.state == 2
        assert excinfo.value.family == 'transition'

    def test_from_path(self, toy_table):
        results = IterationResults.from_path(2, np.array([1, 2, 2]), GC_CONTENT, 3, toy_table,
                                             on_unreachable='hold')
        assert results.iteration == 2
        assert results.probabilities.transition(1, 2) == 1.0
        assert results.probabilities.transition(2, 2) == 1.0


class TestUnreachablePolicy:

    def test_hold_records_state(self):
        held = set()
        with pytest.warns(UnreachableStateWarning, match="State 3"):
            handle_unreachable(UnreachableStateError(3, 'emission'), 'hold', held)
        assert held == {3}

    def test_raise_leaves_held_alone(self):
        held = set()
        with pytest.raises(UnreachableStateError):
            handle_unreachable(UnreachableStateError(3, 'emission'), 'raise', held)
        assert held == set()

    def test_error_is_arithmetic(self):
        assert issubclass(UnreachableStateError, ArithmeticError)


class TestBaumWelchResult:

    def test_empty(self, toy_table):
        result = BaumWelchResult.empty(toy_table)
        assert result.iterations == 0
        assert not result.converged
        assert is_log_zero(result.log_likelihood)
        assert result.history == []
        assert result.held_states == set()
