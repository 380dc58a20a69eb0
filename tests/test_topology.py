"""
Tests for the built-in state topologies and their starting tables.
"""
import numpy as np
import pytest

from genomehmm.core.topology import (
    CODONS,
    GC_CONTENT,
    GENE,
    TOP_START,
    BOTTOM_START,
    get_topology,
    viterbi_example_table,
)


def _assert_stochastic(table):
    """Initiation and every non-empty row sum to 1."""
    assert table.initiation_[1:].sum() == pytest.approx(1.0)
    for state in table.states:
        assert table.transition_[state, 1:].sum() == pytest.approx(1.0)
        assert table.emission_[state].sum() == pytest.approx(1.0)


class TestSymbols:

    def test_nucleotides(self):
        assert GC_CONTENT.symbols("ACGT") == ['A', 'C', 'G', 'T']

    def test_overlapping_codons(self):
        assert GENE.symbols("ATGCA") == ['ATG', 'TGC', 'GCA']

    def test_too_short_for_a_codon(self):
        assert GENE.symbols("AT") == []


class TestBuiltInTopologies:

    def test_registry(self):
        assert get_topology('gc-content') is GC_CONTENT
        assert get_topology('gene') is GENE

    def test_unknown_topology(self):
        with pytest.raises(ValueError, match='gc-content'):
            get_topology('profile')

    @pytest.mark.parametrize("topology", [GC_CONTENT, GENE])
    def test_initial_table_matches_topology(self, topology):
        table = topology.initial_table()
        assert table.n_states == topology.n_states
        assert table.alphabet == topology.alphabet
        assert len(topology.state_labels) == topology.n_states
        _assert_stochastic(table)

    def test_gc_content_values(self):
        table = GC_CONTENT.initial_table()
        assert table.initiation(1) == 0.996
        assert table.transition(1, 2) == 0.001
        assert table.transition(2, 1) == 0.01
        assert table.emission(1, 'A') == 0.291
        assert table.emission(2, 'G') == 0.331

    def test_viterbi_example_table(self):
        _assert_stochastic(viterbi_example_table())

    def test_interval_kinds(self):
        assert GC_CONTENT.interval_kind == 'segments'
        assert GENE.interval_kind == 'genes'
        assert GENE.strands == ('top', 'bottom')

    def test_gene_strands(self):
        assert GENE.strand_of(1) is None
        assert GENE.strand_of(TOP_START) == 'top'
        assert GENE.strand_of(BOTTOM_START) == 'bottom'
        assert GC_CONTENT.strand_of(2) is None

    def test_gene_signals(self):
        table = GENE.initial_table()
        assert table.emission(TOP_START, 'ATG') == 0.91
        assert table.emission(BOTTOM_START, 'CAT') == 0.91
        assert len(CODONS) == 64
        assert list(CODONS) == sorted(CODONS)

    def test_gene_reading_frame_is_closed(self):
        """Every gene state can only be left towards its own strand or intergenic."""
        table = GENE.initial_table()
        for strand, states in GENE.gene_states:
            for state in states:
                targets = np.nonzero(table.transition_[state, 1:])[0] + 1
                for target in targets:
                    assert GENE.strand_of(int(target)) in (strand, None)
