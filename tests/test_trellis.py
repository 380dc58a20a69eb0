"""
Tests for the trellis arena and its views.
"""
import math

import numpy as np
import pytest

from genomehmm.core.logmath import is_log_zero
from genomehmm.core.probabilities import MissingProbabilityError
from genomehmm.core.trellis import Trellis


@pytest.fixture
def trellis(toy_table, toy_sequence):
    return Trellis.build(list(toy_sequence), toy_table)


class TestConstruction:

    def test_sizes(self, trellis):
        # 9 symbols, 2 real states
        assert len(trellis) == 10
        assert trellis.sequence_length == 9
        assert trellis.n_nodes == 1 + 9 * 2
        assert trellis.n_transitions == 2 + 8 * 4
        assert len(list(trellis.nodes())) == trellis.n_nodes
        assert len(list(trellis.transitions())) == trellis.n_transitions

    def test_start_node(self, trellis):
        start = trellis.node(0, 0)
        assert start.is_start
        assert start.symbol is None
        assert start.highest_weight == 0.0
        assert start.best_predecessor is None
        assert start.in_transitions == []
        assert len(start.out_transitions) == 2

    def test_positions_carry_symbols(self, trellis, toy_sequence):
        for position_id in range(1, len(trellis)):
            position = trellis.position(position_id)
            assert position.symbol == toy_sequence[position_id - 1]
            assert [n.state for n in position.nodes] == [1, 2]
            assert all(n.symbol == position.symbol for n in position.nodes)

    def test_start_position_has_only_start_state(self, trellis):
        assert [n.state for n in trellis.position(0).nodes] == [0]
        with pytest.raises(IndexError):
            trellis.node(0, 1)
        with pytest.raises(IndexError):
            trellis.node(1, 0)
        with pytest.raises(IndexError):
            trellis.position(10)

    def test_last_position_has_no_out_transitions(self, trellis):
        assert trellis.node(9, 1).out_transitions == []

    def test_unknown_symbol_fails_at_build(self, toy_table):
        with pytest.raises(MissingProbabilityError):
            Trellis.build(list("ACGNT"), toy_table)

    def test_empty_sequence(self, toy_table):
        trellis = Trellis.build([], toy_table)
        assert len(trellis) == 1
        assert trellis.n_transitions == 0
        assert trellis.last_position == 0

    def test_reset_clears_scratch(self, trellis):
        trellis.highest_weight[3, 1] = -1.0
        trellis.best_predecessor[3, 1] = 2
        trellis.reset()
        assert is_log_zero(trellis.node(3, 1).highest_weight)
        assert trellis.node(3, 1).best_predecessor is None
        assert trellis.node(0, 0).highest_weight == 0.0


class TestViews:

    def test_transition_probabilities(self, trellis, toy_table):
        first = trellis.node(1, 2).in_transitions
        assert [t.start.state for t in first] == [0]
        assert first[0].log_probability(toy_table) == pytest.approx(math.log(0.5))

        later = trellis.node(4, 1).in_transitions
        assert [t.start.state for t in later] == [1, 2]
        assert later[1].log_probability(toy_table) == pytest.approx(math.log(0.4))

    def test_node_emission(self, trellis, toy_table):
        # Position 4 holds 'A'
        assert trellis.node(4, 1).log_emission(toy_table) == pytest.approx(math.log(0.2))
        assert trellis.node(0, 0).log_emission(toy_table) == 0.0

    def test_best_predecessor_view(self, trellis):
        trellis.best_predecessor[5, 2] = 1
        predecessor = trellis.node(5, 2).best_predecessor
        assert predecessor == trellis.node(4, 1)

    def test_node_equality_and_hash(self, trellis):
        assert trellis.node(2, 1) == trellis.node(2, 1)
        assert trellis.node(2, 1) != trellis.node(2, 2)
        assert len({trellis.node(2, 1), trellis.node(2, 1)}) == 1

    def test_highest_scoring_node_first_wins_ties(self, trellis):
        trellis.highest_weight[3, 1:] = [-2.0, -2.0]
        assert trellis.position(3).highest_scoring_node().state == 1
        trellis.highest_weight[3, 1:] = [-3.0, -2.0]
        assert trellis.position(3).highest_scoring_node().state == 2

    def test_highest_scoring_node_skips_log_zero(self, trellis):
        trellis.highest_weight[3, 1:] = [np.nan, -5.0]
        assert trellis.position(3).highest_scoring_node().state == 2
        trellis.highest_weight[3, 1:] = np.nan
        assert trellis.position(3).highest_scoring_node() is None

    def test_transition_posterior_needs_posteriors(self, trellis):
        transition = trellis.node(2, 1).in_transitions[0]
        with pytest.raises(RuntimeError):
            transition.log_posterior
        with pytest.raises(RuntimeError):
            trellis.transition_log_posteriors(2)
