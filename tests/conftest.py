"""
Shared pytest fixtures for genomehmm tests.
"""
import itertools
import math

import pytest

from genomehmm.core.topology import GC_CONTENT, GENE, viterbi_example_table


@pytest.fixture
def toy_table():
    """
    Two-state textbook table.
    State 1 (H): GC-rich, state 2 (L): AT-rich
    """
    return viterbi_example_table()


@pytest.fixture
def toy_sequence():
    """Decodes to HHHLLLLLL with the toy table."""
    return "GGCACTGAA"


@pytest.fixture
def gc_topology():
    return GC_CONTENT


@pytest.fixture
def gene_topology():
    return GENE


@pytest.fixture
def toy_model(toy_table, toy_sequence):
    """HiddenMarkovModel built on the toy sequence."""
    from genomehmm.core.hmm import HiddenMarkovModel

    model = HiddenMarkovModel(GC_CONTENT, toy_table)
    model.build(toy_sequence)
    return model


@pytest.fixture
def two_region_sequence():
    """300 AT-rich bases followed by 300 GC-rich bases."""
    return "AT" * 150 + "GC" * 150


@pytest.fixture
def write_fasta(tmp_path):
    """Factory writing a FASTA file and returning its path."""
    def _write(records, name="test.fasta", width=60):
        path = tmp_path / name
        with open(path, 'w') as f:
            for header, sequence in records:
                f.write(f">{header}\n")
                for i in range(0, len(sequence), width):
                    f.write(sequence[i:i + width] + "\n")
        return str(path)
    return _write


def _log(p):
    return math.log(p) if p > 0 else -math.inf


@pytest.fixture
def path_log_probability():
    """Natural-log joint probability of a state path and its symbols, by direct product."""
    def _score(table, symbols, path):
        score = _log(table.initiation(path[0])) + _log(table.emission(path[0], symbols[0]))
        for i in range(1, len(path)):
            score += _log(table.transition(path[i - 1], path[i]))
            score += _log(table.emission(path[i], symbols[i]))
        return score
    return _score


@pytest.fixture
def all_paths():
    """Every state path of a given length."""
    def _paths(table, length):
        return itertools.product(list(table.states), repeat=length)
    return _paths
