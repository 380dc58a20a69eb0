"""
genomehmm - Hidden Markov Models for segmenting DNA sequences into
GC-content regions or gene structures, trained with Viterbi training or
Baum-Welch.
"""

__version__ = "1.0.0"

from genomehmm.core.hmm import HiddenMarkovModel, TrainingConfig
from genomehmm.core.probabilities import ProbabilityTable
from genomehmm.core.topology import get_topology
from genomehmm.core.sequence_reader import read_fasta
from genomehmm.core.model_io import load_probabilities, save_probabilities
