"""Report strings for sequences, models and training runs."""

from genomehmm.reporting.report import (
    all_scores_report,
    base_histogram_report,
    baum_welch_report,
    first_line_report,
    iteration_report,
    path_report,
    probabilities_report,
    transition_counts_report,
    viterbi_training_report,
)
