#!/usr/bin/env python3
"""
genomehmm-train
Train an HMM on the first sequence of a FASTA file.

With an iteration count, runs that many rounds of Viterbi training
(transition probabilities re-estimated from the best path) and reports the
transition counts of the last path. Without one, runs Baum-Welch until the
log-likelihood changes by less than --threshold bits.

Reports are written to stdout as <result> blocks; progress and warnings go
to stderr.
"""

import argparse
import logging
import sys

from genomehmm.cli.common import (
    add_convergence_args,
    add_table_args,
    add_topology_args,
    add_unreachable_args,
    add_verbose_args,
    add_version_args,
)
from genomehmm.core.hmm import HiddenMarkovModel, TrainingConfig
from genomehmm.core.model_io import load_probabilities_with_metadata, save_probabilities
from genomehmm.core.probabilities import MissingProbabilityError
from genomehmm.core.sequence_reader import read_fasta
from genomehmm.core.topology import get_topology
from genomehmm.reporting.report import (
    all_scores_report,
    base_histogram_report,
    baum_welch_report,
    first_line_report,
    path_report,
    transition_counts_report,
    viterbi_training_report,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Train a DNA sequence HMM with Viterbi training or Baum-Welch',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Baum-Welch GC-content segmentation
  genomehmm-train genome.fasta

  # 10 rounds of Viterbi training, listing segments of the final path
  genomehmm-train genome.fasta 10

  # Gene finding on both strands, saving the trained table
  genomehmm-train genome.fasta --topology gene --save-table genes.json
        """
    )

    parser.add_argument('fasta', help='FASTA file; the first record is used')
    parser.add_argument('iterations', nargs='?', type=int, default=None,
                        help='Viterbi training iterations (omit to run Baum-Welch)')

    add_topology_args(parser)
    add_convergence_args(parser)
    add_unreachable_args(parser)
    add_table_args(parser)

    parser.add_argument('--path', action='store_true',
                        help="Also print the final Viterbi path")
    parser.add_argument('--scores', action='store_true',
                        help="Also print the highest weight of every trellis node")

    add_verbose_args(parser)
    add_version_args(parser)

    args = parser.parse_args(argv)
    if args.iterations is not None and args.iterations < 1:
        parser.error("iterations must be at least 1")
    if args.threshold <= 0:
        parser.error("--threshold must be positive")
    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")
    return args


def _fail(message: str):
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(message)s', handlers=[logging.StreamHandler(sys.stderr)])

    topology = get_topology(args.topology)

    table = None
    if args.initial_table:
        try:
            table, saved_topology = load_probabilities_with_metadata(args.initial_table)
        except (OSError, ValueError) as e:
            _fail(f"cannot load {args.initial_table}: {e}")
        if saved_topology is not None and saved_topology != topology.name:
            _fail(f"{args.initial_table} was saved for topology '{saved_topology}', "
                  f"not '{topology.name}'")

    try:
        record = read_fasta(args.fasta)
    except (OSError, ValueError) as e:
        _fail(str(e))

    try:
        model = HiddenMarkovModel(topology, table)
        model.build(record.sequence)
    except (MissingProbabilityError, ValueError) as e:
        _fail(str(e))

    logging.info(f"{record.first_line}: {len(record):,} bases, topology {topology.name}")

    print(first_line_report(record), end='')
    print(base_histogram_report(record), end='')

    config = TrainingConfig(
        convergence_threshold=args.threshold,
        max_iterations=args.max_iterations,
        on_unreachable=args.on_unreachable,
        verbose=args.verbose,
    )

    try:
        if args.iterations is not None:
            results = model.viterbi_training(args.iterations, config)
            print(viterbi_training_report(results), end='')
            print(transition_counts_report(results[-1]), end='')
        else:
            result = model.baum_welch_training(config)
            print(baum_welch_report(result), end='')

        if args.path or args.scores:
            path = model.decode()
            if args.path:
                print(path_report(path), end='')
            if args.scores:
                print(all_scores_report(model.trellis_), end='')
    except (ArithmeticError, ValueError) as e:
        _fail(str(e))

    if args.save_table:
        written = save_probabilities(model.probabilities, args.save_table, topology=topology.name)
        logging.info(f"Saved probability table to {written}")


if __name__ == '__main__':
    main()
