"""Shared argparse argument factories for genomehmm CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse

from genomehmm.core.topology import TOPOLOGIES


def add_topology_args(parser: argparse.ArgumentParser,
                      default: str = 'gc-content') -> None:
    """Add --topology argument."""
    parser.add_argument(
        '--topology', '-t',
        choices=sorted(TOPOLOGIES),
        default=default,
        help=f"Model state topology (default: {default})"
    )


def add_convergence_args(parser: argparse.ArgumentParser,
                         threshold: float = 0.1,
                         max_iterations: int = 1000) -> None:
    """Add Baum-Welch stopping arguments (--threshold, --max-iterations)."""
    parser.add_argument(
        '--threshold', type=float, default=threshold,
        help=f"Stop Baum-Welch when the log-likelihood changes by less than this many bits "
             f"(default: {threshold})"
    )
    parser.add_argument(
        '--max-iterations', type=int, default=max_iterations,
        help=f"Maximum Baum-Welch iterations (default: {max_iterations})"
    )


def add_unreachable_args(parser: argparse.ArgumentParser,
                         default: str = 'hold') -> None:
    """Add --on-unreachable argument."""
    parser.add_argument(
        '--on-unreachable', choices=['hold', 'raise'], default=default,
        help=f"What to do when a state cannot be re-estimated: keep its previous "
             f"probabilities or stop with an error (default: {default})"
    )


def add_table_args(parser: argparse.ArgumentParser) -> None:
    """Add probability table file arguments (--initial-table, --save-table)."""
    parser.add_argument(
        '--initial-table', default=None, metavar='JSON',
        help="Start from this probability table instead of the topology's built-in one"
    )
    parser.add_argument(
        '--save-table', default=None, metavar='JSON',
        help="Write the trained probability table to this file"
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from genomehmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )
