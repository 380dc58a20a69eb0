"""
genomehmm report strings

Every report is a typed <result> block so the output of a run can be pulled
apart with simple tag matching. Probabilities are printed as %.4e, the
Baum-Welch log-likelihood (bits) as %.5g.
"""

from typing import Iterable, List, Sequence

import numpy as np

from genomehmm.core.logmath import is_log_zero

INDENT = '    '
INTERVALS_PER_LINE = 5


def _pad(level: int) -> str:
    return INDENT * level


def _attributes(attributes: dict) -> str:
    return ''.join(f' {key}="{value}"' for key, value in attributes.items())


def xml_result(result_type: str, content: str, level: int = 1, **attributes) -> str:
    """Single-line <result> element."""
    return (f'{_pad(level)}<result type="{result_type}"{_attributes(attributes)}>'
            f'{content}</result>\n')


def xml_block(result_type: str, lines: Iterable[str], level: int = 1, **attributes) -> str:
    """Multi-line <result> element wrapping already formatted lines."""
    body = ''.join(lines)
    return (f'{_pad(level)}<result type="{result_type}"{_attributes(attributes)}>\n'
            f'{body}{_pad(level)}</result>\n')


def format_probability(p: float) -> str:
    return f"{p:.4e}"


def format_log(ln_x: float) -> str:
    if is_log_zero(ln_x):
        return '-inf'
    return f"{ln_x:.4e}"


def _pairs(items) -> str:
    return ','.join(f"{key}={value}" for key, value in items)


def _wrapped(entries: Sequence[str], level: int) -> List[str]:
    lines = []
    for i in range(0, len(entries), INTERVALS_PER_LINE):
        lines.append(_pad(level) + ','.join(entries[i:i + INTERVALS_PER_LINE]) + '\n')
    return lines


# =============================================================================
# Sequence summaries
# =============================================================================

def first_line_report(record) -> str:
    return xml_result('first_line', record.first_line, file=record.file_name)


def base_histogram_report(record) -> str:
    counts = record.base_counts()
    if counts.get('N', 0) == 0:
        counts.pop('N', None)
    return xml_result('nucleotide_histogram', _pairs(counts.items()), file=record.file_name)


# =============================================================================
# Model
# =============================================================================

def probabilities_report(table, level: int = 2) -> str:
    """<model> block: states, initiation, transition rows, emission rows."""
    inner = _pad(level + 1)
    states = list(table.states)
    symbols = sorted(table.alphabet)

    lines = [f'{_pad(level)}<model type="hmm">\n',
             f"{inner}<states>{','.join(str(s) for s in states)}</states>\n",
             f"{inner}<initial_state_probabilities>"
             f"{_pairs((s, format_probability(table.initiation(s))) for s in states)}"
             f"</initial_state_probabilities>\n"]
    for state in states:
        row = _pairs((t, format_probability(table.transition(state, t))) for t in states)
        lines.append(f'{inner}<transition_probabilities state="{state}">{row}'
                     f'</transition_probabilities>\n')
    for state in states:
        row = _pairs((symbol, format_probability(table.emission(state, symbol)))
                     for symbol in symbols)
        lines.append(f'{inner}<emission_probabilities state="{state}">{row}'
                     f'</emission_probabilities>\n')
    lines.append(f'{_pad(level)}</model>\n')
    return ''.join(lines)


# =============================================================================
# Viterbi training
# =============================================================================

def iteration_report(results, include_intervals: bool = False) -> str:
    lines = [xml_result('state_histogram', _pairs(results.state_histogram.items()), level=2)]
    if results.topology.interval_kind == 'genes':
        histogram = _pairs((f"{strand}_strand_genes", count)
                           for strand, count in results.gene_histogram.items())
        lines.append(xml_result('gene_histogram', histogram, level=2))
    else:
        lines.append(xml_result('segment_histogram',
                                _pairs(results.segment_histogram.items()), level=2))
    lines.append(results.probabilities.report())
    report = xml_block('viterbi_iteration', lines, iteration=results.iteration)

    if include_intervals:
        report += intervals_report(results)
    return report


def intervals_report(results) -> str:
    """Segment lists per state, or the gene list, five entries per line."""
    if results.topology.interval_kind == 'genes':
        entries = [str(gene) for gene in results.genes]
        return xml_block('gene_list', _wrapped(entries, 2))

    report = ''
    for state, intervals in results.segments.items():
        entries = [f"({start},{end})" for start, end in intervals]
        report += xml_block('segment_list', _wrapped(entries, 2), state=state)
    return report


def transition_counts_report(results) -> str:
    lines = []
    states = range(1, results.topology.n_states)
    for state in states:
        row = _pairs((t, int(results.transition_counts[state, t])) for t in states)
        lines.append(xml_result('transition_counts', row, level=2, state=state))
    return xml_block('transition_histogram', lines, iteration=results.iteration)


def viterbi_training_report(all_results) -> str:
    """All iterations; intervals only for the last one."""
    report = ''
    for i, results in enumerate(all_results):
        report += iteration_report(results, include_intervals=(i == len(all_results) - 1))
    return report


# =============================================================================
# Baum-Welch / decoding
# =============================================================================

def baum_welch_report(result) -> str:
    log_likelihood = '-inf' if is_log_zero(result.log_likelihood) else f"{result.log_likelihood:.5g}"
    lines = [
        xml_result('iterations', result.iterations, level=2),
        xml_result('log_likelihood', log_likelihood, level=2),
        xml_result('converged', str(result.converged).lower(), level=2),
        result.probabilities.report(),
    ]
    return xml_block('EM_result', lines)


def path_report(path: np.ndarray) -> str:
    """Decoded state per position; comma separated once states reach two digits."""
    separator = ',' if len(path) and int(np.max(path)) > 9 else ''
    return xml_result('viterbi_path', separator.join(str(int(s)) for s in path))


def all_scores_report(trellis) -> str:
    """Highest weight of every node, one position per line."""
    lines = []
    for position in trellis.positions():
        if position.position_id == 0:
            continue
        scores = _pairs((node.state, format_log(node.highest_weight)) for node in position.nodes)
        lines.append(f"{_pad(2)}{position.position_id} {position.symbol} {scores}\n")
    return xml_block('highest_weights', lines)
