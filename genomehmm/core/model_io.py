"""
genomehmm probability table I/O

Tables are saved as JSON: human-readable and portable. Only finished tables
are written (a starting table for a run, or the result of training); the
per-iteration trellis values are never persisted.
"""

import json
import os
import warnings
from typing import Optional, Tuple

from genomehmm.core.probabilities import ProbabilityTable

FORMAT_VERSION = '1.0'
MODEL_TYPE = 'genomehmm'


# =============================================================================
# Saving
# =============================================================================

def save_probabilities(table: ProbabilityTable, filepath: str,
                       topology: Optional[str] = None) -> str:
    """
    Save a probability table as JSON.

    If the filepath does not end in .json, the extension is replaced with
    .json and a warning is issued.

    Args:
        table: Table to save
        filepath: Output path (.json)
        topology: Name of the topology the table belongs to (saved as metadata)

    Returns:
        The path actually written
    """
    if not filepath.endswith('.json'):
        old_path = filepath
        base, _ = os.path.splitext(filepath)
        filepath = base + '.json'
        warnings.warn(
            f"Only JSON format is supported for saving. "
            f"Saving to '{filepath}' instead of '{old_path}'."
        )

    data = {
        'model_type': MODEL_TYPE,
        'version': FORMAT_VERSION,
        'topology': topology,
        **table.to_dict(),
    }
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    return filepath


# =============================================================================
# Loading
# =============================================================================

def load_probabilities_with_metadata(filepath: str) -> Tuple[ProbabilityTable, Optional[str]]:
    """
    Load a probability table and the topology it was saved for.

    Returns:
        (table, topology name or None)

    Raises:
        ValueError: if the file is not a genomehmm table
    """
    with open(filepath, 'r') as f:
        data = json.load(f)

    if not isinstance(data, dict) or data.get('model_type') != MODEL_TYPE:
        raise ValueError(f"{filepath} is not a {MODEL_TYPE} probability table")

    missing = [key for key in ('n_states', 'alphabet', 'initiation', 'transition', 'emission')
               if key not in data]
    if missing:
        raise ValueError(f"{filepath} is missing fields: {', '.join(missing)}")

    return ProbabilityTable.from_dict(data), data.get('topology')


def load_probabilities(filepath: str) -> ProbabilityTable:
    """Load a probability table saved with save_probabilities."""
    table, _ = load_probabilities_with_metadata(filepath)
    return table
