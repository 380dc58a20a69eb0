"""
genomehmm sequence reading

Reads nucleotide sequences from FASTA (or FASTQ) files with pysam.
Sequences are upper-cased; everything other than A/C/G/T is kept as is and
left for the model to reject.

The gene topology models both strands in a single pass over the given
sequence, so training never reads the reverse complement;
SequenceRecord.reverse_complement is there for library callers.
"""

import os
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

import pysam

from genomehmm.core.topology import NUCLEOTIDES

RC_MAP = {'A': 'T', 'T': 'A', 'C': 'G', 'G': 'C', 'N': 'N'}


def reverse_complement(sequence: str) -> str:
    return ''.join(RC_MAP.get(b, 'N') for b in reversed(sequence))


@dataclass
class SequenceRecord:
    """One sequence and where it came from."""
    file_name: str
    name: str
    comment: Optional[str]
    sequence: str
    is_dna: bool = True

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def first_line(self) -> str:
        """Header line as it appears in the file."""
        if self.comment:
            return f">{self.name} {self.comment}"
        return f">{self.name}"

    @property
    def reverse_complement(self) -> Optional[str]:
        """Opposite strand, or None for single-stranded sequences."""
        if not self.is_dna:
            return None
        return reverse_complement(self.sequence)

    def base_counts(self) -> Dict[str, int]:
        """Counts of A, C, G, T; all other characters are counted as N."""
        counts = {base: self.sequence.count(base) for base in NUCLEOTIDES}
        counts['N'] = len(self.sequence) - sum(counts.values())
        return counts


def iter_fasta(filepath: str, is_dna: bool = True) -> Iterator[SequenceRecord]:
    """
    Yield every record of a FASTA/FASTQ file.

    Args:
        filepath: Path to the file (optionally gzipped)
        is_dna: False for single-stranded sequences (no reverse complement)

    Raises:
        FileNotFoundError: if the file does not exist
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Sequence file not found: {filepath}")

    file_name = os.path.basename(filepath)
    with pysam.FastxFile(filepath) as fh:
        for entry in fh:
            yield SequenceRecord(
                file_name=file_name,
                name=entry.name,
                comment=entry.comment,
                sequence=(entry.sequence or '').upper(),
                is_dna=is_dna,
            )


def read_fasta(filepath: str, is_dna: bool = True) -> SequenceRecord:
    """
    Read the first record of a FASTA file.

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: if the file holds no record or the sequence is empty
    """
    records = iter_fasta(filepath, is_dna=is_dna)
    try:
        record = next(records, None)
    finally:
        records.close()

    if record is None:
        raise ValueError(f"No sequence records found in {filepath}")
    if not record.sequence:
        raise ValueError(f"First record of {filepath} has an empty sequence")
    return record
