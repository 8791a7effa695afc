"""
Utility functions for dclusters.

This module provides FASTA input and cluster output helpers.
"""

from pathlib import Path
from typing import List, Tuple

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord
import logging

from .core import Cluster
from .sequence import Sequence, SequenceError, EXTERNAL_GAP, INTERNAL_GAP


def load_sequences_from_fasta(fasta_path: str) -> List[Sequence]:
    """
    Load aligned sequences from a FASTA file.

    The full header line (ID plus description) becomes the sequence name,
    so species names in descriptions are picked up.

    Args:
        fasta_path: Path to the FASTA file

    Returns:
        List of Sequence objects in file order

    Raises:
        SequenceError: If a record contains symbols that cannot be interpreted
    """
    sequences = []

    try:
        for record in SeqIO.parse(fasta_path, "fasta"):
            name = record.description if record.description else record.id
            try:
                sequences.append(Sequence(name, str(record.seq)))
            except SequenceError as e:
                raise SequenceError(f"Record {record.id!r}: {e}") from e
    except Exception as e:
        logging.error(f"Error reading FASTA file: {e}")
        raise

    return sequences


def export_symbols(seq: Sequence) -> str:
    """Symbols as written to files, with external gaps shown as ordinary gaps."""
    return seq.symbols.replace(EXTERNAL_GAP, INTERNAL_GAP)


def format_cluster_output(clusters: List[Cluster]) -> str:
    """
    Format clustering results for output.

    Clusters of more than one sequence are numbered in the order given;
    single-sequence clusters are listed together as singletons.

    Args:
        clusters: Clusters, usually already sorted

    Returns:
        Formatted string representation of clusters
    """
    output_lines = []
    multi = [c for c in clusters if len(c) > 1]
    singletons = [c for c in clusters if len(c) == 1]

    for i, cluster in enumerate(multi, 1):
        output_lines.append(f"Cluster {i} ({len(cluster)} sequences):")
        for seq in cluster.sequences():
            output_lines.append(f"  - {seq.name}")

    if singletons:
        output_lines.append(f"\nSingletons ({len(singletons)} sequences):")
        for cluster in singletons:
            output_lines.append(f"  - {cluster.sequences()[0].name}")

    return "\n".join(output_lines)


def save_clusters_to_file(clusters: List[Cluster],
                          output_path: str,
                          format: str = "fasta") -> List[str]:
    """
    Save clustering results to files.

    Args:
        clusters: Clusters to write, in output order
        output_path: Path to output file (or base path for FASTA format)
        format: Output format ("fasta", "tsv", or "text")

    Returns:
        List of paths written
    """
    written = []

    if format == "fasta":
        # One file per cluster
        output_base = Path(output_path)
        if output_base.suffix.lower() in ('.fasta', '.fa'):
            output_base = output_base.with_suffix('')

        pad_width = max(3, len(str(len(clusters))))

        for cluster_idx, cluster in enumerate(clusters, 1):
            cluster_name = f"cluster_{str(cluster_idx).zfill(pad_width)}"
            cluster_file = f"{output_base}.{cluster_name}.fasta"

            records = [
                SeqRecord(Seq(export_symbols(seq)), id=seq.name.split()[0] if seq.name else "unnamed",
                          description=f"{seq.name} {cluster_name}")
                for seq in cluster.sequences()
            ]
            with open(cluster_file, 'w') as f:
                SeqIO.write(records, f, "fasta-2line")

            logging.debug(f"Wrote {len(records)} sequences to {cluster_file}")
            written.append(cluster_file)

    elif format == "tsv":
        # Tab-separated format: sequence_name<tab>cluster_id
        with open(output_path, 'w') as f:
            f.write("sequence_name\tcluster_id\n")
            for cluster_id, cluster in enumerate(clusters, 1):
                for seq in cluster.sequences():
                    f.write(f"{seq.name}\tcluster_{cluster_id}\n")
        written.append(output_path)

    elif format == "text":
        with open(output_path, 'w') as f:
            f.write(format_cluster_output(clusters))
        written.append(output_path)

    else:
        raise ValueError(f"Unknown output format {format!r}")

    return written


def validate_sequences(sequences: List[Sequence]) -> Tuple[bool, List[str]]:
    """
    Validate sequences before clustering.

    Args:
        sequences: Sequences to check

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    if not sequences:
        return False, ["No sequences provided"]

    for i, seq in enumerate(sequences):
        if seq.actual_length == 0:
            errors.append(f"Sequence {i+1} ({seq.name}) has no data")

    return len(errors) == 0, errors
