"""
Command-line interface for dclusters.
"""

import argparse
import json
import logging
import sys

import numpy as np

from .analyze import (
    analyze_clusters,
    calculate_inter_cluster_distances,
    calculate_intra_cluster_distances,
    create_combined_histogram,
    describe_cluster,
    format_analysis_report,
    species_report,
)
from .cache import DistanceCache
from .core import ClusterJob, sort_clusters
from .distance_providers import CachedDistanceProvider
from .distances import DEFAULT_MIN_OVERLAP, DistanceMethod, DistanceSettings
from .linkage import LINKAGES, make_linkage
from .progress import Cancelled, NullProgress, PercentProgress
from .species import SpeciesDetails
from .utils import load_sequences_from_fasta, save_clusters_to_file, validate_sequences

DEFAULT_THRESHOLD = 0.03


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def _to_json(obj):
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, (np.integer, np.floating)):
        return float(obj)
    elif isinstance(obj, float) and np.isnan(obj):
        return None
    elif isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_to_json(item) for item in obj]
    return obj


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dclusters',
        description='dclusters: single-linkage clustering of aligned DNA barcode sequences',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dclusters aligned.fasta                          # Cluster at 3% and print clusters
  dclusters aligned.fasta --threshold 0.02 --method k2p
  dclusters aligned.fasta -o clusters --format fasta   # Creates clusters.cluster_001.fasta, etc.
  dclusters aligned.fasta -o clusters.tsv --format tsv
  dclusters aligned.fasta --report report.txt --histogram distances.png
  dclusters aligned.fasta --min-overlap 100 --no-ambiguity-codes -v
        """
    )

    parser.add_argument(
        'input',
        help='Input FASTA file containing aligned DNA sequences'
    )

    # Clustering parameters
    parser.add_argument(
        '--threshold',
        type=float,
        default=DEFAULT_THRESHOLD,
        help=f'Distance below which sequences link (default: {DEFAULT_THRESHOLD})'
    )
    parser.add_argument(
        '--linkage',
        choices=sorted(LINKAGES),
        default='single',
        help='Linkage rule (default: single)'
    )
    parser.add_argument(
        '--method',
        choices=[m.value for m in DistanceMethod],
        default=DistanceMethod.UNCORRECTED.value,
        help='Distance method (default: uncorrected)'
    )
    parser.add_argument(
        '--min-overlap',
        type=int,
        default=DEFAULT_MIN_OVERLAP,
        help=f'Minimum comparable columns for a valid distance (default: {DEFAULT_MIN_OVERLAP})'
    )
    parser.add_argument(
        '--no-ambiguity-codes',
        action='store_true',
        help='Treat ambiguity codes as mismatches instead of matching their bases'
    )

    # Output options
    parser.add_argument(
        '-o', '--output',
        help='Output path for clusters (base path for FASTA format)'
    )
    parser.add_argument(
        '--format',
        choices=['fasta', 'tsv', 'text'],
        default='fasta',
        help='Output format when --output is given (default: fasta)'
    )
    parser.add_argument(
        '--report',
        help='Write a cluster and species report to this file'
    )
    parser.add_argument(
        '--histogram',
        help='Save an intra/inter-cluster distance histogram to this image file'
    )
    parser.add_argument(
        '--export-metrics',
        help='Export summary statistics to a JSON file'
    )
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress output'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def main():
    """Main entry point for the dclusters CLI."""
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not 0 <= args.threshold <= 1:
        logging.error("Threshold must be between 0 and 1")
        sys.exit(1)
    if args.min_overlap < 0:
        logging.error("Minimum overlap must be non-negative")
        sys.exit(1)

    try:
        logging.info(f"Loading sequences from {args.input}")
        sequences = load_sequences_from_fasta(args.input)

        is_valid, errors = validate_sequences(sequences)
        if not is_valid:
            logging.error("Invalid sequences found:")
            for error in errors:
                logging.error(f"  {error}")
            sys.exit(1)
        logging.info(f"Loaded {len(sequences)} sequences")

        settings = DistanceSettings(
            min_overlap=args.min_overlap,
            ambiguity_codes=not args.no_ambiguity_codes,
            method=DistanceMethod(args.method),
        )
        provider = CachedDistanceProvider(settings, DistanceCache())
        linkage = make_linkage(args.linkage, provider)

        callback = NullProgress() if args.no_progress else PercentProgress()
        job = ClusterJob(sequences, linkage, args.threshold)
        job.execute(callback)

        clusters = sort_clusters(job.clusters())
        for number, cluster in enumerate(clusters, start=1):
            print(f"Cluster {number}: {describe_cluster(cluster, provider)}")
            for seq in cluster.sequences():
                print(f"  {seq.display_name}")

        if args.output:
            written = save_clusters_to_file(clusters, args.output, format=args.format)
            logging.info(f"Wrote {len(written)} output file(s)")

        if args.report or args.export_metrics:
            species = SpeciesDetails(sequences, provider, min_overlap=args.min_overlap)
            cluster_stats, global_stats = analyze_clusters(clusters, provider, species, args.threshold)
            species_rows = species_report(clusters, species)
            if args.report:
                with open(args.report, 'w') as f:
                    f.write(format_analysis_report(cluster_stats, global_stats, species_rows))
                logging.info(f"Report written to {args.report}")
            if args.export_metrics:
                logging.info(f"Exporting metrics to {args.export_metrics}")
                with open(args.export_metrics, 'w') as f:
                    json.dump(_to_json({'global': global_stats, 'clusters': cluster_stats,
                                        'species': species_rows}), f, indent=2)

        if args.histogram:
            intra = np.concatenate([calculate_intra_cluster_distances(c, provider) for c in clusters])
            inter = calculate_inter_cluster_distances(clusters, provider)
            create_combined_histogram(intra, inter, save_path=args.histogram, threshold=args.threshold)

        logging.debug(f"Distance cache: {provider.cache.stats()}")

    except Cancelled:
        logging.info("Clustering cancelled")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
