import argparse
import json
import logging
import os
import sys
from typing import Any, Dict

from pwmscan.models import DEFAULT_PSEUDO_SITES
from pwmscan.pipeline import registry, run_pipeline
from pwmscan.sinks import HIT_PVALUE_THRESHOLD


def setup_logging(verbose: bool):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if verbose:
        logging.getLogger("numba").setLevel(logging.WARNING)


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="pwmscan",
        description="pwmscan: score sequences against MEME motifs and report matches with exact p-values",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
 Examples:
   # FIMO style matches of every motif in a FASTA file
   pwmscan motifs.meme sequences.fasta -o matches.txt

   # Non-uniform background, forward strand only
   pwmscan motifs.meme sequences.fasta --background background.txt --forward-only

   # Keep the reads of an indexed BAM with a hit inside the given regions
   pwmscan motifs.meme reads.bam --region peaks.bed -o hits.bam

   # Only score unmapped reads and print every hit
   pwmscan motifs.meme reads.bam --unmapped-only -v
         """,
    )

    parser.add_argument("motif", help="MEME style motif file (or a .pkl matrix set saved with --save-matrices).")
    parser.add_argument(
        "input",
        help=f"Sequences to scan: FASTA or BAM, chosen by extension ({', '.join(registry.extensions)}).",
    )

    io_group = parser.add_argument_group("Input/Output Options")
    io_group.add_argument(
        "-b",
        "--background",
        help="MEME style background frequency file. A uniform background is used when omitted.",
    )
    io_group.add_argument(
        "-o",
        "--output",
        help=(
            "File to write matches to. Output is FIMO style for FASTA input (standard output when omitted), "
            "and a BAM of every read with a hit for BAM input."
        ),
    )
    io_group.add_argument("-r", "--region", help="BED region file restricting which reads of an indexed BAM are scored.")
    io_group.add_argument("-u", "--unmapped-only", action="store_true", help="Only score unmapped reads of a BAM.")
    io_group.add_argument(
        "--save-matrices",
        help="Save the built matrix set, p-value tables included, to this .pkl file for later runs.",
    )

    scoring_group = parser.add_argument_group("Scoring Options")
    scoring_group.add_argument(
        "--threshold",
        type=float,
        default=HIT_PVALUE_THRESHOLD,
        help="Report FASTA matches with a p-value below this value. (default: %(default)s)",
    )
    scoring_group.add_argument(
        "--pseudo-sites",
        type=float,
        default=DEFAULT_PSEUDO_SITES,
        help="Pseudocount weight applied to motif frequencies. (default: %(default)s)",
    )
    scoring_group.add_argument(
        "--forward-only",
        action="store_true",
        help="Do not derive reverse complement matrices.",
    )

    technical_group = parser.add_argument_group("Technical Options")
    technical_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose logging. For BAM input this also prints FIMO style lines of every hit.",
    )
    technical_group.add_argument(
        "--summary",
        action="store_true",
        help="Print a JSON summary of the run to standard error.",
    )

    return parser


def validate_inputs(args) -> None:
    """Validate input files and parameters."""
    logger = logging.getLogger(__name__)

    if not os.path.exists(args.motif):
        logger.error(f"Motif file not found: {args.motif}")
        sys.exit(1)
    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        sys.exit(1)
    if args.background and not os.path.exists(args.background):
        logger.error(f"Background file not found: {args.background}")
        sys.exit(1)
    if args.region and not os.path.exists(args.region):
        logger.error(f"Region file not found: {args.region}")
        sys.exit(1)

    try:
        input_type = registry.input_type(args.input)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    if input_type != "bam" and (args.region or args.unmapped_only):
        logger.error("Only .bam input files support region filtering and unmapped-only scoring")
        sys.exit(1)
    if not 0 < args.threshold <= 1:
        logger.error(f"--threshold must be in (0, 1], got {args.threshold}")
        sys.exit(1)
    if args.pseudo_sites < 0:
        logger.error(f"--pseudo-sites must be non-negative, got {args.pseudo_sites}")
        sys.exit(1)


def map_args_to_pipeline_kwargs(args) -> Dict[str, Any]:
    """Map CLI arguments to pipeline keyword arguments."""
    return {
        "background_path": args.background,
        "output_path": args.output,
        "region_path": args.region,
        "unmapped_only": args.unmapped_only,
        "verbose": args.verbose,
        "threshold": args.threshold,
        "pseudo_sites": args.pseudo_sites,
        "include_reverse_complement": not args.forward_only,
        "save_matrices": args.save_matrices,
    }


def main_cli():
    """Main CLI entry point."""
    parser = create_arg_parser()

    if len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args()

    setup_logging(args.verbose)

    validate_inputs(args)

    pipeline_kwargs = map_args_to_pipeline_kwargs(args)

    if args.verbose:
        logger = logging.getLogger(__name__)
        logger.info("=" * 60)
        logger.info(f"Motifs: {args.motif}")
        logger.info(f"Input: {args.input}")
        logger.info(f"Background: {args.background or 'uniform'}")
        logger.info("=" * 60)

    try:
        result = run_pipeline(args.motif, args.input, **pipeline_kwargs)
        sys.stdout.flush()
        if args.summary:
            print(json.dumps(result), file=sys.stderr)

    except Exception as e:
        print(f"ERROR: Pipeline execution failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
