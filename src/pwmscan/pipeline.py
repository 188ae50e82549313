"""
Scanning pipeline.

Loads the background and the matrix set once, then drives a sequence
source: each sequence is scanned by every matrix and fully drained into
the sink before the next one is read.
"""

import contextlib
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

from pwmscan.alignments import AlignmentScorer
from pwmscan.io import read_background, read_fasta, read_matrices, read_regions, write_matrices
from pwmscan.models import DEFAULT_PSEUDO_SITES, UNIFORM_BACKGROUND, ScoreMatrix
from pwmscan.sinks import HIT_PVALUE_THRESHOLD, FimoStylePrinter


class InputRegistry:
    """Registry of input handlers keyed by input type, using decorator pattern."""

    def __init__(self):
        """Initialize registry state."""
        self._handlers: Dict[str, type] = {}
        self._extensions: Dict[str, str] = {}

    def register(self, key: str, extensions: Sequence[str]):
        """Decorator to register an input handler class for file extensions."""

        def decorator(handler_cls):
            """Store a handler in the registry."""
            self._handlers[key] = handler_cls
            for ext in extensions:
                self._extensions[ext] = key
            return handler_cls

        return decorator

    def get(self, key: str) -> type:
        """Get handler class by input type."""
        if key not in self._handlers:
            available = list(self._handlers.keys())
            raise ValueError(f"Input type '{key}' not found. Available: {available}")
        return self._handlers[key]

    def input_type(self, path: str) -> str:
        """Return the input type of a path from its extension."""
        _, ext = os.path.splitext(path.lower())
        if ext not in self._extensions:
            supported = ", ".join(sorted(self._extensions))
            raise ValueError(f"Unsupported input extension {ext!r} for {path}; supported: {supported}")
        return self._extensions[ext]

    @property
    def extensions(self) -> List[str]:
        return sorted(self._extensions)


registry = InputRegistry()


@contextlib.contextmanager
def _output_handle(output_path: Optional[str]):
    """Yield the output file, or stdout when no path is given."""
    if output_path:
        with open(output_path, "w") as handle:
            yield handle
    else:
        yield sys.stdout


@registry.register("fasta", [".fasta", ".fa", ".fna"])
class FastaInput:
    """Score every FASTA record and print FIMO style matches."""

    @staticmethod
    def run(matrices: List[ScoreMatrix], input_path: str, **kwargs) -> Dict[str, Any]:
        if kwargs.get("region_path"):
            raise ValueError("Only alignment inputs support region filtering")
        if kwargs.get("unmapped_only"):
            raise ValueError("Only alignment inputs support unmapped-only scoring")

        logger = logging.getLogger(__name__)
        threshold = kwargs.get("threshold", HIT_PVALUE_THRESHOLD)
        sequences = 0
        with _output_handle(kwargs.get("output_path")) as out:
            printer = FimoStylePrinter(out, threshold=threshold)
            for name, sequence in read_fasta(input_path):
                for matrix in matrices:
                    matrix.scan(sequence, printer, name)
                sequences += 1

        logger.info(f"Scanned {sequences} sequence(s), {printer.printed} match(es) below p={threshold:g}")
        return {"mode": "fasta", "matrices": len(matrices), "sequences": sequences, "hits": printer.printed}


@registry.register("bam", [".bam"])
class AlignmentInput:
    """Score the reads of an alignment file and print the hit statistics."""

    @staticmethod
    def run(matrices: List[ScoreMatrix], input_path: str, **kwargs) -> Dict[str, Any]:
        region_path = kwargs.get("region_path")
        regions = read_regions(region_path) if region_path else None
        only_unmapped = kwargs.get("unmapped_only", False)

        scorer = AlignmentScorer(
            input_path,
            matrices,
            output_path=kwargs.get("output_path"),
            only_unmapped=only_unmapped,
            printer=sys.stdout if kwargs.get("verbose", False) else None,
        )
        stats = scorer.run(regions)

        for line in stats.summary_lines(only_unmapped):
            print(line)

        return {
            "mode": "bam",
            "matrices": len(matrices),
            "sequences": stats.read_count,
            "hits": stats.total_hit_count,
        }


class Pipeline:
    """Load the matrix set once and run it over a sequence source."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def load_background(self, background_path: Optional[str]) -> tuple:
        """Read the background file, or return the uniform background."""
        if not background_path:
            return UNIFORM_BACKGROUND
        background = read_background(background_path)
        self.logger.info(f"Background from {background_path}: {background}")
        return background

    def load_matrices(
        self,
        motif_path: str,
        background_path: Optional[str] = None,
        include_reverse_complement: bool = True,
        pseudo_sites: float = DEFAULT_PSEUDO_SITES,
    ) -> List[ScoreMatrix]:
        """Build every score matrix of the motif file; any error aborts the run."""
        background = self.load_background(background_path)
        return read_matrices(
            motif_path,
            background=background,
            include_reverse_complement=include_reverse_complement,
            pseudo_sites=pseudo_sites,
        )

    def execute(self, matrices: List[ScoreMatrix], input_path: str, **kwargs) -> Dict[str, Any]:
        """Dispatch to the handler registered for the input extension."""
        input_type = registry.input_type(input_path)
        self.logger.info(f"Scanning {input_path} ({input_type}) with {len(matrices)} matrices")
        return registry.get(input_type).run(matrices, input_path, **kwargs)


def run_pipeline(
    motif_path: str,
    input_path: str,
    background_path: Optional[str] = None,
    include_reverse_complement: bool = True,
    pseudo_sites: float = DEFAULT_PSEUDO_SITES,
    save_matrices: Optional[str] = None,
    **kwargs,
) -> Dict[str, Any]:
    """Run a complete scan and return a summary of it."""
    registry.input_type(input_path)
    pipeline = Pipeline()
    matrices = pipeline.load_matrices(
        motif_path,
        background_path=background_path,
        include_reverse_complement=include_reverse_complement,
        pseudo_sites=pseudo_sites,
    )
    if save_matrices:
        write_matrices(matrices, save_matrices)
        pipeline.logger.info(f"Saved {len(matrices)} matrices to {save_matrices}")

    return pipeline.execute(matrices, input_path, **kwargs)
