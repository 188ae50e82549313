"""High-level public API for motif scanning."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from pwmscan.io import read_matrices
from pwmscan.models import DEFAULT_PSEUDO_SITES, UNIFORM_BACKGROUND, MatchSink, ScoreMatrix
from pwmscan.pipeline import registry, run_pipeline
from pwmscan.sinks import HIT_PVALUE_THRESHOLD, CollectingSink

MatrixRef = Union[Sequence[ScoreMatrix], str, Path]

SITE_COLUMNS = ["motif", "sequence_name", "start", "stop", "strand", "score", "pvalue", "site"]


@dataclass
class ScanConfig:
    """Unified configuration object for a scan run."""

    motif_path: str
    input_path: str
    background_path: Optional[str] = None
    output_path: Optional[str] = None
    region_path: Optional[str] = None
    unmapped_only: bool = False
    verbose: bool = False
    threshold: float = HIT_PVALUE_THRESHOLD
    pseudo_sites: float = DEFAULT_PSEUDO_SITES
    include_reverse_complement: bool = True
    save_matrices: Optional[str] = None


def create_config(motif_path: Union[str, Path], input_path: Union[str, Path], **kwargs) -> ScanConfig:
    """Build and validate a scan config."""
    config = ScanConfig(motif_path=str(motif_path), input_path=str(input_path), **kwargs)

    input_type = registry.input_type(config.input_path)
    if config.region_path and input_type != "bam":
        raise ValueError("Only alignment inputs support region filtering")
    if config.unmapped_only and input_type != "bam":
        raise ValueError("Only alignment inputs support unmapped-only scoring")
    if not 0 < config.threshold <= 1:
        raise ValueError(f"threshold must be in (0, 1], got {config.threshold}")
    if config.pseudo_sites < 0:
        raise ValueError(f"pseudo_sites must be non-negative, got {config.pseudo_sites}")

    return config


def run_scan(config: ScanConfig) -> dict:
    """Execute a scan described by a config."""
    return run_pipeline(**asdict(config))


def scan_motifs(motif_path: Union[str, Path], input_path: Union[str, Path], **kwargs) -> dict:
    """Single-call entry point: scan an input file with every motif of a motif file."""
    return run_scan(create_config(motif_path, input_path, **kwargs))


def load_matrices(
    motif_path: Union[str, Path],
    background=UNIFORM_BACKGROUND,
    include_reverse_complement: bool = True,
    pseudo_sites: float = DEFAULT_PSEUDO_SITES,
) -> List[ScoreMatrix]:
    """Build the matrix set of a motif file (or load a cached ``.pkl`` set)."""
    return read_matrices(
        str(motif_path),
        background=background,
        include_reverse_complement=include_reverse_complement,
        pseudo_sites=pseudo_sites,
    )


def _resolve_matrices(matrices: MatrixRef) -> List[ScoreMatrix]:
    if isinstance(matrices, (str, Path)):
        return load_matrices(matrices)
    return list(matrices)


def scan_sequence(sequence: str, matrices: MatrixRef, sink: MatchSink, sequence_name: str = "") -> int:
    """Scan one sequence with every matrix, pushing each window to ``sink``; returns windows scanned."""
    return sum(matrix.scan(sequence, sink, sequence_name) for matrix in _resolve_matrices(matrices))


def find_sites(
    sequences: Union[str, Iterable[Tuple[str, str]]],
    matrices: MatrixRef,
    threshold: float = HIT_PVALUE_THRESHOLD,
) -> pd.DataFrame:
    """Find motif sites below ``threshold`` in sequences.

    ``sequences`` is a single sequence string or an iterable of
    (name, sequence) pairs such as :func:`pwmscan.io.read_fasta` yields.
    """
    resolved = _resolve_matrices(matrices)
    if isinstance(sequences, str):
        sequences = [("", sequences)]

    sink = CollectingSink(threshold)
    for name, sequence in sequences:
        for matrix in resolved:
            matrix.scan(sequence, sink, name)

    rows = [
        {
            "motif": m.motif_name,
            "sequence_name": m.sequence_name,
            "start": m.start,
            "stop": m.stop,
            "strand": m.strand,
            "score": m.score.score,
            "pvalue": m.score.pvalue,
            "site": m.score.matched_sequence(),
        }
        for m in sink.matches
    ]
    df = pd.DataFrame(rows, columns=SITE_COLUMNS)
    if len(df) > 0:
        df = df.sort_values(["sequence_name", "pvalue", "start"], kind="stable").reset_index(drop=True)
    return df
