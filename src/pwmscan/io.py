from __future__ import annotations

import contextlib
import logging
import os
import re
from io import StringIO
from pathlib import Path
from typing import IO, Iterator, List, Tuple, Union

import joblib
import numpy as np
import pandas as pd

from pwmscan.alphabet import ALPHABET, ALPHABET_SIZE
from pwmscan.models import (
    DEFAULT_NUMBER_OF_SITES,
    DEFAULT_PSEUDO_SITES,
    UNIFORM_BACKGROUND,
    ScoreMatrix,
    build_score_matrix,
    reverse_complement,
)

Source = Union[str, Path, IO[str]]

_META_KV_RE = re.compile(r"(\w+)\s*=\s*(\S+)")
REGION_COLUMNS = ["chromosome", "start", "stop"]


@contextlib.contextmanager
def _open_text(source: Source):
    """Yield a text handle for a path or pass an open handle through."""
    if isinstance(source, (str, Path)):
        with open(source, "r") as handle:
            yield handle
    else:
        yield source


def _parse_matrix_header(line: str) -> dict:
    """Parse the key= value pairs of a 'letter-probability matrix:' line."""
    _, _, tail = line.partition(":")
    return {key.lower(): value for key, value in _META_KV_RE.findall(tail)}


def _parse_row(line: str, motif_name: str) -> List[float]:
    parts = line.split()
    if len(parts) != ALPHABET_SIZE:
        raise ValueError(f"Motif {motif_name}: expected {ALPHABET_SIZE} frequencies per row, got {line.strip()!r}")
    try:
        return [float(x) for x in parts]
    except ValueError as e:
        raise ValueError(f"Motif {motif_name}: invalid frequency row {line.strip()!r}") from e


def _is_numeric_row(line: str) -> bool:
    parts = line.split()
    if not parts:
        return False
    try:
        float(parts[0])
    except ValueError:
        return False
    return True


def read_meme_frequencies(source: Source) -> List[Tuple[str, np.ndarray, float]]:
    """Read every motif of a MEME formatted file as (name, frequency rows, number of sites)."""
    motifs: List[Tuple[str, np.ndarray, float]] = []

    with _open_text(source) as handle:
        name = None
        line = handle.readline()
        while line:
            stripped = line.strip()
            if stripped.startswith("MOTIF"):
                if name is not None:
                    raise ValueError(f"Motif {name} has no letter-probability matrix")
                parts = stripped.split()
                if len(parts) < 2:
                    raise ValueError(f"Motif line without a name: {stripped!r}")
                name = parts[1]

            elif stripped.startswith("letter-probability matrix"):
                if name is None:
                    raise ValueError("letter-probability matrix found before any MOTIF line")
                header = _parse_matrix_header(stripped)
                try:
                    alength = int(header.get("alength", ALPHABET_SIZE))
                    width = int(header["w"]) if "w" in header else None
                    nsites = float(header.get("nsites", DEFAULT_NUMBER_OF_SITES))
                except ValueError as e:
                    raise ValueError(f"Motif {name}: malformed matrix header {stripped!r}") from e
                if alength != ALPHABET_SIZE:
                    raise ValueError(f"Motif {name}: only alength= {ALPHABET_SIZE} is supported, got {alength}")

                rows = []
                if width is not None:
                    while len(rows) < width:
                        row_line = handle.readline()
                        if not row_line:
                            raise ValueError(f"Motif {name}: expected {width} rows, found {len(rows)}")
                        if not row_line.strip():
                            continue
                        rows.append(_parse_row(row_line, name))
                else:
                    row_line = handle.readline()
                    while row_line and _is_numeric_row(row_line):
                        rows.append(_parse_row(row_line, name))
                        row_line = handle.readline()
                    if not rows:
                        raise ValueError(f"Motif {name}: empty letter-probability matrix")
                    motifs.append((name, np.array(rows, dtype=np.float64), nsites))
                    name = None
                    line = row_line
                    continue

                motifs.append((name, np.array(rows, dtype=np.float64), nsites))
                name = None

            line = handle.readline()

    if name is not None:
        raise ValueError(f"Motif {name} has no letter-probability matrix")
    if not motifs:
        raise ValueError("No motifs found")

    return motifs


def read_meme(
    source: Source,
    background=UNIFORM_BACKGROUND,
    include_reverse_complement: bool = True,
    pseudo_sites: float = DEFAULT_PSEUDO_SITES,
) -> List[ScoreMatrix]:
    """Build the score matrices of every motif in a MEME file.

    Each motif yields its forward matrix followed, when requested, by the
    reverse complement matrix.
    """
    logger = logging.getLogger(__name__)
    matrices: List[ScoreMatrix] = []
    for name, frequencies, nsites in read_meme_frequencies(source):
        matrix = build_score_matrix(
            name, frequencies, background=background, number_of_sites=nsites, pseudo_sites=pseudo_sites
        )
        matrices.append(matrix)
        if include_reverse_complement:
            matrices.append(reverse_complement(matrix))
        logger.debug(f"Loaded motif {name}: length={matrix.length}, nsites={nsites:g}")

    logger.info(f"Loaded {len(matrices)} score matri{'x' if len(matrices) == 1 else 'ces'}")
    return matrices


def read_background(source: Source) -> Tuple[float, float, float, float]:
    """Read a MEME style background file and return the A, C, G, T frequencies.

    Higher order entries (``AA 0.07`` ...) are ignored.
    """
    values = {}
    with _open_text(source) as handle:
        for number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            if len(parts) < 2:
                raise ValueError(f"Background line {number}: expected '<symbol> <frequency>', got {line!r}")
            symbol = parts[0].upper()
            if len(symbol) != 1:
                continue
            if symbol not in ALPHABET:
                raise ValueError(f"Background line {number}: unsupported symbol {parts[0]!r}")
            try:
                frequency = float(parts[1])
            except ValueError as e:
                raise ValueError(f"Background line {number}: invalid frequency {parts[1]!r}") from e
            if not np.isfinite(frequency) or frequency < 0:
                raise ValueError(f"Background line {number}: invalid frequency {parts[1]!r}")
            values[symbol] = frequency

    missing = [base for base in ALPHABET if base not in values]
    if missing:
        raise ValueError(f"Background is missing frequencies for {', '.join(missing)}")

    return tuple(values[base] for base in ALPHABET)


def read_fasta(source: Source) -> Iterator[Tuple[str, str]]:
    """Iterate over (name, sequence) records of a FASTA file."""
    with _open_text(source) as handle:
        name = None
        chunks: List[str] = []
        for line in handle:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if name is not None:
                    yield name, "".join(chunks)
                header = line[1:].split()
                name = header[0] if header else ""
                chunks = []
            else:
                if name is None:
                    raise ValueError("FASTA sequence data found before the first '>' header")
                chunks.append(line)

        if name is not None:
            yield name, "".join(chunks)


def read_regions(path: str | Path) -> pd.DataFrame:
    """Read a BED file into a DataFrame with chromosome, start and stop columns."""
    with open(path, "r") as handle:
        lines = [
            line
            for line in handle
            if line.strip() and not line.startswith(("#", "track", "browser"))
        ]

    if not lines:
        return pd.DataFrame(columns=REGION_COLUMNS)

    table = pd.read_csv(StringIO("".join(lines)), sep="\t", header=None, dtype=str)
    if table.shape[1] < 3:
        raise ValueError(f"BED file {path} must have at least 3 columns")

    table = table.iloc[:, :3]
    table.columns = REGION_COLUMNS
    try:
        table["start"] = table["start"].astype(np.int64)
        table["stop"] = table["stop"].astype(np.int64)
    except ValueError as e:
        raise ValueError(f"BED file {path} has non-integer coordinates") from e

    return table.reset_index(drop=True)


def read_matrices(
    path: str,
    background=UNIFORM_BACKGROUND,
    include_reverse_complement: bool = True,
    pseudo_sites: float = DEFAULT_PSEUDO_SITES,
) -> List[ScoreMatrix]:
    """Load a matrix set from a MEME file, or from a ``.pkl`` written by :func:`write_matrices`.

    A cached set must have been built with the requested ``background`` and
    ``pseudo_sites``; otherwise ValueError is raised.
    """
    _, ext = os.path.splitext(str(path).lower())
    if ext == ".pkl":
        matrices = joblib.load(path)
        requested = np.array(background, dtype=np.float64).reshape(-1)
        for matrix in matrices:
            if not np.allclose(matrix.background, requested) or matrix.pseudo_sites != pseudo_sites:
                raise ValueError(
                    f"Matrix set {path} was built with background {matrix.background.tolist()} and "
                    f"pseudo_sites={matrix.pseudo_sites}, not the requested {requested.tolist()} and "
                    f"pseudo_sites={pseudo_sites}; rebuild it from the motif file"
                )
        if not include_reverse_complement:
            matrices = [m for m in matrices if not m.is_reverse_complement]
        return matrices
    return read_meme(
        path,
        background=background,
        include_reverse_complement=include_reverse_complement,
        pseudo_sites=pseudo_sites,
    )


def write_matrices(matrices: List[ScoreMatrix], path: str) -> None:
    """Cache a built matrix set, p-value tables included."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    joblib.dump(list(matrices), path)
