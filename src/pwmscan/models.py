"""
Score Matrix Module
===================

Immutable motif score matrices and the sliding-window scan.

A :class:`ScoreMatrix` is built once from a frequency matrix and a
background distribution: frequencies are smoothed with pseudocounts,
turned into log2-odds values, scaled onto non-negative integers and
convolved into an exact score-to-p-value table. The matrix is then
reused, read-only, for every sequence of a run.

Scanning pushes one :class:`Match` per window to a caller-supplied sink.
Each match wraps a :class:`Score` whose outcome is either :class:`Scored`
or :class:`Unscorable` (a window holding a non-ACGT character).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Literal, Protocol, Union

import numpy as np

from pwmscan.alphabet import ALPHABET_SIZE, alphabet_index, encode_sequence
from pwmscan.functions import pfm_to_pwm, pvalue_table, reverse_complement_pfm, scale_pwm, window_totals

Strand = Literal["+", "-"]

UNIFORM_BACKGROUND = (0.25, 0.25, 0.25, 0.25)
DEFAULT_PSEUDO_SITES = 0.1
# MEME format default when a matrix header omits nsites=.
DEFAULT_NUMBER_OF_SITES = 20


@dataclass(frozen=True)
class Scored:
    """Outcome of a window made only of A/C/G/T."""

    score: float
    pvalue: float


@dataclass(frozen=True)
class Unscorable:
    """Outcome of a window containing at least one non-ACGT character."""


UNSCORABLE = Unscorable()
Outcome = Union[Scored, Unscorable]


@dataclass(frozen=True)
class Score:
    """A scored window of a caller-owned sequence.

    The record only references ``sequence``; it is meant to be inspected
    inside the sink call that receives it.
    """

    sequence: str = dc_field(repr=False, compare=False)
    begin: int
    end: int
    outcome: Outcome

    @property
    def is_scorable(self) -> bool:
        return isinstance(self.outcome, Scored)

    @property
    def pvalue(self) -> float:
        """The p-value, NaN for an unscorable window."""
        return self.outcome.pvalue if isinstance(self.outcome, Scored) else math.nan

    @property
    def score(self) -> float:
        """The score, 0 for an unscorable window."""
        return self.outcome.score if isinstance(self.outcome, Scored) else 0.0

    def is_hit(self, threshold: float) -> bool:
        return isinstance(self.outcome, Scored) and self.outcome.pvalue < threshold

    def matched_sequence(self) -> str:
        return self.sequence[self.begin : self.end].upper()


@dataclass(frozen=True)
class Match:
    """A window result with its motif, sequence and 1-based inclusive coordinates."""

    motif_name: str
    sequence_name: str
    strand: Strand
    start: int
    stop: int
    score: Score


class MatchSink(Protocol):
    """Anything that can receive matches during a scan."""

    def record(self, match: Match) -> None: ...


@dataclass(frozen=True)
class ScoreMatrix:
    """Immutable scaled log-odds matrix with its exact p-value table.

    Attributes
    ----------
    name : str
        Motif name
    is_reverse_complement : bool
        True for the matrix derived for the opposite strand
    background : np.ndarray
        A, C, G, T background probabilities
    frequencies : np.ndarray
        Frequency matrix the matrix was built from, shape (length, 4)
    number_of_sites : float
        Number of sites behind the frequencies
    pseudo_sites : float
        Pseudocount weight
    matrix : np.ndarray
        Scaled integer matrix, shape (length, 4), every cell >= 0
    scale : float
        Factor applied to log-odds values after subtracting ``min_before_scaling``
    min_before_scaling : float
        Smallest log-odds value of the matrix
    pvalues : np.ndarray
        ``pvalues[s]`` = P(total >= s) for s in ``[0, max_sum]``
    """

    name: str
    is_reverse_complement: bool
    background: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    frequencies: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    number_of_sites: float
    pseudo_sites: float
    matrix: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    scale: float
    min_before_scaling: float
    pvalues: np.ndarray = dc_field(hash=False, compare=False, repr=False)

    def __eq__(self, other):
        if not isinstance(other, ScoreMatrix):
            return NotImplemented
        return (
            self.name == other.name
            and self.is_reverse_complement == other.is_reverse_complement
            and self.number_of_sites == other.number_of_sites
            and self.pseudo_sites == other.pseudo_sites
            and self.scale == other.scale
            and self.min_before_scaling == other.min_before_scaling
            and np.array_equal(self.background, other.background)
            and np.array_equal(self.frequencies, other.frequencies)
            and np.array_equal(self.matrix, other.matrix)
            and np.array_equal(self.pvalues, other.pvalues)
        )

    def __hash__(self):
        """Custom hash implementation excluding unhashable fields."""
        return hash((self.name, self.is_reverse_complement, self.length))

    @property
    def length(self) -> int:
        return self.matrix.shape[0]

    @property
    def max_sum(self) -> int:
        return self.pvalues.size - 1

    @property
    def strand(self) -> Strand:
        return "-" if self.is_reverse_complement else "+"

    def value(self, position: int, base: str) -> int:
        """Scaled cell for a motif position and base; raises ValueError for non-ACGT bases."""
        column = alphabet_index(base)
        if column >= ALPHABET_SIZE:
            raise ValueError(f"Invalid base {base!r}")
        return int(self.matrix[position, column])

    def to_score(self, total: int) -> float:
        """Convert a scaled total back to a log-odds score."""
        return total / self.scale + self.min_before_scaling * self.length

    def pvalue_at(self, total: int) -> float:
        """Probability of a total of at least ``total``; 0 past the maximum."""
        if total > self.max_sum:
            return 0.0
        if total <= 0:
            return float(self.pvalues[0])
        return float(self.pvalues[total])

    def score_windows(self, sequence: str) -> np.ndarray:
        """Scaled totals of every window, left to right, -1 for unscorable windows."""
        return window_totals(encode_sequence(sequence), self.matrix)

    def scan(self, sequence: str, sink: MatchSink, sequence_name: str = "") -> int:
        """Score every window of ``sequence`` and push each match to ``sink``.

        Returns the number of windows scanned.
        """
        totals = self.score_windows(sequence)
        length = self.length
        for begin, total in enumerate(totals.tolist()):
            if total < 0:
                outcome: Outcome = UNSCORABLE
            else:
                outcome = Scored(self.to_score(total), float(self.pvalues[total]))
            score = Score(sequence, begin, begin + length, outcome)
            sink.record(Match(self.name, sequence_name, self.strand, begin + 1, begin + length, score))
        return totals.size


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def _validate_inputs(frequencies: np.ndarray, background: np.ndarray, number_of_sites: float, pseudo_sites: float):
    """Raise ValueError for inputs the log-odds transform cannot handle."""
    if background.shape != (ALPHABET_SIZE,):
        raise ValueError(f"Background must have {ALPHABET_SIZE} values, got {background.size}")
    if np.any(~np.isfinite(background)) or np.any(background <= 0):
        raise ValueError(f"Background probabilities must be positive, got {background.tolist()}")
    if frequencies.ndim != 2 or frequencies.shape[0] == 0:
        raise ValueError("Frequency matrix has no rows")
    if frequencies.shape[1] != ALPHABET_SIZE:
        raise ValueError(f"Every frequency row must have {ALPHABET_SIZE} values, got {frequencies.shape[1]}")
    if np.any(~np.isfinite(frequencies)) or np.any(frequencies < 0):
        raise ValueError("Frequencies must be finite and non-negative")
    if number_of_sites < 0 or pseudo_sites < 0 or number_of_sites + pseudo_sites <= 0:
        raise ValueError(
            f"Invalid site weighting: number_of_sites={number_of_sites}, pseudo_sites={pseudo_sites}"
        )


def _as_frequency_array(frequencies) -> np.ndarray:
    rows = [list(row) for row in frequencies]
    if not rows:
        raise ValueError("Frequency matrix has no rows")
    for index, row in enumerate(rows):
        if len(row) != ALPHABET_SIZE:
            raise ValueError(f"Frequency row {index} has {len(row)} values, expected {ALPHABET_SIZE}")
    return np.array(rows, dtype=np.float64)


def build_score_matrix(
    name: str,
    frequencies,
    background=UNIFORM_BACKGROUND,
    number_of_sites: float = DEFAULT_NUMBER_OF_SITES,
    is_reverse_complement: bool = False,
    pseudo_sites: float = DEFAULT_PSEUDO_SITES,
) -> ScoreMatrix:
    """Build a ScoreMatrix from frequency rows (one row of A, C, G, T values per motif position)."""
    pfm = _as_frequency_array(frequencies)
    bg = np.array(background, dtype=np.float64).reshape(-1)
    _validate_inputs(pfm, bg, number_of_sites, pseudo_sites)

    pwm = pfm_to_pwm(pfm, bg, number_of_sites, pseudo_sites)
    scaled, scale, minimum = scale_pwm(pwm)
    pvalues = pvalue_table(scaled, bg)

    logger = logging.getLogger(__name__)
    logger.debug(
        f"Built matrix {name} ({'-' if is_reverse_complement else '+'}): length={pfm.shape[0]}, "
        f"scale={scale:.4f}, min={minimum:.4f}, max_sum={pvalues.size - 1}"
    )

    return ScoreMatrix(
        name=name,
        is_reverse_complement=is_reverse_complement,
        background=_readonly(bg),
        frequencies=_readonly(pfm),
        number_of_sites=number_of_sites,
        pseudo_sites=pseudo_sites,
        matrix=_readonly(scaled),
        scale=scale,
        min_before_scaling=minimum,
        pvalues=_readonly(pvalues),
    )


def reverse_complement(matrix: ScoreMatrix) -> ScoreMatrix:
    """Derive the opposite-strand matrix: rows reversed, A<->T and C<->G swapped."""
    return build_score_matrix(
        name=matrix.name,
        frequencies=reverse_complement_pfm(matrix.frequencies),
        background=matrix.background,
        number_of_sites=matrix.number_of_sites,
        is_reverse_complement=not matrix.is_reverse_complement,
        pseudo_sites=matrix.pseudo_sites,
    )
