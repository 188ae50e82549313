"""Match sinks: FIMO style printing, hit counting and run statistics."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import List, Optional, TextIO

from pwmscan.models import Match

# Alignment records count as hit when any window scores below this p-value.
HIT_PVALUE_THRESHOLD = 1e-4

FIMO_HEADER = "#pattern name\tsequence name\tstart\tstop\tstrand\tscore\tp-value\tq-value\tmatched sequence"


def format_match(match: Match, sequence_name: Optional[str] = None, offset: int = 0) -> str:
    """Render a match as one tab separated FIMO style line (q-value left blank)."""
    name = match.sequence_name if sequence_name is None else sequence_name
    score = match.score
    return (
        f"{match.motif_name}\t{name}\t{match.start + offset}\t{match.stop + offset}\t{match.strand}\t"
        f"{score.score:.6g}\t{score.pvalue:.3g}\t\t{score.matched_sequence()}"
    )


def passes_threshold(match: Match, threshold: float) -> bool:
    """True for a scorable match below ``threshold``; a threshold of 1 or more keeps every scorable match."""
    score = match.score
    return score.is_scorable and (threshold >= 1 or score.pvalue < threshold)


class FimoStylePrinter:
    """Print every scorable match passing ``threshold`` (see :func:`passes_threshold`)."""

    def __init__(self, out: TextIO, threshold: float = HIT_PVALUE_THRESHOLD, header: bool = True):
        self.out = out
        self.threshold = threshold
        self.printed = 0
        if header:
            out.write(FIMO_HEADER + "\n")

    def record(self, match: Match) -> None:
        if passes_threshold(match, self.threshold):
            self.out.write(format_match(match) + "\n")
            self.printed += 1


class CollectingSink:
    """Keep the scorable matches passing ``threshold``, detached from the scanned buffer."""

    def __init__(self, threshold: float = 1.0):
        self.threshold = threshold
        self.matches: List[Match] = []

    def record(self, match: Match) -> None:
        if not passes_threshold(match, self.threshold):
            return
        score = match.score
        detached = replace(score, sequence=score.matched_sequence(), begin=0, end=score.end - score.begin)
        self.matches.append(replace(match, score=detached))


class HitCollector:
    """Count hits for the record currently being scored.

    Hits may be forwarded to ``printer`` (a FIMO style line per hit, where the
    coordinates are shifted by the record position and an empty sequence
    name is replaced by the record name).
    """

    def __init__(self, printer: Optional[TextIO] = None):
        self.printer = printer
        self.total_hits = 0
        self.record_name = ""
        self.record_offset = 0

    def start_record(self, name: str, offset: int) -> int:
        """Prepare for a new record and return the current hit total."""
        self.record_name = name
        self.record_offset = offset
        return self.total_hits

    def record(self, match: Match) -> None:
        if not match.score.is_hit(HIT_PVALUE_THRESHOLD):
            return
        self.total_hits += 1
        if self.printer is not None:
            name = match.sequence_name or self.record_name
            self.printer.write(format_match(match, sequence_name=name, offset=self.record_offset) + "\n")


def _percent_line(upper_label: str, upper: int, lower_label: str, lower: int) -> str:
    percent = 100 * (upper / lower) if lower else math.nan
    return f"# ({upper_label}) / ({lower_label}) = {upper}/{lower} = {percent:g}%"


@dataclass
class AlignmentStats:
    """Read and hit counters of an alignment run."""

    read_count: int = 0
    unmapped_count: int = 0
    read_hit_count: int = 0
    unmapped_hit_count: int = 0
    total_hit_count: int = 0

    def summary_lines(self, only_unmapped: bool = False) -> List[str]:
        lines = []
        if not only_unmapped:
            lines.append(_percent_line("total hits", self.read_hit_count, "total reads", self.read_count))
            lines.append(
                _percent_line(
                    "mapped hits",
                    self.read_hit_count - self.unmapped_hit_count,
                    "mapped reads",
                    self.read_count - self.unmapped_count,
                )
            )
        lines.append(_percent_line("unmapped hits", self.unmapped_hit_count, "unmapped reads", self.unmapped_count))
        if not only_unmapped:
            lines.append(_percent_line("unmapped hits", self.unmapped_hit_count, "total hits", self.read_hit_count))
        lines.append(_percent_line("unmapped reads", self.unmapped_count, "total reads", self.read_count))

        average = self.total_hit_count / self.read_hit_count if self.read_hit_count else math.nan
        lines.append(f"# total hits: {self.total_hit_count} (average hits per hit read = {average:g})")
        return lines
