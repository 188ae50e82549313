"""
alignments
==========

Scan the decoded read sequences of an alignment (BAM) file.

Every read is scored against every matrix; reads with at least one hit
(p-value below :data:`pwmscan.sinks.HIT_PVALUE_THRESHOLD`) are counted and
optionally written, unmodified, to an output alignment file sharing the
input header. Reads are taken either sequentially from the whole file or,
given a region list, fetched per region through the file index.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, Optional, Sequence, TextIO, Tuple

import pandas as pd
import pysam

from pwmscan.models import ScoreMatrix
from pwmscan.sinks import FIMO_HEADER, AlignmentStats, HitCollector


class AlignmentScorer:
    """Score the reads of one alignment file.

    Parameters
    ----------
    input_path : str
        Alignment file to read. Region filtering requires its index.
    matrices : Sequence[ScoreMatrix]
        Matrices scored against every read.
    output_path : str, optional
        Alignment file receiving every read with at least one hit.
    only_unmapped : bool
        Count every read but only score unmapped ones.
    printer : TextIO, optional
        Destination for FIMO style lines of every hit.
    """

    def __init__(
        self,
        input_path: str,
        matrices: Sequence[ScoreMatrix],
        output_path: Optional[str] = None,
        only_unmapped: bool = False,
        printer: Optional[TextIO] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.input_path = input_path
        self.matrices = list(matrices)
        self.output_path = output_path
        self.only_unmapped = only_unmapped
        self.printer = printer
        self.stats = AlignmentStats()
        self.collector = HitCollector(printer)

    def run(self, regions: Optional[pd.DataFrame] = None) -> AlignmentStats:
        """Score all reads, or the reads overlapping ``regions``, and return the counters."""
        if not os.path.exists(self.input_path):
            raise FileNotFoundError(f"Alignment file not found: {self.input_path}")

        if self.printer is not None:
            self.printer.write(FIMO_HEADER + "\n")

        with pysam.AlignmentFile(self.input_path, "rb", check_sq=False) as alignments:
            output = None
            if self.output_path:
                output = pysam.AlignmentFile(self.output_path, "wb", template=alignments)
            try:
                if regions is not None:
                    reads = self._region_reads(alignments, regions)
                else:
                    reads = ((read, "") for read in alignments.fetch(until_eof=True))
                for read, sequence_name in reads:
                    self.score_read(read, sequence_name, output)
            finally:
                if output is not None:
                    output.close()

        self.logger.info(
            f"Scored {self.stats.read_count} read(s) from {self.input_path}: "
            f"{self.stats.read_hit_count} with hits, {self.stats.total_hit_count} hit(s) in total"
        )
        return self.stats

    def _region_reads(
        self, alignments: pysam.AlignmentFile, regions: pd.DataFrame
    ) -> Iterator[Tuple[pysam.AlignedSegment, str]]:
        """Yield reads overlapping each region, named by the region coordinates."""
        if not alignments.has_index():
            raise ValueError(f"Region filtering requires an index for {self.input_path}")

        references = set(alignments.references)
        for region in regions.itertuples(index=False):
            chromosome = str(region.chromosome)
            if chromosome not in references:
                self.logger.warning(f"Skipping region on {chromosome}: not present in {self.input_path}")
                continue
            region_name = f"{chromosome}:{region.start}-{region.stop}"
            for read in alignments.fetch(chromosome, int(region.start), int(region.stop)):
                yield read, region_name

    def score_read(
        self, read: pysam.AlignedSegment, sequence_name: str = "", output: Optional[pysam.AlignmentFile] = None
    ) -> int:
        """Score one read against every matrix and return its number of hits."""
        stats = self.stats
        stats.read_count += 1
        if read.is_unmapped:
            stats.unmapped_count += 1
        elif self.only_unmapped:
            return 0

        sequence = read.query_sequence or ""
        hits_before = self.collector.start_record(read.query_name or "", read.reference_start)
        for matrix in self.matrices:
            matrix.scan(sequence, self.collector, sequence_name)
        hits = self.collector.total_hits - hits_before

        if hits > 0:
            stats.total_hit_count += hits
            stats.read_hit_count += 1
            if read.is_unmapped:
                stats.unmapped_hit_count += 1
            if output is not None:
                output.write(read)
        return hits
