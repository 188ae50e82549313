"""
pwmscan
=======

Score DNA sequences against motif position weight matrices and report
matches with exact p-values.

A motif frequency matrix is turned into an integer-scaled log-odds matrix
whose complete score distribution under a background base model is
computed once, by dynamic programming. Every window of every scanned
sequence is then scored in linear time and resolved to its exact p-value
by table lookup.

The top level modules expose the following key components:

``alphabet``
    The A/C/G/T alphabet, case-insensitive lookup and sequence encoding.

``models``
    :class:`ScoreMatrix` construction, reverse complement derivation and
    the sliding-window scan, plus the :class:`Score` and :class:`Match`
    records handed to sinks.

``io``
    MEME motif and background readers, FASTA iteration, BED regions and
    matrix-set caching.

``sinks``
    FIMO style printing, hit collection and alignment run statistics.

``alignments``
    Scanning of the reads of a BAM file with selective re-emission.

``pipeline`` / ``api`` / ``cli``
    The scan driver, the library entry points and the command line.
"""

from pwmscan.api import ScanConfig, create_config, find_sites, load_matrices, run_scan, scan_motifs, scan_sequence
from pwmscan.models import Match, Score, ScoreMatrix, Scored, Unscorable, build_score_matrix, reverse_complement
