"""
Pytest configuration and common fixtures for pwmscan tests.
"""
import sys
import tempfile
from pathlib import Path

import pysam
import pytest

# Force testing the installed package, not the local source
project_root = str(Path(__file__).parent.parent.absolute())
if project_root in sys.path:
    sys.path.remove(project_root)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def examples_dir():
    """Return path to examples directory."""
    return Path(__file__).parent.parent / "examples"


class ListSink:
    """Sink that keeps every match it receives."""

    def __init__(self):
        self.matches = []

    def record(self, match):
        self.matches.append(match)


@pytest.fixture
def list_sink():
    return ListSink()


@pytest.fixture
def make_bam(tmp_path):
    """Write a small coordinate sorted, indexed BAM from (name, sequence, position or None) reads."""

    def _make_bam(reads, name="reads.bam"):
        path = tmp_path / name
        header = {"HD": {"VN": "1.0", "SO": "coordinate"}, "SQ": [{"LN": 1000, "SN": "chr1"}]}
        with pysam.AlignmentFile(str(path), "wb", header=header) as out:
            for read_name, sequence, position in reads:
                segment = pysam.AlignedSegment(out.header)
                segment.query_name = read_name
                segment.query_sequence = sequence
                if position is None:
                    segment.flag = 4
                    segment.reference_id = -1
                    segment.reference_start = -1
                else:
                    segment.flag = 0
                    segment.reference_id = 0
                    segment.reference_start = position
                    segment.mapping_quality = 60
                    segment.cigartuples = [(0, len(sequence))]
                segment.query_qualities = pysam.qualitystring_to_array("I" * len(sequence))
                out.write(segment)
        pysam.index(str(path))
        return path

    return _make_bam
