from typing import Final

import numpy as np

ALPHABET: Final = "ACGT"
ALPHABET_SIZE: Final = 4

# A<->T, C<->G; index 4 (any other character) maps to itself.
COMPLEMENT = np.array([3, 2, 1, 0, 4], dtype=np.int8)

_TRANS_TABLE = bytearray([ALPHABET_SIZE] * 256)
for _char, _code in zip(b"ACGTacgt", [0, 1, 2, 3] * 2, strict=False):
    _TRANS_TABLE[_char] = _code
_TRANS_TABLE = bytes(_TRANS_TABLE)


def alphabet_index(base: str) -> int:
    """Return the column of ``base`` (case-insensitive), or ALPHABET_SIZE if it is not ACGT."""
    index = ALPHABET.find(base.upper()) if len(base) == 1 else -1
    return ALPHABET_SIZE if index < 0 else index


def complement_index(index: int) -> int:
    """Return the column of the complementary base."""
    return int(COMPLEMENT[index])


def encode_sequence(sequence: str) -> np.ndarray:
    """Encode a base string as int8 columns, anything outside ACGT/acgt becomes 4."""
    raw = sequence.encode("ascii", errors="replace")
    return np.frombuffer(raw.translate(_TRANS_TABLE), dtype=np.int8)
