import numpy as np
from numba import njit

from pwmscan.alphabet import ALPHABET_SIZE, COMPLEMENT

# Integer levels spanned by one matrix cell after scaling.
SCALE_RESOLUTION = 300


def pfm_to_pwm(pfm: np.ndarray, background: np.ndarray, number_of_sites: float, pseudo_sites: float) -> np.ndarray:
    """Convert a Position Frequency Matrix to a log2-odds Position Weight Matrix.

    Frequencies are smoothed with ``pseudo_sites`` background-distributed
    pseudocounts weighted against ``number_of_sites`` observed sites.
    """
    adjusted = (pfm * number_of_sites + background * pseudo_sites) / (number_of_sites + pseudo_sites)
    return np.log2(adjusted / background)


def scale_pwm(pwm: np.ndarray) -> tuple[np.ndarray, float, float]:
    """Map a log-odds matrix onto non-negative integers.

    Returns the scaled matrix, the scale factor and the minimum log-odds
    value subtracted before scaling.
    """
    minimum = float(pwm.min())
    value_range = float(pwm.max()) - minimum
    scale = SCALE_RESOLUTION / value_range if value_range > 0 else 1.0

    scaled = np.floor((pwm - minimum) * scale + 0.5).astype(np.int64)
    np.clip(scaled, 0, None, out=scaled)
    return scaled, scale, minimum


def reverse_complement_pfm(pfm: np.ndarray) -> np.ndarray:
    """Reverse the rows and swap A<->T, C<->G columns."""
    return pfm[::-1][:, COMPLEMENT[:ALPHABET_SIZE]].copy()


@njit(cache=True)
def pvalue_table(matrix, background):
    """Exact survival function of the summed integer score under the background model.

    ``pvalues[s]`` is the probability that a background sequence scores ``s``
    or more. The distribution over partial sums is convolved one row at a
    time into alternating buffers.
    """
    n_rows = matrix.shape[0]
    n_cols = matrix.shape[1]

    max_sum = 0
    for r in range(n_rows):
        max_sum += matrix[r].max()

    current = np.zeros(max_sum + 1, dtype=np.float64)
    following = np.zeros(max_sum + 1, dtype=np.float64)

    for j in range(n_cols):
        current[matrix[0, j]] += background[j]
    reach = matrix[0].max()

    for r in range(1, n_rows):
        row_max = matrix[r].max()
        following[: reach + row_max + 1] = 0.0
        for t in range(reach + 1):
            mass = current[t]
            for j in range(n_cols):
                following[t + matrix[r, j]] += mass * background[j]
        current, following = following, current
        reach += row_max

    pvalues = np.empty(max_sum + 1, dtype=np.float64)
    accumulated = 0.0
    for s in range(max_sum, -1, -1):
        accumulated += current[s]
        pvalues[s] = accumulated
    return pvalues


@njit(cache=True)
def window_totals(codes, matrix):
    """Sum of scaled cells for every full window, -1 where a window holds a non-ACGT code."""
    m = matrix.shape[0]
    n = codes.shape[0]
    if n < m:
        return np.empty(0, dtype=np.int64)

    totals = np.empty(n - m + 1, dtype=np.int64)
    for k in range(n - m + 1):
        total = 0
        for r in range(m):
            code = codes[k + r]
            if code < 0 or code >= 4:
                total = -1
                break
            total += matrix[r, code]
        totals[k] = total
    return totals
