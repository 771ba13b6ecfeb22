"""Iterative radix-2 FFT.

Bit-reversal permutation followed by log2(N) butterfly stages. Each stage
is vectorized over all butterflies of that size and updates the buffer
in place.
"""

from functools import lru_cache
from typing import Tuple

import numpy as np


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    size = 1
    while size < n:
        size <<= 1
    return size


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@lru_cache(maxsize=8)
def _bit_reversal(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


@lru_cache(maxsize=64)
def _twiddles(size: int) -> np.ndarray:
    half = size // 2
    return np.exp(-2j * np.pi * np.arange(half) / size)


def fft_radix2(signal: np.ndarray) -> np.ndarray:
    """
    Complex FFT of a real or complex signal.

    The input is zero-padded to the next power of two.

    Args:
        signal: 1-D array

    Returns:
        Complex spectrum of length next_power_of_two(len(signal))
    """
    signal = np.asarray(signal)
    n = next_power_of_two(len(signal))

    buf = np.zeros(n, dtype=np.complex128)
    buf[: len(signal)] = signal
    assert is_power_of_two(n), "FFT buffer must be padded to a power of two"

    buf = buf[_bit_reversal(n)]

    size = 2
    while size <= n:
        half = size // 2
        blocks = buf.reshape(n // size, size)
        odd = blocks[:, half:] * _twiddles(size)
        even = blocks[:, :half].copy()
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size <<= 1

    return buf


def magnitude_spectrum(frame: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Magnitudes of the non-negative frequency bins.

    Args:
        frame: Windowed frame

    Returns:
        Tuple of (magnitudes of bins 0..N/2-1, FFT size N)
    """
    spectrum = fft_radix2(frame)
    n = len(spectrum)
    return np.abs(spectrum[: n // 2]), n
