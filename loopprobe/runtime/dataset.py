"""
Dataset: Host-side reference and output sequences for the loopback probe.

Both sequences are flat uint8 arrays of the same length, split into
contiguous blocks of block_length bytes. Block i covers
[i * block_length, (i + 1) * block_length).

The reference is filled once with random nucleotide letters; the output
starts zeroed and is written only by the accelerator through a
DeviceBinding.
"""

import logging
import time
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

ALPHABET = np.frombuffer(b"ATCG", dtype=np.uint8)


class Dataset:
    """
    Owns the reference and output buffers for one probe run.

    Args:
        length: Total bytes per sequence; must be a multiple of block_length
        block_length: Bytes per block (> 0)
        seed: Generator seed; defaults to the current time
    """

    def __init__(self, length: int, block_length: int, seed: Optional[int] = None):
        if block_length <= 0:
            raise ValueError(f"block_length must be > 0, got {block_length}")
        if length < 0:
            raise ValueError(f"length must be >= 0, got {length}")
        if length % block_length:
            raise ValueError(
                f"length {length} is not a multiple of block_length {block_length}"
            )

        self.length = length
        self.block_length = block_length
        self.block_count = length // block_length
        self.seed = seed

        self.reference = np.empty(length, dtype=np.uint8)
        self.output = np.empty(length, dtype=np.uint8)
        self.generate()

    def generate(self) -> None:
        """Fill the reference from the ATCG alphabet and zero the output."""
        seed = self.seed if self.seed is not None else int(time.time())
        rng = np.random.default_rng(seed)
        self.reference[:] = ALPHABET[rng.integers(0, len(ALPHABET), size=self.length)]
        self.output.fill(0)
        logger.debug(f"Generated {self.length} reference bytes (seed={seed})")

    def _block_slice(self, block_index: int) -> slice:
        if not 0 <= block_index < self.block_count:
            raise IndexError(
                f"block index {block_index} out of range [0, {self.block_count})"
            )
        start = block_index * self.block_length
        return slice(start, start + self.block_length)

    def output_block(self, block_index: int) -> np.ndarray:
        """View (not a copy) of the output bytes for one block."""
        return self.output[self._block_slice(block_index)]

    def reference_block(self, block_index: int) -> np.ndarray:
        """View (not a copy) of the reference bytes for one block."""
        return self.reference[self._block_slice(block_index)]

    def mismatch_offset(self, block_index: int) -> Optional[int]:
        """Offset of the first differing byte inside the block, or None."""
        diff = np.flatnonzero(self.output_block(block_index) != self.reference_block(block_index))
        if diff.size == 0:
            return None
        return int(diff[0])

    def compare(self, block_index: int) -> int:
        """
        memcmp-style comparison of output against reference for one block.

        Returns 0 when equal, otherwise -1 or 1 depending on whether the
        first differing output byte is lower or higher than the reference.
        """
        offset = self.mismatch_offset(block_index)
        if offset is None:
            return 0
        out = self.output_block(block_index)[offset]
        ref = self.reference_block(block_index)[offset]
        return -1 if out < ref else 1
