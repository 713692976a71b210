"""
Run report and its plain-text rendering.

The text lines written here are the probe's user-facing output and go to
stdout (or any stream), never through logging.
"""

import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from loopprobe.errors import DataMismatch


@dataclass
class RunReport:
    """Outcome of one pass over the dataset."""
    block_count: int
    block_length: int
    total_elapsed_s: float = 0.0
    blocks_verified: int = 0
    failed_block: Optional[int] = None
    failed_output: Optional[bytes] = None
    failed_reference: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return (
            self.error is None
            and self.failed_block is None
            and self.blocks_verified == self.block_count
        )

    def record_mismatch(self, mismatch: DataMismatch) -> None:
        self.failed_block = mismatch.block_index
        self.failed_output = mismatch.output
        self.failed_reference = mismatch.reference
        self.error = str(mismatch)


class ReportWriter:
    """Writes the probe's report lines to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout

    def line(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()

    def sizes(self, block_length: int, block_count: int, global_size: int,
              local_size: Optional[int]) -> None:
        self.line(f"Block buffer size = {block_length // 1024} KB")
        self.line(f"Block buffer count = {block_count}")
        self.line(f"Total buffer size = {block_length * block_count // 1024} KB")
        self.line(f"Global size = {global_size}")
        if local_size is not None:
            self.line(f"Local size = {local_size}")

    def raw(self, label: str, data: bytes) -> None:
        """Write label followed by data byte-for-byte, NULs included."""
        self.stream.write(label)
        self.stream.flush()
        binary = getattr(self.stream, "buffer", None)
        if binary is not None:
            binary.write(data)
            binary.flush()
        else:
            self.stream.write(data.decode("latin-1"))
        self.line("")

    def mismatch(self, mismatch: DataMismatch) -> None:
        self.raw("Output: ", mismatch.output)
        self.raw("Reference: ", mismatch.reference)

    def passed(self, report: RunReport) -> None:
        self.line(f"Kernel time: {report.total_elapsed_s:g} sec")
        self.line("PASSED TEST")

    def failed(self, message: str) -> None:
        self.line(f"Exception: {message}")
        self.line("FAILED TEST")
