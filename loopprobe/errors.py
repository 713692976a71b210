"""
Error taxonomy for the loopback probe.

Every failure unwinds to the CLI top level, which is the only place that
prints diagnostics and picks the exit code:
- ArgumentError: bad device type, backend name or configuration
- DeviceUnavailable: no command queue could be acquired
- RuntimeAPIError: any non-success status from the accelerator
- DataMismatch: a block came back different from its reference
"""

from typing import Optional


class ProbeError(Exception):
    """Base class for all probe failures."""


class ArgumentError(ProbeError):
    """Invalid command-line or configuration value."""


class DeviceUnavailable(ProbeError):
    """The accelerator backend could not produce a context and queue."""


class RuntimeAPIError(ProbeError):
    """
    Non-success status returned by the accelerator runtime.

    Args:
        operation: Name of the failing call (e.g. "create_buffer")
        detail: Human-readable description of the status
    """

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class DataMismatch(ProbeError):
    """Output block differs from the reference block."""

    def __init__(
        self,
        block_index: int,
        output: bytes,
        reference: bytes,
        offset: Optional[int] = None,
    ):
        self.block_index = block_index
        self.output = output
        self.reference = reference
        self.offset = offset
        message = f"Incorrect data from kernel in block {block_index}"
        if offset is not None:
            message += f" (first difference at byte {offset})"
        super().__init__(message)
