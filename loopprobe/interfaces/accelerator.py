"""
Accelerator: Runtime-agnostic interface for the device under test.

The probe only needs a narrow slice of an accelerator runtime:
- device selection by coarse type, yielding a context and queue
- program build and kernel lookup
- buffers created over host memory (no separate device-side copy where the
  runtime supports it)
- positional kernel arguments, 1-D dispatch, queue barrier
- read-mapping of a buffer back into host-visible memory
- release of every handle

Backends (OpenCL, PyTorch, test stubs) implement this contract; the pipeline
never talks to a runtime library directly.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import numpy as np

from loopprobe.errors import RuntimeAPIError

logger = logging.getLogger(__name__)


class DeviceType(str, Enum):
    """Coarse device classifier accepted on the command line."""
    ACCELERATOR = "acc"
    GPU = "gpu"
    CPU = "cpu"


class BufferAccess(Enum):
    """Device-side access mode of a buffer."""
    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"


class Accelerator(ABC):
    """
    Abstract interface for an accelerator context plus its command queue.

    Implementations must translate every non-success status of the underlying
    runtime into RuntimeAPIError. Instances are context managers: leaving the
    with-block calls close().
    """

    device_type: DeviceType

    @classmethod
    @abstractmethod
    def open(cls, device_type: DeviceType) -> "Accelerator":
        """
        Select a device of the given type and create a context and queue.

        Raises:
            DeviceUnavailable: If no matching device can produce a queue
        """
        pass

    @abstractmethod
    def build_kernel(self, kernel_file: str, kernel_name: str, compile_options: str = "") -> Any:
        """
        Build the program in kernel_file and return the named entry point.

        Raises:
            RuntimeAPIError: If the source cannot be read, built, or the
                symbol is missing
        """
        pass

    @abstractmethod
    def create_buffer(self, host: np.ndarray, access: BufferAccess) -> Any:
        """
        Create a device buffer backed by the host region.

        The device operates on the host memory through the returned handle;
        the caller keeps the host array alive until the buffer is released.
        """
        pass

    @abstractmethod
    def set_kernel_arg(self, kernel: Any, index: int, buffer: Any) -> None:
        """Bind a buffer handle to a positional kernel argument."""
        pass

    @abstractmethod
    def enqueue_kernel(self, kernel: Any, global_size: int, local_size: Optional[int] = None) -> None:
        """Submit a 1-D data-parallel dispatch. Does not wait for completion."""
        pass

    @abstractmethod
    def finish(self) -> None:
        """Block until every command submitted to the queue has completed."""
        pass

    @abstractmethod
    def map_for_read(self, buffer: Any, nbytes: int) -> None:
        """
        Make the device's writes to buffer observable in its host region.

        Blocking. After this returns the host array passed to create_buffer
        holds the buffer contents.
        """
        pass

    @abstractmethod
    def release_buffer(self, buffer: Any) -> None:
        """Release a buffer handle."""
        pass

    @abstractmethod
    def release_kernel(self, kernel: Any) -> None:
        """Release a kernel and the program it came from."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the queue and context. Must be safe to call twice."""
        pass

    def __enter__(self) -> "Accelerator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except RuntimeAPIError as e:
            logger.error(f"Accelerator close failed while handling {exc_type.__name__}: {e}")
