"""
OpenCL backend: Runs the loopback kernel through pyopencl.

Buffers are created with USE_HOST_PTR so the device works directly on the
dataset's host memory; the blocking read-map after each dispatch is what
makes the kernel's writes visible in the host array.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pyopencl as cl

from loopprobe.errors import DeviceUnavailable, RuntimeAPIError
from loopprobe.interfaces import Accelerator, BufferAccess, DeviceType

logger = logging.getLogger(__name__)

_CL_DEVICE_TYPES = {
    DeviceType.ACCELERATOR: cl.device_type.ACCELERATOR,
    DeviceType.GPU: cl.device_type.GPU,
    DeviceType.CPU: cl.device_type.CPU,
}


@contextmanager
def _cl_call(operation: str):
    """Translate pyopencl errors into RuntimeAPIError."""
    try:
        yield
    except cl.Error as e:
        raise RuntimeAPIError(operation, str(e)) from e


class OpenCLAccelerator(Accelerator):
    """One OpenCL device with its own context and in-order queue."""

    def __init__(self, device: Any, device_type: DeviceType):
        self.device = device
        self.device_type = device_type
        with _cl_call("create_context"):
            self.context = cl.Context([device])
        with _cl_call("create_command_queue"):
            self.queue = cl.CommandQueue(self.context, device)
        logger.info(f"OpenCL device: {device.name.strip()} ({device.platform.name.strip()})")

    @classmethod
    def open(cls, device_type: DeviceType) -> "OpenCLAccelerator":
        """Pick the first device of the requested type across all platforms."""
        try:
            platforms = cl.get_platforms()
        except cl.Error as e:
            raise DeviceUnavailable(f"No OpenCL platforms: {e}") from e

        for platform in platforms:
            try:
                devices = platform.get_devices(device_type=_CL_DEVICE_TYPES[device_type])
            except cl.Error:
                # Platforms report DEVICE_NOT_FOUND as an error.
                continue
            if devices:
                try:
                    return cls(devices[0], device_type)
                except RuntimeAPIError as e:
                    raise DeviceUnavailable(str(e)) from e

        raise DeviceUnavailable(f"No OpenCL device of type '{device_type.value}' found")

    def build_kernel(self, kernel_file: str, kernel_name: str, compile_options: str = "") -> Any:
        try:
            source = Path(kernel_file).read_text()
        except OSError as e:
            raise RuntimeAPIError("read_kernel_source", f"{kernel_file}: {e}") from e

        with _cl_call("build_program"):
            program = cl.Program(self.context, source).build(options=compile_options)
        with _cl_call("create_kernel"):
            kernel = cl.Kernel(program, kernel_name)
        logger.info(f"Built kernel '{kernel_name}' from {kernel_file}")
        return kernel

    def create_buffer(self, host: np.ndarray, access: BufferAccess) -> Any:
        mf = cl.mem_flags
        flags = mf.USE_HOST_PTR | (
            mf.WRITE_ONLY if access is BufferAccess.WRITE_ONLY else mf.READ_ONLY
        )
        with _cl_call("create_buffer"):
            return cl.Buffer(self.context, flags, hostbuf=host)

    def set_kernel_arg(self, kernel: Any, index: int, buffer: Any) -> None:
        with _cl_call("set_kernel_arg"):
            kernel.set_arg(index, buffer)

    def enqueue_kernel(self, kernel: Any, global_size: int, local_size: Optional[int] = None) -> None:
        local = (local_size,) if local_size is not None else None
        with _cl_call("enqueue_nd_range_kernel"):
            cl.enqueue_nd_range_kernel(self.queue, kernel, (global_size,), local)

    def finish(self) -> None:
        with _cl_call("finish"):
            self.queue.finish()

    def map_for_read(self, buffer: Any, nbytes: int) -> None:
        with _cl_call("enqueue_map_buffer"):
            mapped, _ = cl.enqueue_map_buffer(
                self.queue, buffer, cl.map_flags.READ, 0, (nbytes,), np.uint8,
                is_blocking=True,
            )
        # Host array is synchronized once the blocking map returns.
        with _cl_call("enqueue_unmap_mem_object"):
            mapped.base.release(self.queue)
            self.queue.finish()

    def release_buffer(self, buffer: Any) -> None:
        with _cl_call("release_mem_object"):
            buffer.release()

    def release_kernel(self, kernel: Any) -> None:
        # pyopencl frees kernels and programs when the last reference drops.
        logger.debug(f"Releasing kernel {kernel.function_name}")

    def close(self) -> None:
        if self.queue is None:
            return
        with _cl_call("finish"):
            self.queue.finish()
        self.queue = None
        self.context = None
        logger.debug("OpenCL queue and context released")
