"""
Shared test fixtures.

FakeAccelerator emulates a loopback device in pure numpy: enqueue_kernel
records the dispatch and finish() performs the copy, so the output host
region only changes at the wait barrier, like an asynchronous queue.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

import loopprobe.config
from loopprobe.errors import DeviceUnavailable, RuntimeAPIError
from loopprobe.interfaces import Accelerator, BufferAccess, DeviceType


@dataclass
class FakeBuffer:
    host: np.ndarray
    access: BufferAccess
    released: bool = False


@dataclass
class FakeKernel:
    name: str
    args: Dict[int, FakeBuffer]


class FakeAccelerator(Accelerator):
    """
    Loopback stub with fault injection.

    Args:
        corrupt_block: Dispatch index whose output gets one flipped byte
        fail_wait_on: Dispatch index whose finish() reports an error
        fail_release: Make every release_buffer() fail
    """

    def __init__(
        self,
        device_type: DeviceType = DeviceType.CPU,
        corrupt_block: Optional[int] = None,
        fail_wait_on: Optional[int] = None,
        fail_release: bool = False,
    ):
        self.device_type = device_type
        self.corrupt_block = corrupt_block
        self.fail_wait_on = fail_wait_on
        self.fail_release = fail_release

        self.calls: List[tuple] = []
        self.live_buffers = 0
        self.max_live_buffers = 0
        self.created = 0
        self.released = 0
        self.dispatches = 0
        self.closed = False
        self._pending: List[FakeKernel] = []

    @classmethod
    def open(cls, device_type: DeviceType) -> "FakeAccelerator":
        return cls(device_type)

    def build_kernel(self, kernel_file: str, kernel_name: str, compile_options: str = "") -> Any:
        self.calls.append(("build_kernel", kernel_file, kernel_name, compile_options))
        return FakeKernel(kernel_name, {})

    def create_buffer(self, host: np.ndarray, access: BufferAccess) -> FakeBuffer:
        self.calls.append(("create_buffer", access))
        self.created += 1
        self.live_buffers += 1
        self.max_live_buffers = max(self.max_live_buffers, self.live_buffers)
        return FakeBuffer(host, access)

    def set_kernel_arg(self, kernel: FakeKernel, index: int, buffer: FakeBuffer) -> None:
        self.calls.append(("set_kernel_arg", index, buffer.access))
        kernel.args[index] = buffer

    def enqueue_kernel(self, kernel: FakeKernel, global_size: int, local_size: Optional[int] = None) -> None:
        self.calls.append(("enqueue_kernel", global_size, local_size))
        self._pending.append(FakeKernel(kernel.name, dict(kernel.args)))

    def finish(self) -> None:
        index = self.dispatches
        self.calls.append(("finish", index))
        if self.fail_wait_on == index:
            self._pending.clear()
            raise RuntimeAPIError("finish", "CL_OUT_OF_RESOURCES")
        for kernel in self._pending:
            out, inp = kernel.args[0], kernel.args[1]
            out.host[:] = inp.host
            if self.corrupt_block == index:
                out.host[0] ^= 0xFF
            self.dispatches += 1
        self._pending.clear()

    def map_for_read(self, buffer: FakeBuffer, nbytes: int) -> None:
        self.calls.append(("map_for_read", nbytes))

    def release_buffer(self, buffer: FakeBuffer) -> None:
        self.calls.append(("release_buffer", buffer.access))
        if self.fail_release:
            raise RuntimeAPIError("release_mem_object", "CL_INVALID_MEM_OBJECT")
        buffer.released = True
        self.released += 1
        self.live_buffers -= 1

    def release_kernel(self, kernel: FakeKernel) -> None:
        self.calls.append(("release_kernel", kernel.name))

    def close(self) -> None:
        self.closed = True

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class RecordingFactory:
    """Accelerator factory for cli.main() that remembers how it was used."""

    def __init__(self, accelerator: Optional[FakeAccelerator] = None, unavailable: bool = False):
        self.accelerator = accelerator or FakeAccelerator()
        self.unavailable = unavailable
        self.requests: List[tuple] = []

    def __call__(self, backend: str, device_type: DeviceType) -> FakeAccelerator:
        self.requests.append((backend, device_type))
        if self.unavailable:
            raise DeviceUnavailable("no queue")
        self.accelerator.device_type = device_type
        return self.accelerator


@pytest.fixture(autouse=True)
def reset_global_config():
    loopprobe.config._global_config = None
    yield
    loopprobe.config._global_config = None


@pytest.fixture
def fake_accelerator():
    return FakeAccelerator()
