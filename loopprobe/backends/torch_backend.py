"""
PyTorch backend: Runs the loopback through torch tensors.

- cpu: buffers are torch.from_numpy views, so the device works on the
  dataset's host memory directly (host import semantics)
- gpu: buffers are CUDA tensors; the read-source is uploaded on creation and
  the write-target is copied back into the host array on map_for_read
- acc: no accelerator-class device in torch

There is no program compiler here: kernels are looked up by name in
BUILTIN_KERNELS and the kernel source file is not read.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import numpy as np
import torch

from loopprobe.errors import DeviceUnavailable, RuntimeAPIError
from loopprobe.interfaces import Accelerator, BufferAccess, DeviceType

logger = logging.getLogger(__name__)


def _loopback(out: torch.Tensor, inp: torch.Tensor) -> None:
    out.copy_(inp)


BUILTIN_KERNELS: Dict[str, Callable[[torch.Tensor, torch.Tensor], None]] = {
    "loopback": _loopback,
}


@dataclass
class TorchBuffer:
    host: torch.Tensor
    device_tensor: torch.Tensor
    access: BufferAccess
    released: bool = False


@dataclass
class TorchKernel:
    name: str
    fn: Callable[[torch.Tensor, torch.Tensor], None]
    args: Dict[int, TorchBuffer] = field(default_factory=dict)


@contextmanager
def _torch_call(operation: str):
    """Translate torch runtime errors into RuntimeAPIError."""
    try:
        yield
    except RuntimeError as e:
        raise RuntimeAPIError(operation, str(e)) from e


class TorchAccelerator(Accelerator):
    """A torch device plus its current stream acting as the command queue."""

    def __init__(self, device: torch.device, device_type: DeviceType):
        self.device = device
        self.device_type = device_type
        self._closed = False
        logger.info(f"Torch device: {device}")

    @classmethod
    def open(cls, device_type: DeviceType) -> "TorchAccelerator":
        if device_type is DeviceType.CPU:
            return cls(torch.device("cpu"), device_type)
        if device_type is DeviceType.GPU:
            if not torch.cuda.is_available():
                raise DeviceUnavailable("CUDA not available")
            return cls(torch.device("cuda", torch.cuda.current_device()), device_type)
        raise DeviceUnavailable("torch backend has no accelerator-class device")

    @property
    def _is_cuda(self) -> bool:
        return self.device.type == "cuda"

    def build_kernel(self, kernel_file: str, kernel_name: str, compile_options: str = "") -> Any:
        fn = BUILTIN_KERNELS.get(kernel_name)
        if fn is None:
            raise RuntimeAPIError(
                "create_kernel", f"no built-in torch kernel named '{kernel_name}'"
            )
        logger.info(f"Using built-in torch kernel '{kernel_name}' (ignoring {kernel_file})")
        return TorchKernel(kernel_name, fn)

    def create_buffer(self, host: np.ndarray, access: BufferAccess) -> TorchBuffer:
        with _torch_call("create_buffer"):
            host_tensor = torch.from_numpy(host)
            if not self._is_cuda:
                return TorchBuffer(host_tensor, host_tensor, access)
            if access is BufferAccess.READ_ONLY:
                device_tensor = host_tensor.to(self.device)
            else:
                device_tensor = torch.empty_like(host_tensor, device=self.device)
            return TorchBuffer(host_tensor, device_tensor, access)

    def set_kernel_arg(self, kernel: TorchKernel, index: int, buffer: TorchBuffer) -> None:
        if buffer.released:
            raise RuntimeAPIError("set_kernel_arg", f"argument {index} is a released buffer")
        kernel.args[index] = buffer

    def enqueue_kernel(self, kernel: TorchKernel, global_size: int, local_size: Optional[int] = None) -> None:
        try:
            out, inp = kernel.args[0], kernel.args[1]
        except KeyError as e:
            raise RuntimeAPIError("enqueue_kernel", f"kernel argument {e} not set") from e
        logger.debug(f"Dispatch {kernel.name}: global={global_size} local={local_size}")
        with _torch_call("enqueue_kernel"):
            kernel.fn(out.device_tensor, inp.device_tensor)

    def finish(self) -> None:
        if self._is_cuda:
            with _torch_call("finish"):
                torch.cuda.synchronize(self.device)

    def map_for_read(self, buffer: TorchBuffer, nbytes: int) -> None:
        if not self._is_cuda:
            return
        with _torch_call("map_for_read"):
            buffer.host[:nbytes].copy_(buffer.device_tensor[:nbytes])

    def release_buffer(self, buffer: TorchBuffer) -> None:
        if buffer.released:
            raise RuntimeAPIError("release_buffer", "buffer already released")
        buffer.released = True
        buffer.device_tensor = buffer.host

    def release_kernel(self, kernel: TorchKernel) -> None:
        kernel.args.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._is_cuda:
            with _torch_call("close"):
                torch.cuda.synchronize(self.device)
                torch.cuda.empty_cache()
