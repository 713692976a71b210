"""
Pluggable accelerator backends.

- opencl: pyopencl, any OpenCL platform (default)
- torch: PyTorch on CPU or CUDA

Backends are resolved by dotted class path and imported lazily, so a host
without pyopencl can still run the torch backend and vice versa.
"""

import importlib
import logging
from typing import Dict, Type

from loopprobe.errors import ArgumentError, DeviceUnavailable
from loopprobe.interfaces import Accelerator, DeviceType

logger = logging.getLogger(__name__)

BACKENDS: Dict[str, str] = {
    "opencl": "loopprobe.backends.opencl.OpenCLAccelerator",
    "torch": "loopprobe.backends.torch_backend.TorchAccelerator",
}


def resolve_backend(name: str) -> Type[Accelerator]:
    """Import and return the Accelerator class registered under name."""
    try:
        dotted = BACKENDS[name]
    except KeyError:
        raise ArgumentError(
            f"Unknown backend '{name}' (choose from {', '.join(sorted(BACKENDS))})"
        ) from None

    module_name, class_name = dotted.rsplit(".", 1)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise DeviceUnavailable(f"Backend '{name}' is not installed: {e}") from e
    return getattr(module, class_name)


def open_accelerator(backend: str, device_type: DeviceType) -> Accelerator:
    """Open a device of the given type on the named backend."""
    accelerator_cls = resolve_backend(backend)
    logger.info(f"Opening {backend} backend, device type '{device_type.value}'")
    return accelerator_cls.open(device_type)


__all__ = ["BACKENDS", "open_accelerator", "resolve_backend"]
