"""
Loopprobe extensibility interfaces.

- Accelerator: the runtime a loopback kernel is dispatched on
- DeviceType: coarse device classifier (acc/gpu/cpu)
- BufferAccess: read-only / write-only buffer modes
"""

from .accelerator import Accelerator, BufferAccess, DeviceType

__all__ = [
    "Accelerator",
    "BufferAccess",
    "DeviceType",
]
