"""
Host-side runtime of the loopback probe.

- Dataset: reference/output sequences split into blocks
- DeviceBinding: scoped device buffers for one block
- Timer: whole-second elapsed time
- PipelineDriver: serial bind/dispatch/wait/verify loop
"""

from .binding import DeviceBinding
from .dataset import ALPHABET, Dataset
from .pipeline import PipelineDriver, PipelineState
from .timer import Timer

__all__ = [
    "ALPHABET",
    "Dataset",
    "DeviceBinding",
    "PipelineDriver",
    "PipelineState",
    "Timer",
]
