"""
Loopprobe: correctness and latency probe for accelerator loopback kernels.

The accelerator is expected to copy each input block to its output block
unchanged. The probe generates a dataset, pushes it through the kernel one
block at a time, verifies every block and reports the accumulated time.
"""

from .config import ProbeConfig, get_config, load_config, set_config
from .errors import ArgumentError, DataMismatch, DeviceUnavailable, ProbeError, RuntimeAPIError
from .report import RunReport
from .runtime import Dataset, DeviceBinding, PipelineDriver, PipelineState, Timer

__all__ = [
    "ArgumentError",
    "DataMismatch",
    "Dataset",
    "DeviceBinding",
    "DeviceUnavailable",
    "PipelineDriver",
    "PipelineState",
    "ProbeConfig",
    "ProbeError",
    "RunReport",
    "RuntimeAPIError",
    "Timer",
    "get_config",
    "load_config",
    "set_config",
]
