"""
Probe configuration.

Defaults reproduce the classic loopback bring-up test: 1600 blocks of
128 work-items x 64 bytes (8 KB per block) dispatched on an accelerator-class
OpenCL device with the `loopback` kernel from kernel.cl.

Values can come from a YAML file (see load_config) and are overridden by
command-line flags.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 128
MAX_PATH_LENGTH = 4096


@dataclass
class ProbeConfig:
    """Everything the probe needs to run, minus the accelerator itself."""
    device_type: str = "acc"
    backend: str = "opencl"
    kernel_file: str = "kernel.cl"
    kernel_name: str = "loopback"
    compile_options: str = ""
    block_count: int = 1600
    work_group_size: int = 128
    work_item_bytes: int = 64
    # Accepted for compatibility, never consulted by the dispatch loop.
    iterations: int = 5
    verbose: bool = False
    seed: Optional[int] = None
    log_level: str = "warning"

    def __post_init__(self):
        if self.block_count < 0:
            raise ValueError(f"block_count must be >= 0, got {self.block_count}")
        if self.work_group_size <= 0:
            raise ValueError(f"work_group_size must be > 0, got {self.work_group_size}")
        if self.work_item_bytes <= 0:
            raise ValueError(f"work_item_bytes must be > 0, got {self.work_item_bytes}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")
        if not self.kernel_name or len(self.kernel_name) > MAX_NAME_LENGTH:
            raise ValueError(
                f"kernel_name must be 1-{MAX_NAME_LENGTH} characters, got {self.kernel_name!r}"
            )
        if not self.kernel_file or len(self.kernel_file) > MAX_PATH_LENGTH:
            raise ValueError(f"kernel_file must be 1-{MAX_PATH_LENGTH} characters")
        if len(self.compile_options) > MAX_PATH_LENGTH:
            raise ValueError(f"compile_options longer than {MAX_PATH_LENGTH} characters")

    @property
    def block_length(self) -> int:
        """Bytes per block: one dispatch covers the whole work-group."""
        return self.work_group_size * self.work_item_bytes

    @property
    def total_length(self) -> int:
        return self.block_count * self.block_length

    @property
    def build_options(self) -> str:
        """Compile options with the per-work-item byte count pinned for the kernel."""
        return f"-DBLOCK_BYTES={self.work_item_bytes} {self.compile_options}".strip()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProbeConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def merged(self, overrides: Dict[str, Any]) -> "ProbeConfig":
        """Return a copy with every non-None override applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ProbeConfig.from_dict(values)


def load_config(path: Union[str, Path]) -> ProbeConfig:
    """Load a ProbeConfig from a YAML file. An empty file yields defaults."""
    path = Path(path)
    with path.open() as handle:
        try:
            payload = yaml.safe_load(handle) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    logger.info(f"Loaded probe configuration from {path}")
    return ProbeConfig.from_dict(payload)


# Global singleton instance
_global_config: Optional[ProbeConfig] = None


def get_config() -> ProbeConfig:
    """Get or create the process-wide configuration."""
    global _global_config

    if _global_config is None:
        _global_config = ProbeConfig()

    return _global_config


def set_config(config: ProbeConfig) -> None:
    """Replace the process-wide configuration."""
    global _global_config
    _global_config = config
