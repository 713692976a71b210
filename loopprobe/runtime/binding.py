"""
DeviceBinding: Scoped pair of device buffers over one dataset block.

The write-target aliases the block's output bytes, the read-source aliases
its reference bytes. Only one binding exists at a time, so device memory in
use never exceeds two blocks regardless of dataset size.
"""

import logging
from typing import Any, Optional

from loopprobe.errors import RuntimeAPIError
from loopprobe.interfaces import Accelerator, BufferAccess
from loopprobe.runtime.dataset import Dataset

logger = logging.getLogger(__name__)


class DeviceBinding:
    """
    Owns the two device handles for one block.

    Use as a context manager so both handles are released on every exit
    path, including errors raised mid-dispatch.
    """

    def __init__(self, dataset: Dataset, block_index: int, accelerator: Accelerator):
        self.block_index = block_index
        self.nbytes = dataset.block_length
        self._accelerator = accelerator
        self._released = False

        self.write_target: Any = accelerator.create_buffer(
            dataset.output_block(block_index), BufferAccess.WRITE_ONLY
        )
        try:
            self.read_source: Any = accelerator.create_buffer(
                dataset.reference_block(block_index), BufferAccess.READ_ONLY
            )
        except Exception:
            try:
                accelerator.release_buffer(self.write_target)
            except RuntimeAPIError as e:
                logger.error(f"Block {block_index}: write-target release failed: {e}")
            raise

    def release(self) -> None:
        """
        Release both handles.

        Both releases are attempted; the first failure is re-raised.
        """
        if self._released:
            return
        self._released = True

        first_error: Optional[RuntimeAPIError] = None
        for handle in (self.write_target, self.read_source):
            try:
                self._accelerator.release_buffer(handle)
            except RuntimeAPIError as e:
                logger.error(f"Block {self.block_index}: buffer release failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def __enter__(self) -> "DeviceBinding":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.release()
            return
        # Already unwinding: keep the original error as the one reported.
        try:
            self.release()
        except RuntimeAPIError:
            logger.error(
                f"Block {self.block_index}: release failed while handling {exc_type.__name__}"
            )
