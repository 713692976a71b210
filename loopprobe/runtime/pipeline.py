"""
PipelineDriver: Serial, fail-fast block pipeline for the loopback probe.

For every block, in increasing index order:

    BIND -> DISPATCH -> WAIT -> MAP_BACK -> VERIFY -> RELEASE

One block is fully released before the next is bound, so at most one
DeviceBinding is live. The WAIT step is a hard queue barrier with no timeout.
The first error of any kind moves the driver to FAILED and propagates to the
caller; nothing is retried.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional

from loopprobe.errors import DataMismatch
from loopprobe.interfaces import Accelerator
from loopprobe.report import RunReport
from loopprobe.runtime.binding import DeviceBinding
from loopprobe.runtime.dataset import Dataset
from loopprobe.runtime.timer import Timer

logger = logging.getLogger(__name__)

WRITE_TARGET_ARG = 0
READ_SOURCE_ARG = 1


class PipelineState(Enum):
    IDLE = "idle"
    BIND = "bind"
    DISPATCH = "dispatch"
    WAIT = "wait"
    MAP_BACK = "map_back"
    VERIFY = "verify"
    RELEASE = "release"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineDriver:
    """
    Drives the per-block bind/dispatch/verify cycle over a dataset.

    Args:
        accelerator: Open accelerator to dispatch on
        dataset: Generated dataset to verify
        kernel: Kernel handle returned by accelerator.build_kernel()
        global_size: Work-items per dispatch (same for every block)
        local_size: Work-group size, or None to let the runtime pick
        timer_factory: Creates the per-block Timer
    """

    def __init__(
        self,
        accelerator: Accelerator,
        dataset: Dataset,
        kernel: Any,
        global_size: int,
        local_size: Optional[int] = None,
        timer_factory: Callable[[], Timer] = Timer,
    ):
        self.accelerator = accelerator
        self.dataset = dataset
        self.kernel = kernel
        self.global_size = global_size
        self.local_size = local_size
        self.timer_factory = timer_factory

        self.state = PipelineState.IDLE
        self.report = RunReport(
            block_count=dataset.block_count,
            block_length=dataset.block_length,
        )

    def _enter(self, state: PipelineState, block_index: int) -> None:
        self.state = state
        logger.debug(f"Block {block_index}: {state.value}")

    def process_block(self, block_index: int) -> float:
        """
        Run one block through the pipeline.

        Returns:
            Elapsed seconds from bind to map-back

        Raises:
            RuntimeAPIError: On any accelerator failure
            DataMismatch: If the block did not come back unchanged
        """
        self._enter(PipelineState.BIND, block_index)
        timer = self.timer_factory()
        with DeviceBinding(self.dataset, block_index, self.accelerator) as binding:
            self._enter(PipelineState.DISPATCH, block_index)
            self.accelerator.set_kernel_arg(self.kernel, WRITE_TARGET_ARG, binding.write_target)
            self.accelerator.set_kernel_arg(self.kernel, READ_SOURCE_ARG, binding.read_source)
            self.accelerator.enqueue_kernel(self.kernel, self.global_size, self.local_size)

            self._enter(PipelineState.WAIT, block_index)
            self.accelerator.finish()

            self._enter(PipelineState.MAP_BACK, block_index)
            self.accelerator.map_for_read(binding.write_target, binding.nbytes)
            elapsed = timer.stop()

            self._enter(PipelineState.VERIFY, block_index)
            if self.dataset.compare(block_index):
                raise DataMismatch(
                    block_index,
                    self.dataset.output_block(block_index).tobytes(),
                    self.dataset.reference_block(block_index).tobytes(),
                    self.dataset.mismatch_offset(block_index),
                )

            self._enter(PipelineState.RELEASE, block_index)
        return elapsed

    def run(self) -> RunReport:
        """
        Process every block in order and return the completed report.

        The report is also kept on self.report, so a caller that catches a
        failure can still see which block failed.
        """
        logger.info(
            f"Starting loopback pipeline: {self.dataset.block_count} blocks "
            f"x {self.dataset.block_length} bytes"
        )
        for block_index in range(self.dataset.block_count):
            try:
                elapsed = self.process_block(block_index)
            except DataMismatch as e:
                self.state = PipelineState.FAILED
                self.report.record_mismatch(e)
                logger.debug(f"Block {block_index} failed verification")
                raise
            except Exception as e:
                self.state = PipelineState.FAILED
                self.report.error = str(e)
                logger.debug(f"Block {block_index} aborted")
                raise
            self.report.total_elapsed_s += elapsed
            self.report.blocks_verified += 1

        self.state = PipelineState.COMPLETED
        logger.info(
            f"Pipeline completed: {self.report.blocks_verified} blocks verified "
            f"in {self.report.total_elapsed_s:g}s"
        )
        return self.report
