"""
Tests for the device binding and the block pipeline.

Tests:
- DeviceBinding lifecycle and release-on-error
- PipelineDriver end-to-end against the numpy loopback stub
- Fail-fast behaviour on data mismatch and runtime errors
"""

import pytest

from conftest import FakeAccelerator
from loopprobe.errors import DataMismatch, RuntimeAPIError
from loopprobe.interfaces import Accelerator, BufferAccess
from loopprobe.runtime import Dataset, DeviceBinding, PipelineDriver, PipelineState, Timer


def make_driver(accelerator, block_count=10, block_length=64, **kwargs):
    dataset = Dataset(block_count * block_length, block_length, seed=11)
    kernel = accelerator.build_kernel("kernel.cl", "loopback")
    return PipelineDriver(accelerator, dataset, kernel, global_size=1, **kwargs)


def test_accelerator_interface_is_abstract():
    with pytest.raises(TypeError):
        Accelerator()


# DeviceBinding

def test_binding_creates_write_target_then_read_source(fake_accelerator):
    dataset = Dataset(4 * 16, 16, seed=0)

    with DeviceBinding(dataset, 1, fake_accelerator) as binding:
        assert binding.write_target.access is BufferAccess.WRITE_ONLY
        assert binding.read_source.access is BufferAccess.READ_ONLY
        assert binding.write_target.host.base is dataset.output
        assert binding.read_source.host.base is dataset.reference
        assert fake_accelerator.live_buffers == 2

    assert fake_accelerator.live_buffers == 0


def test_binding_released_when_body_raises(fake_accelerator):
    dataset = Dataset(16, 16, seed=0)

    with pytest.raises(RuntimeError):
        with DeviceBinding(dataset, 0, fake_accelerator):
            raise RuntimeError("dispatch failed")

    assert fake_accelerator.live_buffers == 0


def test_binding_release_failure_propagates():
    accelerator = FakeAccelerator(fail_release=True)
    dataset = Dataset(16, 16, seed=0)
    binding = DeviceBinding(dataset, 0, accelerator)

    with pytest.raises(RuntimeAPIError):
        binding.release()
    # Both handles were attempted.
    assert accelerator.call_names().count("release_buffer") == 2


def test_binding_release_failure_does_not_mask_original_error():
    accelerator = FakeAccelerator(fail_release=True)
    dataset = Dataset(16, 16, seed=0)

    with pytest.raises(ValueError):
        with DeviceBinding(dataset, 0, accelerator):
            raise ValueError("original")


def test_binding_releases_first_buffer_if_second_fails(fake_accelerator, monkeypatch):
    dataset = Dataset(16, 16, seed=0)
    original = fake_accelerator.create_buffer

    def create_buffer(host, access):
        if access is BufferAccess.READ_ONLY:
            raise RuntimeAPIError("create_buffer", "CL_MEM_OBJECT_ALLOCATION_FAILURE")
        return original(host, access)

    monkeypatch.setattr(fake_accelerator, "create_buffer", create_buffer)

    with pytest.raises(RuntimeAPIError):
        DeviceBinding(dataset, 0, fake_accelerator)
    assert fake_accelerator.live_buffers == 0


def test_binding_keeps_create_error_when_cleanup_release_fails(monkeypatch, caplog):
    accelerator = FakeAccelerator(fail_release=True)
    dataset = Dataset(16, 16, seed=0)
    original = accelerator.create_buffer

    def create_buffer(host, access):
        if access is BufferAccess.READ_ONLY:
            raise RuntimeAPIError("create_buffer", "CL_MEM_OBJECT_ALLOCATION_FAILURE")
        return original(host, access)

    monkeypatch.setattr(accelerator, "create_buffer", create_buffer)

    with pytest.raises(RuntimeAPIError, match="CL_MEM_OBJECT_ALLOCATION_FAILURE") as excinfo:
        DeviceBinding(dataset, 0, accelerator)
    assert excinfo.value.operation == "create_buffer"
    assert accelerator.call_names().count("release_buffer") == 1
    assert "write-target release failed" in caplog.text


# PipelineDriver

def test_pipeline_passes_with_loopback_stub(fake_accelerator):
    """Scenario: 10 blocks of 64 bytes copied unchanged."""
    driver = make_driver(fake_accelerator)
    report = driver.run()

    assert report.passed
    assert report.blocks_verified == 10
    assert driver.state is PipelineState.COMPLETED
    for i in range(10):
        assert driver.dataset.compare(i) == 0


def test_pipeline_binds_one_block_at_a_time(fake_accelerator):
    driver = make_driver(fake_accelerator)
    driver.run()

    assert fake_accelerator.created == 20
    assert fake_accelerator.released == 20
    assert fake_accelerator.max_live_buffers == 2


def test_pipeline_step_order(fake_accelerator):
    driver = make_driver(fake_accelerator, block_count=1, local_size=128)
    driver.run()

    assert fake_accelerator.calls[1:] == [
        ("create_buffer", BufferAccess.WRITE_ONLY),
        ("create_buffer", BufferAccess.READ_ONLY),
        ("set_kernel_arg", 0, BufferAccess.WRITE_ONLY),
        ("set_kernel_arg", 1, BufferAccess.READ_ONLY),
        ("enqueue_kernel", 1, 128),
        ("finish", 0),
        ("map_for_read", 64),
        ("release_buffer", BufferAccess.WRITE_ONLY),
        ("release_buffer", BufferAccess.READ_ONLY),
    ]


def test_pipeline_total_time_is_sum_of_block_times(fake_accelerator):
    durations = iter([2.0, 0.0, 5.0])

    class StepTimer(Timer):
        def __init__(self):
            self._elapsed = next(durations)

        def stop(self):
            return self._elapsed

    driver = make_driver(fake_accelerator, block_count=3, timer_factory=StepTimer)
    report = driver.run()

    assert report.total_elapsed_s == 7.0


def test_pipeline_empty_dataset(fake_accelerator):
    """Scenario: zero blocks means zero iterations and a pass."""
    driver = make_driver(fake_accelerator, block_count=0)
    report = driver.run()

    assert report.passed
    assert report.total_elapsed_s == 0
    assert fake_accelerator.created == 0


def test_pipeline_stops_at_corrupted_block():
    """Scenario: one flipped byte in block 3 aborts the run there."""
    accelerator = FakeAccelerator(corrupt_block=3)
    driver = make_driver(accelerator)

    with pytest.raises(DataMismatch) as excinfo:
        driver.run()

    mismatch = excinfo.value
    assert mismatch.block_index == 3
    assert mismatch.offset == 0
    assert mismatch.output == driver.dataset.output_block(3).tobytes()
    assert mismatch.reference == driver.dataset.reference_block(3).tobytes()
    assert mismatch.output != mismatch.reference

    assert driver.state is PipelineState.FAILED
    assert driver.report.failed_block == 3
    assert driver.report.blocks_verified == 3
    assert not driver.report.passed
    assert accelerator.call_names().count("enqueue_kernel") == 4
    assert accelerator.live_buffers == 0
    assert not driver.dataset.output_block(4).any()


def test_pipeline_aborts_on_wait_failure():
    """Scenario: the queue barrier fails on block 2; block 2 is never verified."""
    accelerator = FakeAccelerator(fail_wait_on=2)
    driver = make_driver(accelerator)

    with pytest.raises(RuntimeAPIError):
        driver.run()

    assert driver.state is PipelineState.FAILED
    assert driver.report.blocks_verified == 2
    assert driver.report.failed_block is None
    assert "finish" in driver.report.error
    assert accelerator.call_names().count("map_for_read") == 2
    assert accelerator.live_buffers == 0
