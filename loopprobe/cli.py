"""
Loopback probe command-line entry point.

Usage:
    python -m loopprobe -d acc -k kernel.cl -l 1600
    loopprobe --backend torch -d cpu -l 10

Exit codes:
    0    every block came back unchanged (PASSED TEST)
    1    a block mismatched or the accelerator reported an error (FAILED TEST)
    255  bad device type / configuration, or no device could be opened;
         nothing was dispatched
"""

import argparse
import logging
from typing import Callable, List, Optional, TextIO

from loopprobe.backends import open_accelerator
from loopprobe.config import ProbeConfig, get_config, load_config, set_config
from loopprobe.errors import ArgumentError, DataMismatch, DeviceUnavailable, ProbeError
from loopprobe.interfaces import Accelerator, DeviceType
from loopprobe.report import ReportWriter
from loopprobe.runtime import Dataset, PipelineDriver

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_SETUP_ERROR = 255

AcceleratorFactory = Callable[[str, DeviceType], Accelerator]


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_device_type(value: str) -> DeviceType:
    try:
        return DeviceType(value)
    except ValueError:
        raise ArgumentError(f"Incorrect platform specified: '{value}'") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loopprobe",
        description="Loopback kernel correctness and latency probe",
    )
    parser.add_argument('-d', '--device', dest='device_type',
                        help='Device type: gpu, cpu or acc (default: acc)')
    parser.add_argument('-k', '--kernel', dest='kernel_file',
                        help='Kernel source file (default: kernel.cl)')
    parser.add_argument('-i', '--iteration', dest='iterations', type=int,
                        help='Iteration count (accepted, currently unused)')
    parser.add_argument('-l', '--length', dest='block_count', type=int,
                        help='Number of blocks to send through the kernel (default: 1600)')
    parser.add_argument('-v', '--verbose', action='store_true', default=None,
                        help='Verbose flag (accepted, currently unused)')
    parser.add_argument('-c', '--config', default=None,
                        help='YAML configuration file; flags override its values')
    parser.add_argument('--backend',
                        help='Accelerator backend: opencl or torch (default: opencl)')
    parser.add_argument('--seed', type=int,
                        help='Fixed dataset seed (default: current time)')
    parser.add_argument('--log-level', dest='log_level',
                        help='Logging level (default: warning)')
    return parser


def _resolve_config(args: argparse.Namespace) -> ProbeConfig:
    base = load_config(args.config) if args.config else get_config()
    overrides = {
        key: value for key, value in vars(args).items() if key != 'config'
    }
    return base.merged(overrides)


def run_probe(
    config: ProbeConfig,
    accelerator: Accelerator,
    device_type: DeviceType,
    writer: ReportWriter,
) -> int:
    """
    Generate the dataset, build the kernel and run the block pipeline.

    Owns the accelerator from here on: it is closed before returning.
    """
    global_size = config.work_group_size
    local_size = config.work_group_size if device_type is DeviceType.ACCELERATOR else None

    try:
        with accelerator:
            dataset = Dataset(config.total_length, config.block_length, seed=config.seed)
            kernel = accelerator.build_kernel(
                config.kernel_file, config.kernel_name, config.build_options
            )
            writer.sizes(config.block_length, config.block_count, global_size, local_size)
            try:
                driver = PipelineDriver(
                    accelerator, dataset, kernel,
                    global_size=global_size, local_size=local_size,
                )
                report = driver.run()
            finally:
                accelerator.release_kernel(kernel)
    except DataMismatch as e:
        logger.error(f"Probe failed: {e}")
        writer.mismatch(e)
        writer.failed(str(e))
        return EXIT_FAILED
    except (ProbeError, MemoryError) as e:
        logger.error(f"Probe failed: {e}")
        writer.failed(str(e) or type(e).__name__)
        return EXIT_FAILED
    except Exception as e:
        logger.error(f"Probe failed with unexpected {type(e).__name__}: {e}", exc_info=True)
        writer.failed(str(e) or type(e).__name__)
        return EXIT_FAILED

    writer.passed(report)
    return EXIT_PASSED


def main(
    argv: Optional[List[str]] = None,
    accelerator_factory: AcceleratorFactory = open_accelerator,
    stream: Optional[TextIO] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    writer = ReportWriter(stream)

    try:
        config = _resolve_config(args)
    except (OSError, ValueError) as e:
        writer.line(f"Invalid configuration: {e}")
        parser.print_help(writer.stream)
        return EXIT_SETUP_ERROR
    set_config(config)
    configure_logging(config.log_level)

    try:
        device_type = parse_device_type(config.device_type)
        logger.info(f"Device type: {device_type.value}, backend: {config.backend}")
        logger.info(f"Kernel: {config.kernel_name} from {config.kernel_file}")
        logger.info(f"Iterations: {config.iterations}, verbose: {config.verbose}")
        accelerator = accelerator_factory(config.backend, device_type)
    except ArgumentError as e:
        logger.error(str(e))
        writer.line(str(e))
        parser.print_help(writer.stream)
        return EXIT_SETUP_ERROR
    except DeviceUnavailable as e:
        logger.error(f"Device unavailable: {e}")
        writer.line(f"Device unavailable: {e}")
        return EXIT_SETUP_ERROR

    return run_probe(config, accelerator, device_type, writer)
