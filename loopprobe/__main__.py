"""
Entry point for running the probe as a module.

Usage: python -m loopprobe -d acc -k kernel.cl
"""

import sys

from loopprobe.cli import main

if __name__ == "__main__":
    sys.exit(main())
