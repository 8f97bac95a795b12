#!/usr/bin/env python3
"""
Ubazol state core - Main Entrypoint

USAGE:
    python main.py demo --backend memory
    python main.py orders --config config --active
    python main.py track 1760869845123 --config config
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from ubazol.runtime.cli import main


if __name__ == '__main__':
    sys.exit(main())
