#!/usr/bin/env python3
"""
PID probe - main entrypoint
Attempts to spawn TARGET_PID_COUNT placeholder processes and reports how
many the environment allowed before refusing.

Usage:
    TARGET_PID_COUNT=100 python main.py
    python main.py --count 100 --json

Or run directly after making executable:
    chmod +x main.py
    ./main.py --count 100
"""

import sys
import os

# Add project root directory to the import path
project_root = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, project_root)

from pidprobe.cli import main


if __name__ == "__main__":
    main()
