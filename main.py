#!/usr/bin/env python3
"""
RedZone - Fantasy Football Content Ingestion
============================================

Main application entry point. Equivalent to the ``redzone`` console script.

Usage:
    python main.py --help
    python main.py init-db
    python main.py ingest
    python main.py serve
"""

import sys
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent))

from redzone.cli import cli

if __name__ == '__main__':
    cli()
