"""
Run the starbridge CLI.

Usage:
    python -m starbridge list
    python -m starbridge play first-contact
"""

import sys

from .interface.cli import main

if __name__ == "__main__":
    sys.exit(main())
