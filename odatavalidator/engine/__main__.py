"""
Allow running the validator as a module.

Usage:
    python -m odatavalidator.engine https://host/service
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
