"""
Entry point for running laundrylog as a module.

Usage:
    python -m laundrylog [command] [options]
"""

from laundrylog.cli import main

if __name__ == "__main__":
    main()
