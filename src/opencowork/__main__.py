"""Entry point for running OpenCowork from the terminal.

Usage:
    python -m opencowork --folder ~/projects/report
"""

from opencowork.cli import main

if __name__ == "__main__":
    main()
