#!/usr/bin/env python3
"""
Commit Engine Entry Point

This script starts Git Chronos with settings taken from flags and the
environment.
"""

from services.commit_engine.cli import chronos


def main():
    """Start the Commit Engine."""
    chronos(prog_name="git-chronos")


if __name__ == "__main__":
    main()
