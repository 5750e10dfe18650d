#!/usr/bin/env python3
"""
Study Chat - entry point

Validates the Python version and launches the command-line interface.

Usage:
    python3 main.py [chat]
    python3 main.py serve [--host HOST] [--port PORT] [--reload]
"""

import sys


# ============================================================================
# Constants
# ============================================================================

PYTHON_MIN_VERSION = (3, 9)


def check_python_version() -> None:
    """
    Validate that we're running on a supported Python version.

    Exits with error code 1 if version is insufficient.
    """
    if sys.version_info < PYTHON_MIN_VERSION:
        major, minor = PYTHON_MIN_VERSION
        current_major, current_minor = sys.version_info.major, sys.version_info.minor

        print(f"Error: Python {major}.{minor}+ is required")
        print(f"You are running: Python {current_major}.{current_minor}")
        print(f"\nPlease install Python {major}.{minor} or higher from:")
        print("https://www.python.org/downloads/")
        sys.exit(1)


def main() -> None:
    """Main application entry point."""
    try:
        # Imported late so the version check runs first
        from study_chat.cli import main as cli_main

        cli_main(sys.argv[1:])

    except KeyboardInterrupt:
        print("\n\nInterrupted by user. Exiting...")
        sys.exit(0)
    except Exception as e:
        print(f"\nFatal error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    check_python_version()
    main()
