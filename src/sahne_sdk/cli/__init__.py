"""
Sahne64 SDK Command-Line Interface
==================================

This package provides command-line tools for the Sahne64 SDK:

- **sasmc**: Sahne64 assembly compiler

Each tool is implemented as a Click-based CLI application with
comprehensive help and error reporting.
"""

__all__ = ["sasmc"]
