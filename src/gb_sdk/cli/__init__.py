"""
Game Boy SDK Command-Line Interface
===================================

This package provides command-line tools for the Game Boy SDK:

- **gbasm**: LR35902 assembler
- **gbobj**: Library container inspector

Each tool is implemented as a Click-based CLI application.
"""

__all__ = ["gbasm", "gbobj"]
