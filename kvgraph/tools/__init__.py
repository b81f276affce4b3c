"""
CLI tools for kvgraph.

This module provides command-line tools for:
- inspect: Read-only inspection of keyspaces and stored records

Invariants:
    - Tools never write to the store
"""

from .inspect_cli import InspectCLI

__all__ = ["InspectCLI"]
