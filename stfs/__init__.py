"""
stfs: read STFS (CON/LIVE/PIRS) packages without rewriting them.

Features:

- Logical block -> physical offset translation across interleaved hash tables.
- Block chain traversal with terminator, self-loop and cycle detection.
- File table parsing, path reconstruction and file extraction.
- Header metadata, thumbnails, and cosmetic re-signing.
- Read-only level-0 block hash verification.

Everything operates on a package held in memory; see stfs.container.Container.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "container",
    "translate",
    "chain",
    "table",
    "extract",
    "header",
    "verify",
]

# Programmatic API: load with stfs.container.Container and pass it to the
# functions in stfs.table / stfs.extract; the CLI lives in stfs.cli.
