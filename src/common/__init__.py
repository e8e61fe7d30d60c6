"""
Shared helpers for the config codec and store.

Modules:
- errors: typed error taxonomy (IoError, ParseError, DecodeError, ...)
- names: record name validation and comparison
- atomic: whole-file replacement for the write path
"""

__all__ = [
    "atomic",
    "errors",
    "names",
]
