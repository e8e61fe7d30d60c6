"""
Record codec: typed values <-> record trees <-> config file text.

Modules:
- models: Record tree node, type tag helpers, Credential value type
- primitive: scalar values <-> canonical text per type tag
- composite: arrays, maps, credentials; full encode/collapse passes
- envelope: DPAPI (user-bound) and AES256 (password) envelopes
- text: line-oriented join/split of record sequences
"""

from .composite import collapse, encode
from .models import Credential, Record, RecordKind, Scheme
from .text import join, split

__all__ = [
    "Credential",
    "Record",
    "RecordKind",
    "Scheme",
    "collapse",
    "encode",
    "join",
    "split",
]
