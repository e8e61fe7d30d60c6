"""
Config store backed by a human-editable text file.

`ConfigStore` holds one file's record tree and mediates between the codec and
a caller-supplied `BindingService`.
"""

from .binding import BindingService, MappingBinding
from .file_store import ConfigStore, read_config, write_config

__all__ = [
    "BindingService",
    "ConfigStore",
    "MappingBinding",
    "read_config",
    "write_config",
]
