from __future__ import annotations


class ConfigStoreError(RuntimeError):
    """Base error for config file codec and store operations."""


class IoError(ConfigStoreError):
    """Backing file is missing, unreadable, or could not be replaced."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"{path}: {detail}")


class ParseError(ConfigStoreError):
    """A line or record could not be parsed.

    Raised per offending line inside the text codec, which logs it and moves
    on; callers of `codec.text.split` never see it.
    """

    def __init__(self, line_no: int, detail: str) -> None:
        self.line_no = line_no
        self.detail = detail
        super().__init__(f"line {line_no}: {detail}")


class ValidationError(ConfigStoreError):
    """Record name does not match the allowed identifier syntax."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid record name: {name!r}")


class DecodeError(ConfigStoreError):
    """Stored text could not be turned back into a value."""


class TypeResolutionError(DecodeError):
    """Type tag is unknown or cannot be used in this position."""

    def __init__(self, tag: str, detail: str = "unknown type tag") -> None:
        self.tag = tag
        super().__init__(f"{detail}: {tag!r}")


class DecryptionError(DecodeError):
    """Envelope could not be opened (password, identity, or corrupt data)."""


class EncryptionError(ConfigStoreError):
    """Value could not be sealed into an envelope."""


class NotFoundError(ConfigStoreError, KeyError):
    """No record with the given name exists in the loaded file."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Record '{name}' not found")

    def __str__(self) -> str:
        return str(self.args[0])
