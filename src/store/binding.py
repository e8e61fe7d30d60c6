from __future__ import annotations

from typing import Any, Dict, MutableMapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class BindingService(Protocol):
    """
    Where `ConfigStore.read` puts values and `ConfigStore.write` takes them from.

    - `get_binding(name)` returns the current value bound to `name`, raising
      `KeyError` when nothing is bound.
    - `set_binding(name, value)` binds `value` to `name`.
    """

    def get_binding(self, name: str) -> Any: ...

    def set_binding(self, name: str, value: Any) -> None: ...


class MappingBinding:
    """Binding service backed by a plain mutable mapping (e.g. a dict or vars())."""

    def __init__(self, mapping: Optional[MutableMapping[str, Any]] = None) -> None:
        self._mapping: MutableMapping[str, Any] = mapping if mapping is not None else {}

    @property
    def mapping(self) -> MutableMapping[str, Any]:
        return self._mapping

    def get_binding(self, name: str) -> Any:
        return self._mapping[name]

    def set_binding(self, name: str, value: Any) -> None:
        self._mapping[name] = value

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._mapping)
