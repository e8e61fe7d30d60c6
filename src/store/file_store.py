from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from codec import composite, envelope, primitive, text
from codec.models import CREDENTIAL_TYPE, Record, RecordKind, Scheme, visible
from common.atomic import atomic_write_text
from common.errors import DecodeError, IoError, NotFoundError, TypeResolutionError, ValidationError
from common.names import normalize_name, same_name

from .binding import BindingService, MappingBinding


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_PATH = "CFGTEXT_PATH"
ENV_PASSWORD = "CFGTEXT_PASSWORD"
ENV_DEFERRED = "CFGTEXT_DEFERRED"
ENV_CREATE = "CFGTEXT_CREATE"

Names = Union[str, Iterable[str]]


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _truthy(val: Optional[str]) -> bool:
    return (val or "").strip().lower() in ("1", "true", "yes", "on")


def _as_list(names: Names) -> List[str]:
    if isinstance(names, str):
        return [names]
    return list(names)


def _read_file(path: Path) -> str:
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            return f.read()
    except FileNotFoundError as ex:
        raise IoError(str(path), "file not found") from ex
    except (OSError, UnicodeDecodeError) as ex:
        raise IoError(str(path), f"cannot read: {ex}") from ex


class ConfigStore:
    """
    One config file loaded into memory as an ordered record tree.

    Usage
    - `ConfigStore.open(path)` parses the file; a missing file raises `IoError`
      unless `create=True`.
    - `get`/`set`/`remove` work on the first record matching a name
      (case-insensitive). `set` returns False when the stored text would not
      change.
    - Every change is written back immediately, unless the store is deferred,
      in which case `flush()` (or leaving `deferred_writes()`) writes it.
    - Writes serialize the whole in-memory tree and replace the file in one
      step. The file is not re-read first: another writer's changes made
      since load are overwritten (last writer wins).

    Environment variables (optional)
    - `CFGTEXT_PATH`:     config file path (required by `from_env`)
    - `CFGTEXT_PASSWORD`: default password for AES256 envelopes
    - `CFGTEXT_DEFERRED`: start in deferred mode when truthy
    - `CFGTEXT_CREATE`:   create the file when missing when truthy
    """

    def __init__(
        self,
        path: os.PathLike[str] | str,
        *,
        password: Optional[str] = None,
        deferred: bool = False,
        create: bool = False,
    ) -> None:
        self._path = Path(path)
        self._password = password
        self._deferred = deferred
        self._dirty = False
        self._records: List[Record] = []
        if create and not self._path.exists():
            self._save()
        else:
            self._records = text.split(_read_file(self._path))
        logger.debug("Loaded %s (%d records)", self._path, self.count)

    # -------- Construction helpers --------
    @classmethod
    def open(
        cls,
        path: os.PathLike[str] | str,
        *,
        password: Optional[str] = None,
        deferred: bool = False,
        create: bool = False,
    ) -> "ConfigStore":
        return cls(path, password=password, deferred=deferred, create=create)

    @classmethod
    def from_env(cls) -> "ConfigStore":
        path = _getenv(ENV_PATH)
        if not path:
            raise RuntimeError(f"Missing required environment variables for config store: {ENV_PATH}")
        return cls(
            path,
            password=_getenv(ENV_PASSWORD),
            deferred=_truthy(_getenv(ENV_DEFERRED)),
            create=_truthy(_getenv(ENV_CREATE)),
        )

    # -------- Accessors --------
    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        return sum(1 for _ in visible(self._records))

    @property
    def names(self) -> List[str]:
        out: List[str] = []
        for r in visible(self._records):
            if not any(same_name(r.name, seen) for seen in out):
                out.append(r.name)
        return out

    @property
    def records(self) -> List[Record]:
        return list(self._records)

    @property
    def deferred(self) -> bool:
        return self._deferred

    @deferred.setter
    def deferred(self, value: bool) -> None:
        self._deferred = bool(value)

    def __len__(self) -> int:
        return self.count

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            key = normalize_name(name)
        except ValidationError:
            return False
        return self._index(key) is not None

    # -------- Core operations --------
    def get(self, name: str, password: Optional[str] = None) -> Any:
        """Decode the first record called `name`.

        Raises:
        - ValidationError for an illegal name.
        - NotFoundError if no record has that name.
        - DecodeError (TypeResolutionError, DecryptionError, ...) if the stored
          text cannot be turned back into a value.
        """
        key = normalize_name(name)
        idx = self._index(key)
        if idx is None:
            raise NotFoundError(key)
        return composite.collapse(self._records[idx], self._pw(password))

    def set(
        self,
        name: str,
        value: Any,
        scheme: Optional[Scheme | str] = None,
        password: Optional[str] = None,
    ) -> bool:
        """Store `value` under `name`, optionally sealed with `scheme`.

        Returns True when the tree changed. The tree is untouched when encoding
        or encryption fails.
        """
        idx, record = self._prepare(normalize_name(name), value, scheme, self._pw(password))
        if not self._apply(idx, record, self._pw(password)):
            return False
        self._changed()
        return True

    def remove(self, *names: str) -> int:
        """Remove every record matching any of `names`; returns how many went."""
        keys = [normalize_name(n) for n in names]
        kept = [r for r in self._records if not any(r.matches(k) for k in keys)]
        removed = len(self._records) - len(kept)
        if removed:
            self._records = kept
            self._changed()
        return removed

    def read(
        self,
        names: Optional[Names] = None,
        password: Optional[str] = None,
        binding: Optional[BindingService] = None,
    ) -> Dict[str, Any]:
        """Decode several values at once and optionally bind them.

        - With explicit `names`, any lookup or decode failure propagates and
          nothing is bound.
        - Without `names`, every record is read; values that cannot be decoded
          (e.g. envelopes without their password) are skipped with a warning.
        """
        pw = self._pw(password)
        out: Dict[str, Any] = {}
        if names is None:
            for key in self.names:
                try:
                    out[key] = self.get(key, pw)
                except DecodeError as ex:
                    logger.warning("Skipping '%s': %s", key, ex)
        else:
            for raw in _as_list(names):
                key = normalize_name(raw)
                out[key] = self.get(key, pw)

        if binding is not None:
            for key, value in out.items():
                binding.set_binding(key, value)
        return out

    def write(
        self,
        names: Names,
        binding: BindingService,
        scheme: Optional[Scheme | str] = None,
        password: Optional[str] = None,
    ) -> List[str]:
        """Store the values currently bound to `names`; returns the names that changed.

        All values are encoded before the tree is touched, and the file is
        written at most once.
        """
        pw = self._pw(password)
        keys: List[str] = []
        for raw in _as_list(names):
            key = normalize_name(raw)
            if not any(same_name(key, k) for k in keys):
                keys.append(key)

        values: List[Tuple[str, Any]] = []
        for key in keys:
            try:
                values.append((key, binding.get_binding(key)))
            except KeyError as ex:
                raise NotFoundError(key) from ex

        prepared = [(key, *self._prepare(key, value, scheme, pw)) for key, value in values]
        changed = [key for key, idx, record in prepared if self._apply(idx, record, pw)]
        if changed:
            self._changed()
        return changed

    def flush(self) -> None:
        """Write the tree now, whatever the deferred setting."""
        self._save()

    @contextmanager
    def deferred_writes(self) -> Iterator["ConfigStore"]:
        """Batch changes: defer writes inside the block, flush once on success."""
        previous = self._deferred
        self._deferred = True
        try:
            yield self
        finally:
            self._deferred = previous
        if self._dirty:
            self.flush()

    # -------- Internals --------
    def _pw(self, password: Optional[str]) -> Optional[str]:
        return password if password is not None else self._password

    def _index(self, key: str) -> Optional[int]:
        for i, r in enumerate(self._records):
            if r.matches(key):
                return i
        return None

    def _prepare(
        self, key: str, value: Any, scheme: Optional[Scheme | str], password: Optional[str]
    ) -> Tuple[Optional[int], Record]:
        idx = self._index(key)
        name = self._records[idx].name if idx is not None else key
        return idx, composite.encode(name, value, scheme, password)

    def _apply(self, idx: Optional[int], record: Record, password: Optional[str]) -> bool:
        if idx is None:
            self._records.append(record)
            return True
        current = self._records[idx]
        if _same_content(current, record, password):
            return False
        if not _same_tag(current.data_type, record.data_type):
            logger.warning(
                "'%s' changes type from %s to %s", current.name, current.data_type, record.data_type
            )
        self._records[idx] = record
        return True

    def _changed(self) -> None:
        self._dirty = True
        if not self._deferred:
            self._save()

    def _save(self) -> None:
        payload = text.join(self._records)
        try:
            atomic_write_text(self._path, payload)
        except OSError as ex:
            raise IoError(str(self._path), f"cannot write: {ex}") from ex
        self._dirty = False
        logger.debug("Wrote %s (%d records)", self._path, self.count)


def _scalar_tag(tag: str) -> Optional[str]:
    try:
        return primitive.resolve_tag(tag)
    except TypeResolutionError:
        return None


def _same_tag(a: str, b: str) -> bool:
    if a == b:
        return True
    canonical = _scalar_tag(a)
    return canonical is not None and canonical == _scalar_tag(b)


def _same_content(old: Record, new: Record, password: Optional[str]) -> bool:
    """True when `new` would store what `old` already stores.

    Scalars whose tags resolve to the same type are compared by value, so a
    hand-written alias or spelling is kept. User-bound envelopes and
    credentials re-encrypt to different bytes each time, so those are compared
    by their decrypted content.
    """
    if text.join([old]) == text.join([new]):
        return True
    if old.kind is RecordKind.SCALAR and new.kind is RecordKind.SCALAR:
        # Hand-written aliases (`[bool]=true`) hold the same value as the canonical form
        tag = _scalar_tag(old.data_type)
        if tag is not None and tag == _scalar_tag(new.data_type):
            try:
                return primitive.from_text(old) == primitive.from_text(new)
            except DecodeError:
                return False
    if old.data_type != new.data_type:
        return False
    try:
        if old.kind is RecordKind.ENVELOPE:
            return text.join([envelope.unseal(old, password)]) == text.join([envelope.unseal(new, password)])
        if old.data_type.lower() == CREDENTIAL_TYPE.lower():
            return composite.collapse(old) == composite.collapse(new)
    except DecodeError:
        return False
    return False


# -------- Convenience top-level helpers --------
def read_config(
    path: os.PathLike[str] | str,
    names: Optional[Names] = None,
    *,
    password: Optional[str] = None,
) -> Dict[str, Any]:
    return ConfigStore(path, password=password).read(names)


def write_config(
    path: os.PathLike[str] | str,
    values: Mapping[str, Any],
    *,
    scheme: Optional[Scheme | str] = None,
    password: Optional[str] = None,
    create: bool = True,
) -> List[str]:
    store = ConfigStore(path, password=password, create=create)
    return store.write(list(values), MappingBinding(dict(values)), scheme=scheme, password=password)
