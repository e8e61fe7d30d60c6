from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_text(path: os.PathLike[str] | str, text: str, *, encoding: str = "utf-8") -> None:
    """Replace the contents of `path` with `text` in one step.

    Writes to a sibling temp file, fsyncs it, then `os.replace`s it over the
    target, so readers see either the old or the new contents. Line breaks in
    `text` are written as-is (no newline translation). The temp file is
    removed on failure and the original exception propagates.
    """
    final = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f"{final.name}.", suffix=".tmp", dir=str(final.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        try:
            os.chmod(tmp, final.stat().st_mode)
        except FileNotFoundError:
            pass
        os.replace(tmp, final)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
