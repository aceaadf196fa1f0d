from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, Optional

from cvtsudoers.core.errors import ValidationError

# Trace events carry passwd data (uid, home, shell) for the invoking user.
TRACE_FILE_MODE = 0o600
TRACE_UNWRITABLE = "config.trace_unwritable"


class TraceStoreJSONL:
    """
    Append-only JSON Lines file holding the debug trace of one or more
    cvtsudoers runs. The file is created owner-readable only.

    A trace path that cannot be created or written raises
    ValidationError(code="config.trace_unwritable"): the path comes from the
    driver config, so the failure is reported as a config failure.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _open_for_append(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, TRACE_FILE_MODE)
        return os.fdopen(fd, "a", encoding="utf-8")

    def append(self, event: dict[str, Any]) -> None:
        self.extend([event])

    def extend(self, events: Iterable[dict[str, Any]]) -> None:
        lines = [json.dumps(e, ensure_ascii=False, default=str) + "\n" for e in events]
        if not lines:
            return
        try:
            with self._open_for_append() as f:
                f.writelines(lines)
        except OSError as e:
            raise ValidationError(
                code=TRACE_UNWRITABLE,
                message="Unable to write trace: {}".format(self._path),
                data={"path": str(self._path), "error": str(e)},
            ) from e

    def read_events(self, run_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Events in file order, optionally only those of `run_id`."""
        if not self._path.exists():
            return []
        out: list[dict[str, Any]] = []
        for line in self._path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            event = json.loads(line)
            if run_id is None or event.get("run_id") == run_id:
                out.append(event)
        return out
