from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .trace_store_jsonl import TraceStoreJSONL


class TraceEmitter:
    """
    Debug trace for one invocation. Without a store every emit is a no-op,
    which is the default when no trace_path is configured.
    """

    def __init__(self, store: Optional[TraceStoreJSONL], run_id: str):
        self._store = store
        self._run_id = run_id

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def emit(
        self,
        event_type: str,
        *,
        path: str | None = None,
        line: int | None = None,
        message: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        if self._store is None:
            return
        event: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "run_id": self._run_id,
            "event_type": event_type,
        }
        if path is not None:
            event["path"] = path
        if line is not None:
            event["line"] = line
        if message is not None:
            event["message"] = message
        if data is not None:
            event["data"] = data

        self._store.append(event)


def null_trace() -> TraceEmitter:
    return TraceEmitter(store=None, run_id="cvtsudoers")
