from .trace_emitter import TraceEmitter, null_trace
from .trace_store_jsonl import TRACE_UNWRITABLE, TraceStoreJSONL

__all__ = ["TRACE_UNWRITABLE", "TraceEmitter", "TraceStoreJSONL", "null_trace"]
