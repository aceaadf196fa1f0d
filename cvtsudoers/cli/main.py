from __future__ import annotations

import json
import sys
from typing import Optional, Sequence

from cvtsudoers.config import load_config
from cvtsudoers.core.defaults import init_defaults
from cvtsudoers.core.dispatcher import EXIT_FAILURE, EXIT_SUCCESS, dispatch
from cvtsudoers.core.errors import CvtsudoersError, UsageError
from cvtsudoers.core.execution_context import build_execution_context
from cvtsudoers.core.options import PROG, OptionsExit, parse_options, usage_text
from cvtsudoers.core.services import InertEnvironmentServices
from cvtsudoers.trace import TRACE_UNWRITABLE, TraceEmitter, TraceStoreJSONL


def _format_cli_error(e: Exception) -> str:
    """
    Print-friendly error formatting for CLI failures.
    - Always includes code/message (via __str__) when it's a CvtsudoersError
    - Includes structured `data` payload when present
    """
    if isinstance(e, CvtsudoersError) and isinstance(e.data, dict) and e.data:
        return "{}: {} {}".format(PROG, str(e), json.dumps(e.data, ensure_ascii=False, sort_keys=True, default=str))
    if isinstance(e, CvtsudoersError):
        return "{}: {}".format(PROG, str(e))
    return "{}: {}".format(PROG, repr(e))


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        options = parse_options(argv)
    except OptionsExit as e:
        print(e.text)
        return e.status
    except UsageError as e:
        if e.code != "usage.too_many_inputs":
            print("{}: {}".format(PROG, e.message), file=sys.stderr)
        print(usage_text(), file=sys.stderr)
        return EXIT_FAILURE

    try:
        config = load_config()
    except CvtsudoersError as e:
        print(_format_cli_error(e), file=sys.stderr)
        return EXIT_FAILURE

    store = TraceStoreJSONL(config.trace_path) if config.trace_path is not None else None
    trace = TraceEmitter(store=store, run_id=config.run_id)

    try:
        trace.emit(
            "invocation_started",
            data={
                "input": "<stdin>" if options.reads_stdin else options.input_path,
                "output": "<stdout>" if options.writes_stdout else options.output_path,
                "format": options.output_format,
                "config": str(config.source) if config.source is not None else None,
            },
        )

        ctx = build_execution_context()
        if trace.enabled:
            trace.emit("context_built", data=ctx.to_dict())

        defaults = init_defaults()
        if trace.enabled:
            trace.emit("defaults_initialized", data={"count": len(defaults), "values": defaults.to_dict()})

        rc = dispatch(
            options,
            ctx,
            defaults,
            InertEnvironmentServices(),
            trace,
            max_include_depth=config.max_include_depth,
        )
    except CvtsudoersError as e:
        if e.code != TRACE_UNWRITABLE:
            trace.emit("error", message=str(e), data=e.data)
        print(_format_cli_error(e), file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_SUCCESS if rc == EXIT_SUCCESS else EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
