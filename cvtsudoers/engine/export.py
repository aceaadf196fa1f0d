from __future__ import annotations

import sys
from typing import Callable, Dict, Optional

from cvtsudoers.core.defaults import DefaultsTable
from cvtsudoers.core.errors import ConversionError
from cvtsudoers.core.execution_context import ExecutionContext
from cvtsudoers.core.services import EnvironmentServices
from cvtsudoers.trace import TraceEmitter, null_trace

from .json_export import render_json
from .parser import DEFAULT_MAX_INCLUDE_DEPTH, STDIN_PATH, SudoersParser
from .tree import PolicyTree

PROG = "cvtsudoers"
STDOUT_PATH = "-"

Renderer = Callable[[PolicyTree, DefaultsTable], str]

EXPORTERS: Dict[str, Renderer] = {
    "JSON": render_json,
}


def _report(err: ConversionError) -> str:
    if err.is_parse_error:
        path = err.path or STDIN_PATH
        return "{}: parse error in {} near line {}: {}".format(
            PROG, "<stdin>" if path == STDIN_PATH else path, err.line or 0, err.message
        )
    return "{}: {}".format(PROG, err.message)


def _event_for(err: ConversionError) -> str:
    if err.is_parse_error:
        return "parse_error"
    if err.code.startswith("io."):
        return "io_error"
    return "export_error"


def _write(output_path: str, text: str) -> None:
    if output_path == STDOUT_PATH:
        sys.stdout.write(text)
        sys.stdout.flush()
        return
    try:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise ConversionError(
            code="io.write_failed",
            message="unable to write to {}: {}".format(output_path, e.strerror or e),
            data={"path": output_path},
        ) from e


def export_sudoers(
    input_path: str,
    output_path: str,
    output_format: str = "JSON",
    *,
    context: ExecutionContext,
    defaults: DefaultsTable,
    services: EnvironmentServices,
    trace: Optional[TraceEmitter] = None,
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
) -> bool:
    """
    Parse `input_path` ("-" for stdin) and write it to `output_path`
    ("-" for stdout) in `output_format`.

    Returns False on any parse or I/O failure after reporting it on stderr.
    The output file is only opened once parsing has succeeded.
    """
    trace = trace or null_trace()
    renderer = EXPORTERS.get(output_format.upper())
    if renderer is None:
        print("{}: unsupported output format {}".format(PROG, output_format), file=sys.stderr)
        return False

    trace.emit(
        "conversion_started",
        path=input_path,
        data={"output": output_path, "format": output_format.upper(), "context": context.to_dict()},
    )

    if not services.init_envtables():
        print("{}: unable to initialize environment tables".format(PROG), file=sys.stderr)
        trace.emit("conversion_finished", message="environment tables unavailable", data={"ok": False})
        return False

    parser = SudoersParser(context=context, defaults=defaults, trace=trace, max_include_depth=max_include_depth)
    services.setspent()
    try:
        policy = parser.parse_file(input_path)
        text = renderer(policy, defaults)
        _write(output_path, text)
    except ConversionError as e:
        extra = {k: v for k, v in (e.data or {}).items() if k not in ("path", "line")}
        trace.emit(
            _event_for(e),
            path=e.path,
            line=e.line,
            message=e.message,
            data={"code": e.code, **extra},
        )
        print(_report(e), file=sys.stderr)
        trace.emit("conversion_finished", data={"ok": False})
        return False
    finally:
        services.endspent()

    trace.emit(
        "conversion_finished",
        data={
            "ok": True,
            "defaults": len(policy.defaults),
            "user_specs": len(policy.userspecs),
        },
    )
    return True
