from __future__ import annotations

from typing import Optional

from cvtsudoers.engine import export_sudoers
from cvtsudoers.engine.parser import DEFAULT_MAX_INCLUDE_DEPTH
from cvtsudoers.trace import TraceEmitter

from .defaults import DefaultsTable
from .execution_context import ExecutionContext
from .options import InvocationOptions
from .services import EnvironmentServices

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def dispatch(
    options: InvocationOptions,
    ctx: ExecutionContext,
    defaults: DefaultsTable,
    services: EnvironmentServices,
    trace: Optional[TraceEmitter] = None,
    *,
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
) -> int:
    """
    Hand the input/output pair to the conversion engine exactly once and map
    its outcome to a process exit code. A partially written output file is
    left as the engine left it.
    """
    ok = export_sudoers(
        options.input_path,
        options.output_path,
        options.output_format,
        context=ctx,
        defaults=defaults,
        services=services,
        trace=trace,
        max_include_depth=max_include_depth,
    )
    return EXIT_SUCCESS if ok else EXIT_FAILURE
