from .defaults import DefaultsTable, init_defaults
from .errors import ContextError, ConversionError, CvtsudoersError, DefaultsError, UsageError, ValidationError
from .execution_context import ExecutionContext, Identity, build_execution_context
from .options import InvocationOptions, OptionsExit, parse_options
from .services import EnvironmentServices, InertEnvironmentServices

__all__ = [
  "DefaultsTable",
  "init_defaults",
  "CvtsudoersError",
  "UsageError",
  "ValidationError",
  "ContextError",
  "DefaultsError",
  "ConversionError",
  "ExecutionContext",
  "Identity",
  "build_execution_context",
  "InvocationOptions",
  "OptionsExit",
  "parse_options",
  "EnvironmentServices",
  "InertEnvironmentServices",
]
