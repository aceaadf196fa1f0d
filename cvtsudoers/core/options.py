from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cvtsudoers import SUDOERS_GRAMMAR_VERSION, __version__

from .errors import UsageError

PROG = "cvtsudoers"
STDIN = "-"
STDOUT = "-"
SUPPORTED_FORMATS = ("JSON",)

USAGE = "usage: {prog} [-hV] [-f format] [-o output_file] [sudoers_file]"

_OPTIONS_SUMMARY = "\n".join(
    [
        "Options:",
        "  -f, --format=JSON        specify output format",
        "  -h, --help               display help message and exit",
        "  -o, --output=output_file write sudoers in JSON format to output_file",
        "  -V, --version            display version information and exit",
    ]
)


@dataclass(frozen=True)
class InvocationOptions:
    output_format: str = "JSON"
    input_path: str = STDIN
    output_path: str = STDOUT

    @property
    def reads_stdin(self) -> bool:
        return self.input_path == STDIN

    @property
    def writes_stdout(self) -> bool:
        return self.output_path == STDOUT


class OptionsExit(Exception):
    """
    Raised by -h/-V as soon as they are seen: the caller prints `text` to
    stdout and exits with `status` without doing anything else.
    """

    def __init__(self, text: str, status: int = 0):
        super().__init__(text)
        self.text = text
        self.status = status


def usage_text(prog: str = PROG) -> str:
    return USAGE.format(prog=prog)


def help_text(prog: str = PROG) -> str:
    return "{} - convert between sudoers file formats\n\n{}\n\n{}".format(prog, usage_text(prog), _OPTIONS_SUMMARY)


def version_text(prog: str = PROG) -> str:
    return "{} version {}\n{} grammar version {}".format(prog, __version__, prog, SUDOERS_GRAMMAR_VERSION)


def output_format(value: str) -> str:
    """Case-insensitive match against SUPPORTED_FORMATS; returns the canonical name."""
    for fmt in SUPPORTED_FORMATS:
        if value.lower() == fmt.lower():
            return fmt
    raise argparse.ArgumentTypeError("unsupported output format {}".format(value))


class _HelpAction(argparse.Action):
    def __init__(self, option_strings, dest, **kwargs):
        super().__init__(option_strings, dest, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        raise OptionsExit(help_text(parser.prog), 0)


class _VersionAction(argparse.Action):
    def __init__(self, option_strings, dest, **kwargs):
        super().__init__(option_strings, dest, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        raise OptionsExit(version_text(parser.prog), 0)


class _OptionParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        # argparse prefixes type errors with the option name; keep only the reason.
        if message.startswith("argument -f/--format: "):
            message = message[len("argument -f/--format: ") :]
        raise UsageError(code="usage.invalid", message=message)


def build_parser(prog: str = PROG) -> argparse.ArgumentParser:
    parser = _OptionParser(prog=prog, usage=usage_text(prog)[len("usage: ") :], add_help=False)
    parser.add_argument("-f", "--format", dest="output_format", type=output_format, default="JSON")
    parser.add_argument("-h", "--help", action=_HelpAction)
    parser.add_argument("-o", "--output", dest="output_path", default=STDOUT)
    parser.add_argument("-V", "--version", action=_VersionAction)
    parser.add_argument("sudoers_file", nargs="*")
    return parser


def parse_options(argv: Optional[Sequence[str]] = None, *, prog: str = PROG) -> InvocationOptions:
    """
    Validate the command line.

    Raises OptionsExit for -h/-V and UsageError for anything that must not
    proceed (unknown option, unsupported format, more than one input file).
    No file is opened here.
    """
    ns = build_parser(prog).parse_args(list(argv) if argv is not None else None)
    positionals: List[str] = list(ns.sudoers_file)
    if len(positionals) > 1:
        raise UsageError(
            code="usage.too_many_inputs",
            message="only one sudoers file may be specified",
            data={"inputs": positionals},
        )
    input_path = positionals[0] if positionals else STDIN
    return InvocationOptions(output_format=ns.output_format, input_path=input_path, output_path=ns.output_path)
