"""Line-oriented recursive-descent parser for the sudoers grammar."""

from __future__ import annotations

import ipaddress
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from cvtsudoers.core.defaults import OP_ADD, OP_REMOVE, OP_SET, DefaultsTable
from cvtsudoers.core.errors import ConversionError, DefaultsError
from cvtsudoers.core.execution_context import ExecutionContext
from cvtsudoers.trace import TraceEmitter, null_trace

from . import tree as t

STDIN_PATH = "-"
DEFAULT_MAX_INCLUDE_DEPTH = 128

_ALIAS_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
_DEFAULTS_NAME_RE = re.compile(r"[a-z_][a-z0-9_]*")
_DIGEST_RE = re.compile(r"(sha224|sha256|sha384|sha512):([A-Za-z0-9+/=]+)\s+")
_INCLUDE_RE = re.compile(r"^[#@](include|includedir)\s+(.+)$")
_DEFAULTS_RE = re.compile(r"^Defaults(?=$|[\s@:>!])")
_ALIAS_KEYWORD_RE = re.compile(r"^(User_Alias|Runas_Alias|Host_Alias|Cmnd_Alias|Cmd_Alias)\s+")

_ALIAS_KEYWORDS = {
    "User_Alias": t.USER_ALIAS,
    "Runas_Alias": t.RUNAS_ALIAS,
    "Host_Alias": t.HOST_ALIAS,
    "Cmnd_Alias": t.CMND_ALIAS,
    "Cmd_Alias": t.CMND_ALIAS,
}

# Command tag -> (option name, value) as rendered in Cmnd_Specs options.
TAGS: Dict[str, Tuple[str, bool]] = {
    "NOPASSWD": ("authenticate", False),
    "PASSWD": ("authenticate", True),
    "NOEXEC": ("noexec", True),
    "EXEC": ("noexec", False),
    "SETENV": ("setenv", True),
    "NOSETENV": ("setenv", False),
    "LOG_INPUT": ("log_input", True),
    "NOLOG_INPUT": ("log_input", False),
    "LOG_OUTPUT": ("log_output", True),
    "NOLOG_OUTPUT": ("log_output", False),
    "MAIL": ("send_mail", True),
    "NOMAIL": ("send_mail", False),
    "FOLLOW": ("sudoedit_follow", True),
    "NOFOLLOW": ("sudoedit_follow", False),
}
_TAG_RE = re.compile(r"({})\s*:".format("|".join(sorted(TAGS, key=len, reverse=True))))

# Member contexts.
CTX_USER = "user"
CTX_RUNAS = "runas"
CTX_GROUP = "group"
CTX_HOST = "host"
CTX_COMMAND = "command"

_WORD_STOP = set(",:=()!")

_BINDINGS = {"@": (t.BIND_HOST, CTX_HOST), ":": (t.BIND_USER, CTX_USER), ">": (t.BIND_RUNAS, CTX_RUNAS), "!": (t.BIND_COMMAND, CTX_COMMAND)}


def parse_error(path: str, line: int, message: str) -> ConversionError:
    return ConversionError(code="parse.error", message=message, data={"path": path, "line": line})


def logical_lines(text: str) -> List[Tuple[int, str]]:
    """
    Join backslash-continued lines. Returns (first physical line number, text).
    """
    out: List[Tuple[int, str]] = []
    buf = ""
    start = 0
    for lineno, raw in enumerate(text.splitlines(), start=1):
        if not buf:
            start = lineno
        if raw.endswith("\\") and not raw.endswith("\\\\"):
            buf += raw[:-1]
            continue
        buf += raw
        out.append((start, buf))
        buf = ""
    if buf:
        out.append((start, buf))
    return out


def strip_comment(line: str) -> str:
    """
    Drop a trailing comment. '#' starts a comment at the beginning of a word
    unless a digit follows (a numeric uid such as #0).
    """
    quoted = False
    escaped = False
    for i, ch in enumerate(line):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            quoted = not quoted
            continue
        if ch != "#" or quoted:
            continue
        at_word_start = i == 0 or line[i - 1].isspace() or line[i - 1] in ",=:("
        next_is_digit = i + 1 < len(line) and line[i + 1].isdigit()
        if at_word_start and not next_is_digit:
            return line[:i]
    return line


def _unescape(s: str) -> str:
    out: List[str] = []
    escaped = False
    for ch in s:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(ch)
    if escaped:
        out.append("\\")
    return "".join(out)


class _Scanner:
    def __init__(self, text: str, path: str, line: int):
        self.text = text
        self.path = path
        self.line = line
        self.pos = 0

    def error(self, message: str) -> ConversionError:
        return parse_error(self.path, self.line, message)

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def at_end(self) -> bool:
        self.skip_ws()
        return self.pos >= len(self.text)

    def peek(self) -> str:
        self.skip_ws()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def accept(self, token: str) -> bool:
        self.skip_ws()
        if self.text.startswith(token, self.pos):
            self.pos += len(token)
            return True
        return False

    def expect(self, token: str) -> None:
        if not self.accept(token):
            found = self.peek() or "end of line"
            raise self.error("syntax error, expected '{}' near '{}'".format(token, found))

    def match(self, pattern: "re.Pattern[str]") -> Optional["re.Match[str]"]:
        self.skip_ws()
        m = pattern.match(self.text, self.pos)
        if m:
            self.pos = m.end()
        return m

    def negations(self) -> bool:
        negated = False
        while self.accept("!"):
            negated = not negated
        return negated

    def word(self, stop: Optional[set] = None) -> str:
        stop = _WORD_STOP if stop is None else stop
        self.skip_ws()
        if self.pos < len(self.text) and self.text[self.pos] == '"':
            return self.quoted()
        start = self.pos
        if self.text.startswith("%:", self.pos):
            # non-Unix group prefix
            self.pos += 2
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                self.pos += 2
                continue
            if ch.isspace() or ch in stop:
                break
            self.pos += 1
        raw = self.text[start : self.pos]
        if not raw:
            found = self.peek() or "end of line"
            raise self.error("syntax error near '{}'".format(found))
        return _unescape(raw)

    def quoted(self) -> str:
        self.expect('"')
        out: List[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                out.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            if ch == '"':
                self.pos += 1
                return "".join(out)
            out.append(ch)
            self.pos += 1
        raise self.error("unterminated quoted string")

    def command_text(self) -> str:
        """Read a command with its arguments, up to an unescaped ',' or ':'."""
        self.skip_ws()
        start = self.pos
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                self.pos += 2
                continue
            if ch in ",:":
                break
            self.pos += 1
        words = self.text[start : self.pos].split()
        return " ".join(_unescape(w) for w in words)


def is_alias_name(name: str) -> bool:
    return bool(_ALIAS_NAME_RE.match(name)) and name != "ALL"


def classify_member(word: str, ctx: str, negated: bool = False) -> t.Member:
    if word == "ALL":
        kind = {CTX_HOST: t.HOSTNAME, CTX_GROUP: t.USERGROUP, CTX_COMMAND: t.COMMAND}.get(ctx, t.USERNAME)
        return t.Member(kind=kind, value="ALL", negated=negated)

    if is_alias_name(word):
        kind = {
            CTX_USER: t.USERALIAS,
            CTX_RUNAS: t.RUNASALIAS,
            CTX_GROUP: t.RUNASALIAS,
            CTX_HOST: t.HOSTALIAS,
            CTX_COMMAND: t.CMNDALIAS,
        }[ctx]
        return t.Member(kind=kind, value=word, negated=negated)

    if ctx == CTX_HOST:
        return _classify_host(word, negated)

    if ctx == CTX_GROUP:
        if word.startswith("#") and word[1:].isdigit():
            return t.Member(kind=t.GROUPID, value=int(word[1:]), negated=negated)
        return t.Member(kind=t.USERGROUP, value=word, negated=negated)

    if word.startswith("%:#") and word[3:].isdigit():
        return t.Member(kind=t.NONUNIX_GID, value=int(word[3:]), negated=negated)
    if word.startswith("%:") and len(word) > 2:
        return t.Member(kind=t.NONUNIX_GROUP, value=word[2:], negated=negated)
    if word.startswith("%#") and word[2:].isdigit():
        return t.Member(kind=t.GROUPID, value=int(word[2:]), negated=negated)
    if word.startswith("%") and len(word) > 1:
        return t.Member(kind=t.USERGROUP, value=word[1:], negated=negated)
    if word.startswith("+") and len(word) > 1:
        return t.Member(kind=t.NETGROUP, value=word[1:], negated=negated)
    if word.startswith("#") and word[1:].isdigit():
        return t.Member(kind=t.USERID, value=int(word[1:]), negated=negated)
    return t.Member(kind=t.USERNAME, value=word, negated=negated)


def _classify_host(word: str, negated: bool) -> t.Member:
    if word.startswith("+") and len(word) > 1:
        return t.Member(kind=t.NETGROUP, value=word[1:], negated=negated)
    if "/" in word:
        try:
            ipaddress.ip_network(word, strict=False)
            return t.Member(kind=t.NETWORKADDR, value=word, negated=negated)
        except ValueError:
            pass
    else:
        try:
            ipaddress.ip_address(word)
            return t.Member(kind=t.IPADDR, value=word, negated=negated)
        except ValueError:
            pass
    return t.Member(kind=t.HOSTNAME, value=word, negated=negated)


class SudoersParser:
    """
    Parses sudoers text into a PolicyTree.

    The execution context supplies the host name for %h in include paths;
    the defaults table type-checks every Defaults option and receives global
    overrides as they are parsed.
    """

    def __init__(
        self,
        *,
        context: ExecutionContext,
        defaults: DefaultsTable,
        trace: Optional[TraceEmitter] = None,
        max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
    ):
        self._ctx = context
        self._defaults = defaults
        self._trace = trace or null_trace()
        self._max_depth = max_include_depth
        self._depth = 0
        self.tree = t.PolicyTree()

    def parse_file(self, path: str) -> t.PolicyTree:
        text = self._read(path)
        self._depth += 1
        try:
            self.parse_text(text, path)
        finally:
            self._depth -= 1
        return self.tree

    def parse_text(self, text: str, path: str = STDIN_PATH) -> t.PolicyTree:
        for lineno, raw in logical_lines(text):
            stripped = raw.strip()
            m = _INCLUDE_RE.match(stripped)
            if m:
                self._include(m.group(2).strip(), m.group(1) == "includedir", path, lineno)
                continue
            content = strip_comment(raw).strip()
            if not content:
                continue
            scanner = _Scanner(content, path, lineno)
            if _DEFAULTS_RE.match(content):
                self._parse_defaults(scanner)
            elif _ALIAS_KEYWORD_RE.match(content):
                self._parse_alias(scanner)
            else:
                self._parse_userspec(scanner)
        return self.tree

    def _read(self, path: str) -> str:
        if path == STDIN_PATH:
            self._trace.emit("file_opened", path="<stdin>")
            return sys.stdin.read()
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                text = f.read()
        except OSError as e:
            raise ConversionError(
                code="io.open_failed",
                message="unable to open {}: {}".format(path, e.strerror or e),
                data={"path": path},
            ) from e
        self._trace.emit("file_opened", path=path)
        return text

    # Includes

    def _expand_include_path(self, raw: str, cur_path: str) -> str:
        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            raw = raw[1:-1]
        else:
            raw = _unescape(raw)
        # %h is the short host name, %% a literal percent sign.
        expanded = re.sub(r"%(.)", lambda m: self._ctx.short_hostname if m.group(1) == "h" else m.group(1), raw)
        p = Path(expanded)
        if not p.is_absolute():
            base = Path.cwd() if cur_path == STDIN_PATH else Path(cur_path).parent
            p = base / p
        return str(p)

    def _include(self, raw: str, is_dir: bool, cur_path: str, lineno: int) -> None:
        if self._depth >= self._max_depth:
            raise parse_error(cur_path, lineno, "too many levels of includes")
        target = self._expand_include_path(raw, cur_path)
        if not is_dir:
            self.parse_file(target)
            return
        d = Path(target)
        if not d.is_dir():
            self._trace.emit("include_skipped", path=target, message="includedir does not exist")
            return
        for entry in sorted(d.iterdir(), key=lambda p: p.name):
            if "." in entry.name or entry.name.endswith("~") or not entry.is_file():
                continue
            self.parse_file(str(entry))

    # Members

    def _member_list(self, sc: _Scanner, ctx: str, stop: Optional[set] = None) -> List[t.Member]:
        members: List[t.Member] = []
        while True:
            negated = sc.negations()
            if ctx == CTX_COMMAND:
                members.append(self._command(sc, negated))
            else:
                members.append(classify_member(sc.word(stop), ctx, negated))
            if not sc.accept(","):
                return members

    def _command(self, sc: _Scanner, negated: bool) -> t.Member:
        digest: Optional[Tuple[str, str]] = None
        m = sc.match(_DIGEST_RE)
        if m:
            digest = (m.group(1), m.group(2))
        text = sc.command_text()
        if not text:
            found = sc.peek() or "end of line"
            raise sc.error("syntax error, expected a command near '{}'".format(found))
        if digest is None and (text == "ALL" or is_alias_name(text)):
            return classify_member(text, CTX_COMMAND, negated)
        head = text.split(" ", 1)[0]
        if not (head.startswith("/") or head in ("sudoedit", "list")):
            raise sc.error("expected a fully-qualified path name: {}".format(head))
        return t.Member(kind=t.COMMAND, value=text, negated=negated, digest=digest)

    # Defaults

    def _parse_defaults(self, sc: _Scanner) -> None:
        sc.pos = len("Defaults")
        binding_type: Optional[str] = None
        binding: Tuple[t.Member, ...] = ()
        if sc.pos < len(sc.text) and sc.text[sc.pos] in _BINDINGS:
            binding_type, ctx = _BINDINGS[sc.text[sc.pos]]
            sc.pos += 1
            if ctx == CTX_COMMAND:
                binding = tuple(self._binding_commands(sc))
            else:
                binding = tuple(self._member_list(sc, ctx))

        if sc.at_end():
            raise sc.error("syntax error, Defaults without any options")
        while True:
            self._defaults_option(sc, binding_type, binding)
            if not sc.accept(","):
                break
        if not sc.at_end():
            raise sc.error("syntax error near '{}'".format(sc.text[sc.pos :]))

    def _binding_commands(self, sc: _Scanner) -> List[t.Member]:
        members: List[t.Member] = []
        while True:
            negated = sc.negations()
            w = sc.word(stop=set(",:=()!"))
            if w == "ALL" or is_alias_name(w):
                members.append(classify_member(w, CTX_COMMAND, negated))
            elif w.startswith("/") or w in ("sudoedit", "list"):
                members.append(t.Member(kind=t.COMMAND, value=w, negated=negated))
            else:
                raise sc.error("expected a fully-qualified path name: {}".format(w))
            if not sc.accept(","):
                return members

    def _defaults_option(self, sc: _Scanner, binding_type: Optional[str], binding: Tuple[t.Member, ...]) -> None:
        negated = sc.negations()
        m = sc.match(_DEFAULTS_NAME_RE)
        if not m:
            raise sc.error("syntax error, expected a Defaults option near '{}'".format(sc.text[sc.pos :] or "end of line"))
        name = m.group(0)

        op = OP_SET
        raw: Optional[str] = None
        for candidate in (OP_ADD, OP_REMOVE, OP_SET):
            if sc.accept(candidate):
                op = candidate
                raw = sc.word(stop=set(","))
                break

        try:
            value = self._defaults.parse_value(name, op, raw, negated)
        except DefaultsError as e:
            raise sc.error(e.message) from e

        if binding_type is None:
            self._defaults.apply(name, op, value)
        self.tree.defaults.append(
            t.DefaultsEntry(
                name=name,
                op=op,
                value=value,
                binding_type=binding_type,
                binding=binding,
                path=sc.path,
                line=sc.line,
            )
        )

    # Aliases

    def _parse_alias(self, sc: _Scanner) -> None:
        keyword = sc.word()
        alias_type = _ALIAS_KEYWORDS[keyword]
        ctx = {t.USER_ALIAS: CTX_USER, t.RUNAS_ALIAS: CTX_RUNAS, t.HOST_ALIAS: CTX_HOST, t.CMND_ALIAS: CTX_COMMAND}[alias_type]
        while True:
            name = sc.word()
            if not is_alias_name(name):
                raise sc.error("invalid alias name: {}".format(name))
            if name in self.tree.aliases[alias_type]:
                prev = self.tree.aliases[alias_type][name]
                raise sc.error('Alias "{}" already defined near {}:{}'.format(name, prev.path, prev.line))
            sc.expect("=")
            members = self._member_list(sc, ctx)
            self.tree.add_alias(t.Alias(alias_type=alias_type, name=name, members=members, path=sc.path, line=sc.line))
            if not sc.accept(":"):
                break
        if not sc.at_end():
            raise sc.error("syntax error near '{}'".format(sc.text[sc.pos :]))

    # User specifications

    def _parse_userspec(self, sc: _Scanner) -> None:
        users = self._member_list(sc, CTX_USER)
        spec = t.UserSpec(users=users, path=sc.path, line=sc.line)
        while True:
            hosts = self._member_list(sc, CTX_HOST)
            sc.expect("=")
            spec.privileges.append(self._privilege(sc, hosts))
            if not sc.accept(":"):
                break
        if not sc.at_end():
            raise sc.error("syntax error near '{}'".format(sc.text[sc.pos :]))
        self.tree.userspecs.append(spec)

    def _privilege(self, sc: _Scanner, hosts: List[t.Member]) -> t.Privilege:
        priv = t.Privilege(hosts=hosts)
        runasusers: Optional[Tuple[t.Member, ...]] = None
        runasgroups: Optional[Tuple[t.Member, ...]] = None
        tags: Dict[str, bool] = {}
        while True:
            if sc.accept("("):
                runasusers, runasgroups = self._runas(sc)
            while True:
                m = sc.match(_TAG_RE)
                if not m:
                    break
                option, value = TAGS[m.group(1)]
                tags[option] = value
            negated = sc.negations()
            command = self._command(sc, negated)
            priv.cmndspecs.append(
                t.CmndSpec(runasusers=runasusers, runasgroups=runasgroups, tags=tuple(tags.items()), command=command)
            )
            if not sc.accept(","):
                return priv

    def _runas(self, sc: _Scanner) -> Tuple[Optional[Tuple[t.Member, ...]], Optional[Tuple[t.Member, ...]]]:
        users: Optional[Tuple[t.Member, ...]] = None
        groups: Optional[Tuple[t.Member, ...]] = None
        if sc.peek() not in (":", ")"):
            users = tuple(self._member_list(sc, CTX_RUNAS))
        if sc.accept(":") and sc.peek() != ")":
            groups = tuple(self._member_list(sc, CTX_GROUP))
        sc.expect(")")
        return users, groups
