from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import DefaultsError

FLAG = "flag"
INT = "int"
UINT = "uint"
FLOAT = "float"
MODE = "mode"
STRING = "string"
LIST = "list"
TUPLE = "tuple"

TYPES = (FLAG, INT, UINT, FLOAT, MODE, STRING, LIST, TUPLE)

OP_SET = "="
OP_ADD = "+="
OP_REMOVE = "-="

# List operation names as they appear in converted output.
LIST_OPERATIONS = {OP_SET: "list_assign", OP_ADD: "list_add", OP_REMOVE: "list_remove"}


@dataclass
class DefaultSetting:
    name: str
    type: str
    value: Any = None
    values: Tuple[str, ...] = ()
    description: str = ""


# (name, type, built-in value, tuple values, description)
_BUILTIN: List[Tuple[str, str, Any, Tuple[str, ...], str]] = [
    ("always_set_home", FLAG, False, (), "Always set $HOME to the target user's home directory"),
    ("authenticate", FLAG, True, (), "Require users to authenticate by default"),
    ("env_reset", FLAG, True, (), "Reset the environment to a default set of variables"),
    ("fqdn", FLAG, False, (), "Put the fully qualified host name in the log"),
    ("ignore_dot", FLAG, True, (), "Ignore '.' in $PATH"),
    ("insults", FLAG, False, (), "Insult the user when they enter an incorrect password"),
    ("log_input", FLAG, False, (), "Log user's input for the command being run"),
    ("log_output", FLAG, False, (), "Log the output of the command being run"),
    ("mail_always", FLAG, False, (), "Send mail every time a user runs a command"),
    ("mail_badpass", FLAG, False, (), "Send mail if the user enters an incorrect password"),
    ("mail_no_user", FLAG, True, (), "Send mail if the user is not in sudoers"),
    ("noexec", FLAG, False, (), "Preload the dummy exec functions"),
    ("pwfeedback", FLAG, False, (), "Provide visual feedback at the password prompt"),
    ("requiretty", FLAG, False, (), "Only allow the user to run sudo if they have a tty"),
    ("root_sudo", FLAG, True, (), "Root may run sudo"),
    ("rootpw", FLAG, False, (), "Prompt for root's password, not the user's"),
    ("runaspw", FLAG, False, (), "Prompt for the runas_default user's password"),
    ("set_home", FLAG, False, (), "Set $HOME to the target user when starting a shell"),
    ("setenv", FLAG, False, (), "Allow users to set arbitrary environment variables"),
    ("shell_noargs", FLAG, False, (), "If sudo is invoked with no arguments, start a shell"),
    ("stay_setuid", FLAG, False, (), "Only set the effective uid to the target user"),
    ("sudoedit_follow", FLAG, False, (), "Follow symbolic links when editing files with sudoedit"),
    ("targetpw", FLAG, False, (), "Prompt for the target user's password"),
    ("tty_tickets", FLAG, True, (), "Use a separate timestamp for each user/tty combo"),
    ("use_pty", FLAG, False, (), "Always run commands in a pseudo-tty"),
    ("visiblepw", FLAG, False, (), "Allow sudo to prompt for a password even if it would be visible"),
    ("loglinelen", UINT, 80, (), "Length at which to wrap log file lines"),
    ("maxseq", UINT, 2176782336, (), "Maximum I/O log sequence number"),
    ("passwd_tries", UINT, 3, (), "Number of tries to enter a password"),
    ("syslog_maxlen", INT, 980, (), "Maximum length of a syslog message"),
    ("passwd_timeout", FLOAT, 5.0, (), "Password prompt timeout in minutes"),
    ("timestamp_timeout", FLOAT, 5.0, (), "Authentication timestamp timeout in minutes"),
    ("umask", MODE, 0o022, (), "Umask to use or 0777 to use user's"),
    ("badpass_message", STRING, "Sorry, try again.", (), "Incorrect password message"),
    ("editor", STRING, "/usr/bin/vi", (), "Path to the editor for use by visudo"),
    ("iolog_dir", STRING, "/var/log/sudo-io", (), "Directory in which to store input/output logs"),
    ("iolog_file", STRING, "%{seq}", (), "File in which to store the input/output log"),
    ("lecture_file", STRING, None, (), "Path to lecture file"),
    ("logfile", STRING, None, (), "Path to log file"),
    ("mailerpath", STRING, "/usr/sbin/sendmail", (), "Path to mail program"),
    ("mailsub", STRING, "*** SECURITY information for %h ***", (), "Subject line for mail messages"),
    ("mailto", STRING, "root", (), "Address to send mail to"),
    ("passprompt", STRING, "[sudo] password for %p: ", (), "Default password prompt"),
    ("runas_default", STRING, "root", (), "Default user to run commands as"),
    ("secure_path", STRING, None, (), "Value to override user's $PATH with"),
    ("sudoers_locale", STRING, "C", (), "Locale to use while parsing sudoers"),
    ("syslog", STRING, "authpriv", (), "Syslog facility if syslog is being used for logging"),
    ("syslog_badpri", STRING, "alert", (), "Syslog priority to use when user authenticates unsuccessfully"),
    ("syslog_goodpri", STRING, "notice", (), "Syslog priority to use when user authenticates successfully"),
    ("timestampdir", STRING, "/run/sudo/ts", (), "Path to authentication timestamp dir"),
    ("timestampowner", STRING, "root", (), "Owner of the authentication timestamp dir"),
    ("env_check", LIST, ["COLORTERM", "LANG", "LANGUAGE", "LC_*", "LINGUAS", "TERM", "TZ"], (), "Environment variables to check for safety"),
    ("env_delete", LIST, ["IFS", "CDPATH", "LOCALDOMAIN", "RES_OPTIONS", "HOSTALIASES", "NLSPATH", "PATH_LOCALE", "LD_*", "_RLD*"], (), "Environment variables to remove"),
    ("env_keep", LIST, ["COLORS", "DISPLAY", "HOSTNAME", "HISTSIZE", "KDEDIR", "LS_COLORS", "PS1", "PS2", "XAUTHORIZATION", "XAUTHORITY"], (), "Environment variables to preserve"),
    ("lecture", TUPLE, "once", ("never", "once", "always"), "Lecture user about using sudo"),
]


class DefaultsTable:
    """
    The sudoers Defaults table: every known option with its type and current
    value. Created by init_defaults(); only the conversion engine mutates it.
    """

    def __init__(self, settings: Dict[str, DefaultSetting]):
        self._settings = settings

    def __contains__(self, name: object) -> bool:
        return name in self._settings

    def __len__(self) -> int:
        return len(self._settings)

    def names(self) -> List[str]:
        return sorted(self._settings.keys())

    def get(self, name: str) -> Optional[DefaultSetting]:
        return self._settings.get(name)

    def _require(self, name: str) -> DefaultSetting:
        setting = self._settings.get(name)
        if setting is None:
            raise DefaultsError(code="defaults.unknown", message='unknown defaults entry "{}"'.format(name), data={"name": name})
        return setting

    def parse_value(self, name: str, op: str, raw: Optional[str], negated: bool = False) -> Any:
        """
        Type-check a Defaults override and return its typed value.

        `op` is one of "=", "+=", "-="; `raw` is None for bare and negated forms.
        Negation yields False for every type (a flag turned off, a string or
        list cleared, a number disabled).
        """
        setting = self._require(name)

        if op != OP_SET and setting.type != LIST:
            raise DefaultsError(code="defaults.invalid_operator", message="{} may not be used with {}".format(op, name))

        if negated:
            if raw is not None:
                raise DefaultsError(code="defaults.invalid_value", message="negated option {} may not take a value".format(name))
            return False

        if setting.type == FLAG:
            if raw is not None:
                raise DefaultsError(code="defaults.invalid_value", message="option {} does not take a value".format(name))
            return True

        if raw is None:
            if setting.type == TUPLE:
                # A bare tuple option selects its first "on" value.
                return setting.values[1]
            raise DefaultsError(code="defaults.missing_value", message="no value specified for {}".format(name))

        if setting.type == INT:
            return self._to_int(name, raw)
        if setting.type == UINT:
            v = self._to_int(name, raw)
            if v < 0:
                raise DefaultsError(code="defaults.invalid_value", message="value for {} must not be negative: {}".format(name, raw))
            return v
        if setting.type == FLOAT:
            try:
                v = float(raw)
            except ValueError:
                raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name)) from None
            if not math.isfinite(v):
                raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name))
            return v
        if setting.type == MODE:
            try:
                v = int(raw, 8)
            except ValueError:
                raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name)) from None
            if v < 0 or v > 0o777:
                raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name))
            return v
        if setting.type == LIST:
            return raw.split()
        if setting.type == TUPLE:
            if raw not in setting.values:
                raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name))
            return raw
        return raw

    @staticmethod
    def _to_int(name: str, raw: str) -> int:
        try:
            return int(raw, 10)
        except ValueError:
            raise DefaultsError(code="defaults.invalid_value", message="value {} is invalid for option {}".format(raw, name)) from None

    def apply(self, name: str, op: str, value: Any) -> None:
        setting = self._require(name)
        if setting.type != LIST:
            setting.value = value
            return
        if value is False:
            setting.value = []
            return
        current = list(setting.value or [])
        if op == OP_ADD:
            current.extend(v for v in value if v not in current)
        elif op == OP_REMOVE:
            current = [v for v in current if v not in value]
        else:
            current = list(value)
        setting.value = current

    def to_dict(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(self._settings[name].value) for name in self.names()}


def init_defaults() -> DefaultsTable:
    """
    Build the built-in Defaults table. Safe to call more than once; each
    call returns a fresh table.
    """
    settings: Dict[str, DefaultSetting] = {}
    for name, typ, value, values, description in _BUILTIN:
        if typ not in TYPES:
            raise DefaultsError(code="defaults.init_failed", message="unable to initialize sudoers default values", data={"name": name})
        if name in settings:
            raise DefaultsError(code="defaults.init_failed", message="unable to initialize sudoers default values", data={"name": name})
        if typ == TUPLE and value not in values:
            raise DefaultsError(code="defaults.init_failed", message="unable to initialize sudoers default values", data={"name": name})
        settings[name] = DefaultSetting(name=name, type=typ, value=copy.deepcopy(value), values=values, description=description)
    return DefaultsTable(settings)
