from __future__ import annotations

import os
import pwd
import socket
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .errors import ContextError

INVOKING_USER_ENV = "SUDO_USER"
FALLBACK_HOSTNAME = "localhost"
SUPERUSER_UID = 0


@dataclass(frozen=True)
class Identity:
    name: str
    uid: int
    gid: int
    home: str
    shell: str

    @classmethod
    def from_passwd(cls, pw: Any) -> "Identity":
        return cls(name=pw.pw_name, uid=pw.pw_uid, gid=pw.pw_gid, home=pw.pw_dir, shell=pw.pw_shell)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "uid": self.uid, "gid": self.gid, "home": self.home, "shell": self.shell}


@dataclass(frozen=True)
class ExecutionContext:
    """
    Read-only identity/host record consulted by the conversion engine for
    constructs that mean "the current user" or "the current host".

    Hard rules:
    - Built once per invocation, never mutated.
    - Describes who is converting, never who is being granted anything.
    """

    identity: Identity
    canonical_hostname: str
    short_hostname: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "canonical_hostname": self.canonical_hostname,
            "short_hostname": self.short_hostname,
        }


def split_hostname(hostname: Optional[str]) -> tuple[str, str]:
    """
    Return (canonical, short). The short form stops at the first '.';
    an unresolvable (None/empty) hostname becomes "localhost" for both.
    """
    if not hostname:
        return FALLBACK_HOSTNAME, FALLBACK_HOSTNAME
    short = hostname.split(".", 1)[0]
    return hostname, short or hostname


def _lookup(fn: Callable[[Any], Any], key: Any) -> Optional[Identity]:
    try:
        return Identity.from_passwd(fn(key))
    except KeyError:
        return None


def resolve_identity(
    *,
    environ: Mapping[str, str],
    geteuid: Callable[[], int],
    getuid: Callable[[], int],
    getpwnam: Callable[[str], Any],
    getpwuid: Callable[[int], Any],
) -> Identity:
    identity: Optional[Identity] = None
    if geteuid() == SUPERUSER_UID:
        user = environ.get(INVOKING_USER_ENV)
        if user:
            identity = _lookup(getpwnam, user)

    if identity is None:
        identity = _lookup(getpwuid, getuid())
    if identity is None:
        raise ContextError(
            code="context.no_identity",
            message="you do not exist in the passwd database",
            data={"uid": getuid()},
        )
    return identity


def resolve_hostname(gethostname: Callable[[], str]) -> tuple[str, str]:
    try:
        hostname = gethostname()
    except OSError:
        hostname = None
    return split_hostname(hostname)


def build_execution_context(
    *,
    environ: Optional[Mapping[str, str]] = None,
    geteuid: Callable[[], int] = os.geteuid,
    getuid: Callable[[], int] = os.getuid,
    getpwnam: Callable[[str], Any] = pwd.getpwnam,
    getpwuid: Callable[[int], Any] = pwd.getpwuid,
    gethostname: Callable[[], str] = socket.gethostname,
) -> ExecutionContext:
    identity = resolve_identity(
        environ=os.environ if environ is None else environ,
        geteuid=geteuid,
        getuid=getuid,
        getpwnam=getpwnam,
        getpwuid=getpwuid,
    )
    canonical, short = resolve_hostname(gethostname)
    return ExecutionContext(identity=identity, canonical_hostname=canonical, short_hostname=short)
