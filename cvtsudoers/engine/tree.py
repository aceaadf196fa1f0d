from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Member kinds. The value of `Member.kind` is also the key it is rendered
# under in JSON output.
USERNAME = "username"
USERID = "userid"
USERGROUP = "usergroup"
GROUPID = "groupid"
NETGROUP = "netgroup"
NONUNIX_GROUP = "nonunixgroup"
NONUNIX_GID = "nonunixgid"
HOSTNAME = "hostname"
IPADDR = "ipaddr"
NETWORKADDR = "networkaddr"
COMMAND = "command"
USERALIAS = "useralias"
RUNASALIAS = "runasalias"
HOSTALIAS = "hostalias"
CMNDALIAS = "cmndalias"

# Alias types, keyed by their sudoers keyword.
USER_ALIAS = "User_Alias"
RUNAS_ALIAS = "Runas_Alias"
HOST_ALIAS = "Host_Alias"
CMND_ALIAS = "Cmnd_Alias"

ALIAS_MEMBER_KIND = {
    USER_ALIAS: USERALIAS,
    RUNAS_ALIAS: RUNASALIAS,
    HOST_ALIAS: HOSTALIAS,
    CMND_ALIAS: CMNDALIAS,
}

# Defaults binding types.
BIND_HOST = "host"
BIND_USER = "user"
BIND_RUNAS = "runas"
BIND_COMMAND = "command"


@dataclass(frozen=True)
class Member:
    kind: str
    value: Any
    negated: bool = False
    digest: Optional[Tuple[str, str]] = None  # (algorithm, hex)


@dataclass
class Alias:
    alias_type: str
    name: str
    members: List[Member]
    path: str
    line: int


@dataclass(frozen=True)
class DefaultsEntry:
    name: str
    op: str
    value: Any
    binding_type: Optional[str] = None
    binding: Tuple[Member, ...] = ()
    path: str = ""
    line: int = 0


@dataclass(frozen=True)
class CmndSpec:
    runasusers: Optional[Tuple[Member, ...]]
    runasgroups: Optional[Tuple[Member, ...]]
    tags: Tuple[Tuple[str, bool], ...]
    command: Member


@dataclass
class Privilege:
    hosts: List[Member]
    cmndspecs: List[CmndSpec] = field(default_factory=list)


@dataclass
class UserSpec:
    users: List[Member]
    privileges: List[Privilege] = field(default_factory=list)
    path: str = ""
    line: int = 0


@dataclass
class PolicyTree:
    """Everything parsed from one sudoers source and its includes."""

    defaults: List[DefaultsEntry] = field(default_factory=list)
    aliases: Dict[str, Dict[str, Alias]] = field(
        default_factory=lambda: {USER_ALIAS: {}, RUNAS_ALIAS: {}, HOST_ALIAS: {}, CMND_ALIAS: {}}
    )
    userspecs: List[UserSpec] = field(default_factory=list)

    def add_alias(self, alias: Alias) -> None:
        self.aliases[alias.alias_type][alias.name] = alias
