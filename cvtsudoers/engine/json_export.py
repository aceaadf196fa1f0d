from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from cvtsudoers.contract_store import contracts
from cvtsudoers.core.defaults import LIST, LIST_OPERATIONS, OP_SET, DefaultsTable
from cvtsudoers.core.errors import ConversionError

from . import tree as t

SCHEMA_NAME = "sudoers_json.schema.json"

_ALIAS_SECTIONS = (
    (t.USER_ALIAS, "User_Aliases"),
    (t.RUNAS_ALIAS, "Runas_Aliases"),
    (t.HOST_ALIAS, "Host_Aliases"),
    (t.CMND_ALIAS, "Command_Aliases"),
)


def member_json(m: t.Member) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if m.negated:
        out["negated"] = True
    out[m.kind] = m.value
    if m.digest is not None:
        algorithm, digest = m.digest
        out[algorithm] = digest
    return out


def members_json(members) -> List[Dict[str, Any]]:
    return [member_json(m) for m in members]


def option_json(entry: t.DefaultsEntry, defaults: DefaultsTable) -> Dict[str, Any]:
    setting = defaults.get(entry.name)
    if setting is not None and setting.type == LIST and entry.value is not False:
        return {"operation": LIST_OPERATIONS.get(entry.op, LIST_OPERATIONS[OP_SET]), entry.name: list(entry.value)}
    return {entry.name: entry.value}


def _binding_key(entry: t.DefaultsEntry) -> Tuple[Optional[str], Tuple[t.Member, ...]]:
    return entry.binding_type, entry.binding


def defaults_json(entries: List[t.DefaultsEntry], defaults: DefaultsTable) -> List[Dict[str, Any]]:
    """Group consecutive Defaults options that share a binding."""
    out: List[Dict[str, Any]] = []
    last_key: Any = object()
    for entry in entries:
        key = _binding_key(entry)
        if key != last_key:
            group: Dict[str, Any] = {}
            if entry.binding_type is not None:
                group["Binding"] = {"type": entry.binding_type, "members": members_json(entry.binding)}
            group["Options"] = []
            out.append(group)
            last_key = key
        out[-1]["Options"].append(option_json(entry, defaults))
    return out


def _cmndspec_key(cs: t.CmndSpec) -> Tuple[Any, ...]:
    return cs.runasusers, cs.runasgroups, cs.tags


def cmndspecs_json(cmndspecs: List[t.CmndSpec]) -> List[Dict[str, Any]]:
    """Commands in a row with identical runas and tags share one element."""
    out: List[Dict[str, Any]] = []
    last_key: Any = object()
    for cs in cmndspecs:
        key = _cmndspec_key(cs)
        if key != last_key:
            spec: Dict[str, Any] = {}
            if cs.runasusers:
                spec["runasusers"] = members_json(cs.runasusers)
            if cs.runasgroups:
                spec["runasgroups"] = members_json(cs.runasgroups)
            if cs.tags:
                spec["Options"] = [{name: value} for name, value in cs.tags]
            spec["Commands"] = []
            out.append(spec)
            last_key = key
        out[-1]["Commands"].append(member_json(cs.command))
    return out


def userspecs_json(userspecs: List[t.UserSpec]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for us in userspecs:
        for priv in us.privileges:
            out.append(
                {
                    "User_List": members_json(us.users),
                    "Host_List": members_json(priv.hosts),
                    "Cmnd_Specs": cmndspecs_json(priv.cmndspecs),
                }
            )
    return out


def build_json(policy: t.PolicyTree, defaults: DefaultsTable) -> Dict[str, Any]:
    doc: Dict[str, Any] = {}
    if policy.defaults:
        doc["Defaults"] = defaults_json(policy.defaults, defaults)
    for alias_type, section in _ALIAS_SECTIONS:
        table = policy.aliases.get(alias_type) or {}
        if table:
            doc[section] = {name: members_json(table[name].members) for name in table}
    if policy.userspecs:
        doc["User_Specs"] = userspecs_json(policy.userspecs)
    return doc


def render_json(policy: t.PolicyTree, defaults: DefaultsTable) -> str:
    doc = build_json(policy, defaults)
    errors = contracts().validate(SCHEMA_NAME, doc)
    if errors:
        raise ConversionError(
            code="export.schema_invalid",
            message="Rendered JSON does not validate against {}".format(SCHEMA_NAME),
            data={"errors": errors},
        )
    try:
        text = json.dumps(doc, ensure_ascii=False, indent=4, allow_nan=False)
    except ValueError as e:
        raise ConversionError(code="export.invalid_json", message="Rendered policy is not valid JSON: {}".format(e)) from e
    return text + "\n"
