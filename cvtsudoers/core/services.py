from __future__ import annotations

from typing import Any, Optional, Tuple


class EnvironmentServices:
    """
    Environment queries the conversion engine may make while parsing and
    exporting a policy. Subclasses decide how real the answers are.
    """

    def init_envtables(self) -> bool:
        raise NotImplementedError

    def user_is_exempt(self) -> bool:
        raise NotImplementedError

    def group_plugin_query(self, user: str, group: str, pw: Optional[Any] = None) -> bool:
        raise NotImplementedError

    def get_interfaces(self) -> Tuple[Any, ...]:
        raise NotImplementedError

    def setspent(self) -> None:
        raise NotImplementedError

    def endspent(self) -> None:
        raise NotImplementedError


class InertEnvironmentServices(EnvironmentServices):
    """
    Conversion-only stand-ins. These answers are constants and are never a
    security decision: the converter does not grant, deny or execute anything.
    """

    def init_envtables(self) -> bool:
        return True

    def user_is_exempt(self) -> bool:
        return False

    def group_plugin_query(self, user: str, group: str, pw: Optional[Any] = None) -> bool:
        return False

    def get_interfaces(self) -> Tuple[Any, ...]:
        return ()

    def setspent(self) -> None:
        return None

    def endspent(self) -> None:
        return None
