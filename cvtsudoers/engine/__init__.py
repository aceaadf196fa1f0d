from .export import EXPORTERS, export_sudoers
from .parser import SudoersParser
from .tree import PolicyTree

__all__ = ["EXPORTERS", "export_sudoers", "SudoersParser", "PolicyTree"]
