__version__ = "0.1.0"

# Version of the sudoers grammar understood by cvtsudoers.engine.parser.
SUDOERS_GRAMMAR_VERSION = 46

__all__ = ["__version__", "SUDOERS_GRAMMAR_VERSION"]
