# Core package initialization
# Framework-free building blocks shared by every layer; identity and
# api_utils depend on Flask and are imported from their modules directly.

from . import config, exceptions, results

__all__ = [
    "config",
    "exceptions",
    "results",
]
