"""CLI package for driving the piggy-bank relay's command surface."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# The Typer application lives in ``cli.app`` and is not re-exported here so
# that ``cli.app`` keeps resolving to the module; tests patch attributes on
# that module path.

__all__ = []
