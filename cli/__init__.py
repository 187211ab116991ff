"""Command line interface for the sensor store daemon and its query service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` must keep resolving to the module so tests can patch names on it;
# the Typer instance is reached as ``cli.app.app``.

__all__ = []
