"""Command line client for the biogas monitor API."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    # ``cli.app`` must stay the module (tests patch names on it), not the Typer object.
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)


__all__: list[str] = []
