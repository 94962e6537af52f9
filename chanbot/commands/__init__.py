"""Command handler framework for chanbot.

Provides the Command declaration, the HandlerRegistry mapping trigger
tokens to async handlers, and the built-in help command.
"""

from .base import Command, HandlerEntry, HandlerRegistry
from .core import CoreCommands

__all__ = [
    "Command",
    "CoreCommands",
    "HandlerEntry",
    "HandlerRegistry",
]
