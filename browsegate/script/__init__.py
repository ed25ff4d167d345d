"""Automation script compilation."""

from .commands import (
    COMMAND_KINDS,
    ClickCommand,
    Command,
    ExtractCommand,
    FillCommand,
    GotoCommand,
    InvalidScript,
    UnsupportedCommand,
    WaitForNavigationCommand,
    WaitForSelectorCommand,
    command_label,
    command_to_dict,
)
from .compiler import compile_request_commands, compile_structured, compile_text, to_operations, tokenize

__all__ = [
    "COMMAND_KINDS",
    "ClickCommand",
    "Command",
    "ExtractCommand",
    "FillCommand",
    "GotoCommand",
    "InvalidScript",
    "UnsupportedCommand",
    "WaitForNavigationCommand",
    "WaitForSelectorCommand",
    "command_label",
    "command_to_dict",
    "compile_request_commands",
    "compile_structured",
    "compile_text",
    "to_operations",
    "tokenize",
]
