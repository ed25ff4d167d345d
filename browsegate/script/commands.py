"""Typed command variants produced by the script compiler."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Literal, Optional, Union

CommandKind = Literal[
    "goto",
    "click",
    "fill",
    "waitForSelector",
    "waitForNavigation",
    "extract",
]

COMMAND_KINDS: tuple[str, ...] = (
    "goto",
    "click",
    "fill",
    "waitForSelector",
    "waitForNavigation",
    "extract",
)


class InvalidScript(ValueError):
    """Raised when a script or one of its commands is malformed."""

    def __init__(self, message: str, *, index: Optional[int] = None, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.index = index
        self.line = line


class UnsupportedCommand(InvalidScript):
    """Raised when a command kind is not one of :data:`COMMAND_KINDS`."""

    def __init__(self, kind: str, message: str, *, index: Optional[int] = None, line: Optional[int] = None) -> None:
        super().__init__(message, index=index, line=line)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class GotoCommand:
    kind: ClassVar[str] = "goto"

    url: str

    def args(self) -> Dict[str, Any]:
        return {"url": self.url}


@dataclass(frozen=True, slots=True)
class ClickCommand:
    kind: ClassVar[str] = "click"

    selector: str

    def args(self) -> Dict[str, Any]:
        return {"selector": self.selector}


@dataclass(frozen=True, slots=True)
class FillCommand:
    kind: ClassVar[str] = "fill"

    selector: str
    value: str

    def args(self) -> Dict[str, Any]:
        return {"selector": self.selector, "value": self.value}


@dataclass(frozen=True, slots=True)
class WaitForSelectorCommand:
    kind: ClassVar[str] = "waitForSelector"

    selector: str
    timeout_ms: Optional[float] = None

    def args(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"selector": self.selector}
        if self.timeout_ms is not None:
            payload["timeoutMs"] = self.timeout_ms
        return payload


@dataclass(frozen=True, slots=True)
class WaitForNavigationCommand:
    kind: ClassVar[str] = "waitForNavigation"

    timeout_ms: Optional[float] = None

    def args(self) -> Dict[str, Any]:
        if self.timeout_ms is None:
            return {}
        return {"timeoutMs": self.timeout_ms}


@dataclass(frozen=True, slots=True)
class ExtractCommand:
    """Extract text under ``selector`` and store it in the output as ``as_``."""

    kind: ClassVar[str] = "extract"

    selector: str
    as_: str
    multiple: Optional[bool] = None

    def args(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"selector": self.selector, "as": self.as_}
        if self.multiple is not None:
            payload["multiple"] = self.multiple
        return payload


Command = Union[
    GotoCommand,
    ClickCommand,
    FillCommand,
    WaitForSelectorCommand,
    WaitForNavigationCommand,
    ExtractCommand,
]


def command_to_dict(command: Command) -> Dict[str, Any]:
    """Return the ``{"kind", "args"}`` wire shape of a compiled command."""

    return {"kind": command.kind, "args": command.args()}


def command_label(command: Command) -> str:
    """Short human readable description used in logs and traces."""

    if isinstance(command, GotoCommand):
        return f"goto {command.url}"
    if isinstance(command, (ClickCommand, WaitForSelectorCommand)):
        return f"{command.kind} {command.selector}"
    if isinstance(command, FillCommand):
        return f"fill {command.selector}"
    if isinstance(command, ExtractCommand):
        return f"extract {command.selector} as {command.as_}"
    return command.kind
