"""Compile structured or line-oriented automation scripts into commands."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .commands import (
    ClickCommand,
    Command,
    ExtractCommand,
    FillCommand,
    GotoCommand,
    InvalidScript,
    UnsupportedCommand,
    WaitForNavigationCommand,
    WaitForSelectorCommand,
    command_to_dict,
)

logger = logging.getLogger(__name__)

# Lower-cased first tokens accepted by the text syntax.
_TEXT_ALIASES: Dict[str, str] = {
    "goto": "goto",
    "click": "click",
    "fill": "fill",
    "waitforselector": "waitForSelector",
    "wait_for_selector": "waitForSelector",
    "waitfornavigation": "waitForNavigation",
    "wait_for_navigation": "waitForNavigation",
    "extract": "extract",
}


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _optional_timeout(value: Any, where: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        value = str(value)
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        timeout = None
    if timeout is None or not math.isfinite(timeout):
        logger.warning("Ignoring non-numeric timeout %r at %s", value, where)
        return None
    return timeout


def _build_structured(kind: str, args: Mapping[str, Any], index: int) -> Command:
    if kind == "goto":
        url = args.get("url")
        if not _non_empty_str(url):
            raise InvalidScript(f"goto command at index {index} requires a url", index=index)
        return GotoCommand(url=url)
    if kind == "click":
        selector = args.get("selector")
        if not _non_empty_str(selector):
            raise InvalidScript(f"click command at index {index} requires a selector", index=index)
        return ClickCommand(selector=selector)
    if kind == "fill":
        selector = args.get("selector")
        value = args.get("value")
        if not _non_empty_str(selector) or not isinstance(value, str):
            raise InvalidScript(f"fill command at index {index} requires selector and value", index=index)
        return FillCommand(selector=selector, value=value)
    if kind == "waitForSelector":
        selector = args.get("selector")
        if not _non_empty_str(selector):
            raise InvalidScript(f"waitForSelector command at index {index} requires selector", index=index)
        timeout = _optional_timeout(args.get("timeoutMs"), f"index {index}")
        return WaitForSelectorCommand(selector=selector, timeout_ms=timeout)
    if kind == "waitForNavigation":
        timeout = _optional_timeout(args.get("timeoutMs"), f"index {index}")
        return WaitForNavigationCommand(timeout_ms=timeout)
    if kind == "extract":
        selector = args.get("selector")
        as_ = args.get("as")
        if not _non_empty_str(selector) or not _non_empty_str(as_):
            raise InvalidScript(f"extract command at index {index} requires selector and as", index=index)
        multiple = args.get("multiple")
        if multiple is not None and not isinstance(multiple, bool):
            raise InvalidScript(f"extract command at index {index} has a non-boolean multiple flag", index=index)
        return ExtractCommand(selector=selector, as_=as_, multiple=multiple)
    raise UnsupportedCommand(kind, f"Unknown command kind at index {index}: {kind}", index=index)


def compile_structured(raw: Any) -> List[Command]:
    """Validate a list of ``{"kind", "args"}`` mappings and return typed commands.

    The remote task API names the discriminator ``type``; it is accepted as an
    alias for ``kind``.
    """

    if not isinstance(raw, (list, tuple)):
        raise InvalidScript("Script must be a list of commands")

    commands: List[Command] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise InvalidScript(f"Command at index {index} must be an object", index=index)

        kind = item.get("kind", item.get("type"))
        if not isinstance(kind, str) or not kind:
            raise InvalidScript(f"Command at index {index} is missing a valid kind", index=index)

        args = item.get("args")
        if not isinstance(args, Mapping):
            raise InvalidScript(f"Command at index {index} is missing args", index=index)

        commands.append(_build_structured(kind, args, index))
    return commands


def tokenize(line: str) -> List[str]:
    """Split ``line`` on whitespace, keeping double-quoted segments together.

    Quotes are removed and cannot be escaped.
    """

    tokens: List[str] = []
    current: List[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if not in_quotes and ch.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(ch)
    if current:
        tokens.append("".join(current))
    return tokens


def _build_text(kind: str, rest: Sequence[str], line_no: int) -> Command:
    where = f"line {line_no}"
    if kind == "goto":
        if not rest:
            raise InvalidScript(f"Line {line_no}: goto requires a URL", line=line_no)
        return GotoCommand(url=rest[0])
    if kind == "click":
        if not rest:
            raise InvalidScript(f"Line {line_no}: click requires a selector", line=line_no)
        return ClickCommand(selector=rest[0])
    if kind == "fill":
        value = " ".join(rest[1:])
        if not rest or not value:
            raise InvalidScript(f"Line {line_no}: fill requires selector and value", line=line_no)
        return FillCommand(selector=rest[0], value=value)
    if kind == "waitForSelector":
        if not rest:
            raise InvalidScript(f"Line {line_no}: waitForSelector requires a selector", line=line_no)
        timeout = _optional_timeout(rest[1], where) if len(rest) > 1 else None
        return WaitForSelectorCommand(selector=rest[0], timeout_ms=timeout)
    if kind == "waitForNavigation":
        timeout = _optional_timeout(rest[0], where) if rest else None
        return WaitForNavigationCommand(timeout_ms=timeout)
    # extract
    if len(rest) < 2:
        raise InvalidScript(f"Line {line_no}: extract requires selector and as", line=line_no)
    multiple = True if len(rest) > 2 and rest[2] == "multiple" else None
    return ExtractCommand(selector=rest[0], as_=rest[1], multiple=multiple)


def compile_text(text: str) -> List[Command]:
    """Compile the line-oriented script syntax.

    Example::

        # comments and blank lines are ignored
        goto https://example.com
        fill #name John Doe
        click "button[type=submit]"
        wait_for_selector .results 5000
        extract ".results h3" titles multiple
    """

    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line and not line.startswith("#")]

    commands: List[Command] = []
    for offset, line in enumerate(lines):
        line_no = offset + 1
        tokens = tokenize(line)
        if not tokens:
            continue
        raw_kind, *rest = tokens
        kind = _TEXT_ALIASES.get(raw_kind.lower())
        if kind is None:
            raise UnsupportedCommand(
                raw_kind,
                f"Line {line_no}: unknown command type {raw_kind}",
                line=line_no,
            )
        commands.append(_build_text(kind, rest, line_no))
    return commands


def to_operations(commands: Sequence[Command]) -> List[Dict[str, Any]]:
    """Translate commands into backend operations; args pass through unchanged."""

    return [{"action": command.kind, "args": command.args()} for command in commands]


def compile_request_commands(request: Any) -> Optional[List[Command]]:
    """Compile the script embedded in a task request, if it carries one.

    ``request`` is a :class:`browsegate.remote.models.CreateTaskRequest`. When
    the script arrives as text, the structured form is written back to
    ``request.dsl_json`` so the remote backend receives validated commands.
    """

    if request.dsl_json:
        return compile_structured(request.dsl_json)
    if request.dsl_text:
        commands = compile_text(request.dsl_text)
        request.dsl_json = [command_to_dict(command) for command in commands]
        return commands
    return None
