"""Tests for the script compiler."""
import logging

import pytest

from browsegate.remote.models import CreateTaskRequest
from browsegate.script import (
    ClickCommand,
    ExtractCommand,
    FillCommand,
    GotoCommand,
    InvalidScript,
    UnsupportedCommand,
    WaitForNavigationCommand,
    WaitForSelectorCommand,
    command_to_dict,
    compile_request_commands,
    compile_structured,
    compile_text,
    to_operations,
    tokenize,
)


def test_structured_preserves_length_and_kinds():
    raw = [
        {"kind": "goto", "args": {"url": "https://example.com"}},
        {"kind": "fill", "args": {"selector": "#q", "value": "shoes"}},
        {"kind": "click", "args": {"selector": "button"}},
        {"kind": "waitForSelector", "args": {"selector": ".results", "timeoutMs": 5000}},
        {"kind": "waitForNavigation", "args": {}},
        {"kind": "extract", "args": {"selector": "h3", "as": "titles", "multiple": True}},
    ]

    commands = compile_structured(raw)

    assert len(commands) == len(raw)
    assert [command.kind for command in commands] == [item["kind"] for item in raw]
    assert commands[3] == WaitForSelectorCommand(selector=".results", timeout_ms=5000.0)
    assert commands[5] == ExtractCommand(selector="h3", as_="titles", multiple=True)


def test_structured_goto_without_url_fails():
    with pytest.raises(InvalidScript) as excinfo:
        compile_structured([{"kind": "goto", "args": {}}])

    assert "url" in str(excinfo.value)
    assert excinfo.value.index == 0


def test_structured_accepts_type_alias():
    commands = compile_structured([{"type": "click", "args": {"selector": "#go"}}])
    assert commands == [ClickCommand(selector="#go")]


@pytest.mark.parametrize(
    "raw",
    [
        {"kind": "goto"},
        [{"kind": "goto"}],
        ["goto"],
        [{"args": {"url": "https://example.com"}}],
        [{"kind": "fill", "args": {"selector": "#a"}}],
        [{"kind": "extract", "args": {"selector": "h1"}}],
    ],
)
def test_structured_rejects_malformed_input(raw):
    with pytest.raises(InvalidScript):
        compile_structured(raw)


def test_structured_unknown_kind_is_unsupported():
    with pytest.raises(UnsupportedCommand) as excinfo:
        compile_structured([{"kind": "goto", "args": {"url": "a"}}, {"kind": "hover", "args": {}}])

    assert excinfo.value.kind == "hover"
    assert excinfo.value.index == 1


def test_text_goto():
    assert compile_text("goto https://example.com") == [GotoCommand(url="https://example.com")]


def test_text_fill_joins_value_tokens():
    assert compile_text("fill #name John Doe") == [FillCommand(selector="#name", value="John Doe")]


def test_text_skips_comments_and_blank_lines_and_counts_retained_lines():
    script = """
    # open the page
    goto https://example.com

    hover #menu
    """

    with pytest.raises(UnsupportedCommand) as excinfo:
        compile_text(script)

    assert str(excinfo.value) == "Line 2: unknown command type hover"
    assert excinfo.value.line == 2


def test_text_aliases_quotes_and_multiple_flag():
    script = "\n".join(
        [
            'CLICK "button[type=submit]"',
            "wait_for_selector .results 2500",
            "waitForNavigation",
            'extract ".results h3" titles multiple',
        ]
    )

    commands = compile_text(script)

    assert commands == [
        ClickCommand(selector="button[type=submit]"),
        WaitForSelectorCommand(selector=".results", timeout_ms=2500.0),
        WaitForNavigationCommand(),
        ExtractCommand(selector=".results h3", as_="titles", multiple=True),
    ]


def test_text_missing_fields_names_the_line():
    with pytest.raises(InvalidScript, match="Line 2"):
        compile_text("goto https://example.com\nfill #only-selector")


def test_text_invalid_timeout_is_dropped_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="browsegate.script.compiler"):
        commands = compile_text("wait_for_selector #ready soon")

    assert commands == [WaitForSelectorCommand(selector="#ready")]
    assert "timeoutMs" not in commands[0].args()
    assert "line 1" in caplog.text


def test_tokenize_keeps_quoted_segments():
    assert tokenize('fill "#search box" "red shoes" now') == ["fill", "#search box", "red shoes", "now"]


def test_to_operations_passes_args_through():
    commands = compile_text("goto https://example.com\nextract h1 title")

    assert to_operations(commands) == [
        {"action": "goto", "args": {"url": "https://example.com"}},
        {"action": "extract", "args": {"selector": "h1", "as": "title"}},
    ]


def test_compile_request_commands_writes_structured_form_back():
    request = CreateTaskRequest(task_type="demo", dsl_text="goto https://example.com\nclick #go")

    commands = compile_request_commands(request)

    assert commands == [GotoCommand(url="https://example.com"), ClickCommand(selector="#go")]
    assert request.dsl_json == [command_to_dict(command) for command in commands]
    # the written-back form compiles to the same commands
    assert compile_structured(request.dsl_json) == commands


def test_compile_request_commands_without_script():
    assert compile_request_commands(CreateTaskRequest(task_type="freeform", instructions="do it")) is None


@pytest.mark.parametrize("flag", ["false", "true", 1, 0])
def test_structured_extract_rejects_non_boolean_multiple(flag):
    with pytest.raises(InvalidScript, match="multiple"):
        compile_structured([{"kind": "extract", "args": {"selector": "h1", "as": "t", "multiple": flag}}])


def test_structured_extract_multiple_passes_through_only_when_given():
    commands = compile_structured(
        [
            {"kind": "extract", "args": {"selector": "h1", "as": "a"}},
            {"kind": "extract", "args": {"selector": "h2", "as": "b", "multiple": False}},
            {"kind": "extract", "args": {"selector": "h3", "as": "c", "multiple": True}},
        ]
    )

    assert [command.args() for command in commands] == [
        {"selector": "h1", "as": "a"},
        {"selector": "h2", "as": "b", "multiple": False},
        {"selector": "h3", "as": "c", "multiple": True},
    ]


@pytest.mark.parametrize("value", ["nan", "inf", "-inf", float("nan"), float("inf")])
def test_non_finite_timeouts_are_dropped_with_warning(caplog, value):
    with caplog.at_level(logging.WARNING, logger="browsegate.script.compiler"):
        commands = compile_structured([{"kind": "waitForSelector", "args": {"selector": "#x", "timeoutMs": value}}])

    assert commands == [WaitForSelectorCommand(selector="#x")]
    assert "timeoutMs" not in commands[0].args()
    assert "index 0" in caplog.text


def test_text_non_finite_timeout_is_dropped():
    assert compile_text("wait_for_navigation inf") == [WaitForNavigationCommand()]
