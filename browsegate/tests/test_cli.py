"""Tests for the command line interface."""
import json

from click.testing import CliRunner

from browsegate.cli.main import cli
from browsegate.workflow.local_backend import PageHandle
from browsegate.workflow.trace import ExecutionTrace


def test_compile_text_script(tmp_path):
    script = tmp_path / "search.txt"
    script.write_text("goto https://example.com\nfill #q shoes\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["compile", str(script)])

    assert result.exit_code == 0, result.output
    assert "2 command(s)" in result.output
    assert '"action": "fill"' in result.output


def test_compile_json_script(tmp_path):
    script = tmp_path / "search.json"
    script.write_text(json.dumps([{"kind": "goto", "args": {"url": "https://example.com"}}]), encoding="utf-8")

    result = CliRunner().invoke(cli, ["compile", str(script)])

    assert result.exit_code == 0, result.output
    assert "goto https://example.com" in result.output


def test_compile_reports_invalid_script(tmp_path):
    script = tmp_path / "bad.txt"
    script.write_text("hover #menu\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["compile", str(script)])

    assert result.exit_code == 1
    assert "unknown command type hover" in result.output


def test_run_requires_script_or_instructions():
    result = CliRunner().invoke(cli, ["run"])

    assert result.exit_code == 2
    assert "Provide --script or --instructions" in result.output


WORKFLOW_YAML = """
id: headline
steps:
  - id: open
    type: tool
    tool: browser.goto
    inputs:
      url: "{{inputs.url}}"
  - id: read
    type: tool
    tool: browser.extract
    inputs:
      selector: h1
      as: title
"""


class StubDriver:
    def __init__(self):
        self.closed = False

    async def open_page(self, url):
        return PageHandle(page_id="page-1", url=url)

    async def extract(self, page_id, selector, *, fmt="text", multiple=False):
        return "Welcome"

    async def close(self):
        self.closed = True


def test_workflow_run_writes_trace(tmp_path, monkeypatch):
    (tmp_path / "headline.workflow.yaml").write_text(WORKFLOW_YAML, encoding="utf-8")
    driver = StubDriver()

    async def factory():
        return driver

    monkeypatch.setattr("browsegate.cli.commands.workflow.playwright_driver_factory", lambda settings: factory)
    trace_file = tmp_path / "trace.json"

    result = CliRunner().invoke(
        cli,
        ["workflow", "run", "headline", "--dir", str(tmp_path), "--input", "url=https://example.com",
         "--user-id", "u-3", "--trace-out", str(trace_file)],
    )

    assert result.exit_code == 0, result.output
    assert "Trace written" in result.output
    assert driver.closed
    trace = ExecutionTrace.from_dict(json.loads(trace_file.read_text(encoding="utf-8")))
    assert trace.workflow_id == "headline"
    assert trace.task_key == "headline"
    assert trace.user_id == "u-3"
    assert [step.tool for step in trace.steps] == ["browser.goto", "browser.extract"]
    assert trace.steps[0].inputs == {"url": "https://example.com"}
    assert trace.steps[1].outputs == "Welcome"


def test_workflow_run_reports_missing_workflow(tmp_path):
    result = CliRunner().invoke(cli, ["workflow", "run", "nowhere", "--dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Workflow file not found" in result.output


def test_workflow_run_rejects_malformed_input(tmp_path):
    (tmp_path / "headline.workflow.yaml").write_text(WORKFLOW_YAML, encoding="utf-8")

    result = CliRunner().invoke(cli, ["workflow", "run", "headline", "--dir", str(tmp_path), "--input", "url"])

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output
