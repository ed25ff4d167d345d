"""Tests for the YAML workflow runner."""
import pytest

from browsegate.workflow.engine import WorkflowDefinition, WorkflowError, interpolate, run_workflow, run_workflow_with_trace


WORKFLOW_YAML = """
id: search
steps:
  - id: open
    type: tool
    tool: browser.goto
    inputs:
      url: "{{inputs.url}}"
  - id: note
    type: comment
  - id: read
    type: tool
    tool: browser.extract
    inputs:
      selector: h1
      page: "{{steps.open.outputs.page}}"
      labels: ["{{inputs.label}}", "fixed"]
"""


class RecordingInvoker:
    def __init__(self):
        self.calls = []

    async def __call__(self, tool, inputs):
        self.calls.append((tool, inputs))
        if tool == "browser.goto":
            return {"page": "page-1"}
        return {"text": "Hello"}


def test_interpolate_resolves_whole_string_references_only():
    context = {"inputs": {"url": "https://a.test", "n": 3}, "steps": {"s": {"outputs": {"items": ["x", "y"]}}}}

    assert interpolate("{{inputs.n}}", context) == 3
    assert interpolate("{{ steps.s.outputs.items.1 }}", context) == "y"
    assert interpolate("go to {{inputs.url}}", context) == "go to {{inputs.url}}"
    assert interpolate("{{inputs.missing.deeper}}", context) is None
    assert interpolate({"a": ["{{inputs.url}}"]}, context) == {"a": ["https://a.test"]}


@pytest.mark.asyncio
async def test_run_workflow_skips_non_tool_steps_and_chains_outputs():
    invoker = RecordingInvoker()
    definition = WorkflowDefinition.from_yaml(WORKFLOW_YAML)

    context = await run_workflow(definition, {"url": "https://a.test", "label": "title"}, invoker)

    assert invoker.calls == [
        ("browser.goto", {"url": "https://a.test"}),
        ("browser.extract", {"selector": "h1", "page": "page-1", "labels": ["title", "fixed"]}),
    ]
    assert context["steps"]["read"] == {"outputs": {"text": "Hello"}}
    assert "note" not in context["steps"]


@pytest.mark.asyncio
async def test_tool_step_without_tool_is_an_error():
    definition = WorkflowDefinition.from_dict({"id": "bad", "steps": [{"id": "s1", "type": "tool"}]})

    with pytest.raises(WorkflowError, match="s1"):
        await run_workflow(definition, {}, RecordingInvoker())


@pytest.mark.asyncio
async def test_run_with_trace_records_each_tool_step():
    definition = WorkflowDefinition.from_yaml(WORKFLOW_YAML)

    _, trace = await run_workflow_with_trace(
        definition, {"url": "https://a.test", "label": "t"}, RecordingInvoker(), user_id="u-1", task_key="search"
    )

    assert trace.workflow_id == "search"
    assert [step.step_id for step in trace.steps] == ["open", "read"]
    assert trace.steps[0].tool == "browser.goto"
    assert trace.steps[0].outputs == {"page": "page-1"}
    assert trace.finished_at is not None


def test_load_reads_workflow_file(tmp_path):
    (tmp_path / "search.workflow.yaml").write_text(WORKFLOW_YAML.replace("id: search\n", ""), encoding="utf-8")

    definition = WorkflowDefinition.load("search", tmp_path)

    assert definition.id == "search"
    assert [step.id for step in definition.steps] == ["open", "note", "read"]


def test_load_missing_file(tmp_path):
    with pytest.raises(WorkflowError, match="not found"):
        WorkflowDefinition.load("nope", tmp_path)


def test_step_without_id_is_rejected():
    with pytest.raises(WorkflowError):
        WorkflowDefinition.from_dict({"steps": [{"type": "tool", "tool": "x"}]})
