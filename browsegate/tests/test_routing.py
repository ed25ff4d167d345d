"""Tests for backend selection."""
import pytest

from browsegate.remote.models import CreateTaskRequest
from browsegate.workflow.config import Settings
from browsegate.workflow.routing import infer_complexity, prefer_remote


def steps(count):
    return [{"kind": "click", "args": {"selector": f"#b{i}"}} for i in range(count)]


@pytest.mark.parametrize(
    "request_kwargs, expected",
    [
        ({"dsl_json": steps(5)}, False),
        ({"dsl_json": steps(6)}, True),
        ({"targets": ["a", "b", "c"]}, False),
        ({"targets": ["a", "b", "c", "d"]}, True),
        ({"instructions": "x" * 500}, False),
        ({"instructions": "x" * 501}, True),
    ],
)
def test_heuristics(request_kwargs, expected):
    request = CreateTaskRequest(task_type="demo", **request_kwargs)
    assert prefer_remote(request) is expected
    assert infer_complexity(request) == ("complex" if expected else "simple")


def test_explicit_mode_beats_heuristics():
    big = CreateTaskRequest(task_type="demo", dsl_json=steps(10), execution_mode="simple")
    small = CreateTaskRequest(task_type="demo", dsl_json=steps(1), execution_mode="complex")

    assert prefer_remote(big) is False
    assert prefer_remote(small) is True


def test_force_remote_respects_explicit_simple():
    assert prefer_remote(CreateTaskRequest(task_type="demo"), force_remote=True) is True
    assert prefer_remote(CreateTaskRequest(task_type="demo", execution_mode="simple"), force_remote=True) is False


def test_force_local_respects_explicit_complex():
    big = CreateTaskRequest(task_type="demo", dsl_json=steps(10))
    assert prefer_remote(big, force_remote=False) is False
    assert prefer_remote(CreateTaskRequest(task_type="demo", execution_mode="complex"), force_remote=False) is True


@pytest.mark.parametrize("value, expected", [("true", True), ("1", True), ("false", False), ("0", False), ("", None), ("maybe", None)])
def test_use_remote_env_flag(monkeypatch, value, expected):
    monkeypatch.setenv("BROWSEGATE_USE_REMOTE", value)
    assert Settings().use_remote is expected
