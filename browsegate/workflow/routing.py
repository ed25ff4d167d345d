"""Backend selection policy for task requests."""
from __future__ import annotations

import logging
from typing import Literal, Optional

from browsegate.remote.models import CreateTaskRequest

logger = logging.getLogger(__name__)

Complexity = Literal["simple", "complex"]

MAX_SIMPLE_STEPS = 5
MAX_SIMPLE_TARGETS = 3
MAX_SIMPLE_INSTRUCTION_LENGTH = 500


def _looks_complex(request: CreateTaskRequest) -> bool:
    step_count = len(request.dsl_json) if isinstance(request.dsl_json, list) else 0
    target_count = len(request.targets or [])
    instruction_length = len(request.instructions or "")
    return (
        step_count > MAX_SIMPLE_STEPS
        or target_count > MAX_SIMPLE_TARGETS
        or instruction_length > MAX_SIMPLE_INSTRUCTION_LENGTH
    )


def infer_complexity(request: CreateTaskRequest) -> Complexity:
    """Classify a request; an explicit ``simple``/``complex`` mode wins."""

    if request.execution_mode == "simple":
        return "simple"
    if request.execution_mode == "complex":
        return "complex"
    return "complex" if _looks_complex(request) else "simple"


def prefer_remote(request: CreateTaskRequest, force_remote: Optional[bool] = None) -> bool:
    """Return True when the remote backend should be tried first.

    ``force_remote`` is the environment-level override: ``True`` forces remote
    unless the request explicitly asks for ``simple``; ``False`` forces local
    unless it explicitly asks for ``complex``.
    """

    mode = request.execution_mode

    if force_remote is False:
        decision = mode == "complex"
    elif force_remote is True:
        decision = mode != "simple"
    elif mode == "simple":
        decision = False
    elif mode == "complex":
        decision = True
    else:
        decision = _looks_complex(request)

    logger.debug(
        "Backend preference resolved",
        extra={"prefer_remote": decision, "execution_mode": mode, "force_remote": force_remote},
    )
    return decision
