"""Route task requests between the local and remote backends."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from browsegate.memory.activity import TaskActivity, log_task_activity
from browsegate.memory.store import MemoryStore
from browsegate.remote.automation import RemoteAutomation, RunTaskOptions
from browsegate.remote.client import RemoteTaskClient
from browsegate.remote.models import CreateTaskRequest
from browsegate.script import Command, InvalidScript, compile_request_commands

from . import results
from .config import Settings
from .local_backend import LocalBackend, playwright_driver_factory
from .results import BackendName, NormalizedResult
from .routing import prefer_remote

logger = logging.getLogger(__name__)


class Orchestrator:
    """Pick a backend per request and fall back to the other one at most once.

    ``run`` never raises: compilation errors, backend faults and failed
    fallbacks are all reported through the returned :class:`NormalizedResult`.
    """

    def __init__(
        self,
        remote: RemoteAutomation,
        local: LocalBackend,
        *,
        force_remote: Optional[bool] = None,
        memory_store: Optional[MemoryStore] = None,
    ) -> None:
        self._remote = remote
        self._local = local
        self._force_remote = force_remote
        self._memory_store = memory_store

    @classmethod
    def from_settings(cls, settings: Settings, *, memory_store: Optional[MemoryStore] = None) -> "Orchestrator":
        client = RemoteTaskClient.from_settings(settings)
        return cls(
            RemoteAutomation.from_settings(client, settings),
            LocalBackend(playwright_driver_factory(settings)),
            force_remote=settings.use_remote,
            memory_store=memory_store,
        )

    async def close(self) -> None:
        await self._remote.client.close()

    async def run(self, request: CreateTaskRequest, options: Optional[RunTaskOptions] = None) -> NormalizedResult:
        try:
            commands = compile_request_commands(request)
        except InvalidScript as exc:
            logger.info("Rejecting request with invalid script: %s", exc)
            result = NormalizedResult.failure(results.INVALID_SCRIPT, str(exc), attempts=0)
            await self._log_activity(request, None, result)
            return result

        remote_first = prefer_remote(request, self._force_remote)
        logger.info(
            "Dispatching %s task",
            request.task_type,
            extra={
                "task_type": request.task_type,
                "command_count": len(commands) if commands else 0,
                "prefer_remote": remote_first,
            },
        )

        if not commands:
            result = await self._run_remote(request, options)
        elif remote_first:
            result = await self._run_remote(request, options)
            if result.should_fall_back:
                logger.info("Remote run ended with %s; falling back to local", result.status.value)
                result = self._mark_fallback(await self._run_local(commands, request), "remote")
        else:
            try:
                result = await self._local.run_commands(commands, request)
            except Exception as exc:
                logger.warning("Local backend raised: %s; falling back to remote", exc)
                result = self._mark_fallback(await self._run_remote(request, options), "local")
            else:
                if result.should_fall_back:
                    logger.info("Local run ended with %s; falling back to remote", result.status.value)
                    result = self._mark_fallback(await self._run_remote(request, options), "local")

        await self._log_activity(request, commands, result)
        return result

    async def _run_remote(self, request: CreateTaskRequest, options: Optional[RunTaskOptions]) -> NormalizedResult:
        try:
            return await self._remote.run_task(request, options)
        except Exception as exc:
            logger.exception("Remote backend raised unexpectedly")
            return NormalizedResult.failure(
                results.CLIENT_OR_TASK_ERROR, str(exc) or type(exc).__name__, backend="remote"
            )

    async def _run_local(self, commands: Sequence[Command], request: CreateTaskRequest) -> NormalizedResult:
        try:
            return await self._local.run_commands(commands, request)
        except Exception as exc:
            logger.exception("Local backend raised unexpectedly")
            return NormalizedResult.failure(
                results.LOCAL_EXECUTION_ERROR, str(exc) or type(exc).__name__, backend="local"
            )

    @staticmethod
    def _mark_fallback(result: NormalizedResult, origin: BackendName) -> NormalizedResult:
        result.debug.fallback_from = origin
        return result

    async def _log_activity(
        self,
        request: CreateTaskRequest,
        commands: Optional[Sequence[Command]],
        result: NormalizedResult,
    ) -> None:
        if self._memory_store is None:
            return

        tools: List[str] = []
        for command in commands or []:
            tool = f"browser.{command.kind}"
            if tool not in tools:
                tools.append(tool)
        if result.debug.backend and not tools:
            tools.append(f"{result.debug.backend}.task")

        metadata = request.metadata or {}
        activity = TaskActivity(
            user_id=str(metadata.get("userId") or "anonymous"),
            intent=request.task_type,
            natural_language_prompt=request.instructions or "",
            tools_used=tools,
            entities={"targets": list(request.targets)} if request.targets else {},
            success=result.succeeded,
        )
        try:
            await log_task_activity(self._memory_store, activity)
        except Exception as e:
            logger.warning(f"Failed to record task activity: {e}")
