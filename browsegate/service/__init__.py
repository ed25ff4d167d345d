"""Task-queue service implementing the remote task protocol."""

from .app import ApiError, create_app, run_server
from .runner import SimulatedRunner, TaskRunner
from .store import InMemoryTaskStore, TaskStore

__all__ = ["ApiError", "InMemoryTaskStore", "SimulatedRunner", "TaskRunner", "TaskStore", "create_app", "run_server"]
