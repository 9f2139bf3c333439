"""
Orchestrator - Task Registry.

============================================================
RESPONSIBILITY
============================================================
Maps task names to their payload type and handler.

- A name is registered once; a second registration raises
- Payloads are checked against the registered type

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from core.exceptions import TaskPayloadError
from pipeline.tasks import TaskPayload


logger = logging.getLogger(__name__)


TaskHandler = Callable[[Any], Awaitable[Optional[Dict[str, Any]]]]


class DuplicateTaskError(ValueError):
    """A task name was registered twice."""


class UnknownTaskError(KeyError):
    """No task is registered under a name."""


@dataclass(frozen=True)
class TaskRegistration:
    """Registered task."""

    name: str
    payload_type: Type[TaskPayload]
    handler: TaskHandler


class TaskRegistry:
    """Task name -> (payload type, handler)."""

    def __init__(self):
        self._tasks: Dict[str, TaskRegistration] = {}

    def register(self, name: str, payload_type: Type[TaskPayload], handler: TaskHandler) -> TaskRegistration:
        """
        Register a task.

        Raises:
            DuplicateTaskError: If the name is already registered
        """
        if name in self._tasks:
            raise DuplicateTaskError(f"Task already registered: {name}")

        registration = TaskRegistration(name=name, payload_type=payload_type, handler=handler)
        self._tasks[name] = registration
        logger.debug(f"Registered task [{name}] ({payload_type.__name__})")
        return registration

    def register_stage(self, stage: Any) -> TaskRegistration:
        """Register a pipeline stage under its TASK and PAYLOAD."""
        return self.register(stage.TASK, stage.PAYLOAD, stage)

    def get(self, name: str) -> TaskRegistration:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def validate(self, payload: Any) -> TaskRegistration:
        """
        Registration of a payload, checking its type.

        Raises:
            TaskPayloadError: If the payload is not a registered payload type
        """
        name = getattr(payload, "TASK", None)
        if not isinstance(payload, TaskPayload) or name not in self._tasks:
            raise TaskPayloadError(f"No task accepts payload {payload!r}", task_name=name)

        registration = self._tasks[name]
        if type(payload) is not registration.payload_type:
            raise TaskPayloadError(
                f"Task {name} expects {registration.payload_type.__name__}, "
                f"got {type(payload).__name__}",
                task_name=name,
            )
        return registration

    @property
    def names(self) -> List[str]:
        return sorted(self._tasks)

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)


__all__ = [
    "TaskHandler",
    "DuplicateTaskError",
    "UnknownTaskError",
    "TaskRegistration",
    "TaskRegistry",
]
