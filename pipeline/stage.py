"""
Pipeline - Stage Base.

A stage is the handler of one task kind. It holds the pipeline
context and logs START / COMPLETE / FAILED around its work.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, ClassVar, Dict, Iterator, Optional, Type

from core.exceptions import ValidationError
from pipeline.context import PipelineContext
from pipeline.tasks import TaskPayload


class Stage(ABC):
    """Handler of one task kind."""

    TASK: ClassVar[str] = ""
    PAYLOAD: ClassVar[Type[TaskPayload]] = TaskPayload

    def __init__(self, context: PipelineContext):
        self.context = context
        self._logger = logging.getLogger(type(self).__module__)

    async def __call__(self, payload: TaskPayload) -> Optional[Dict[str, Any]]:
        started = time.monotonic()
        self._logger.info(f"Stage {self.TASK} START: {payload}")
        try:
            result = await self.run(payload)
        except Exception as e:
            self._logger.error(
                f"Stage {self.TASK} FAILED after {time.monotonic() - started:.2f}s: "
                f"{type(e).__name__}: {e}"
            )
            raise
        self._logger.info(f"Stage {self.TASK} COMPLETE ({time.monotonic() - started:.2f}s)")
        return result

    @abstractmethod
    async def run(self, payload: Any) -> Optional[Dict[str, Any]]:
        """Process one job."""

    def enqueue_next(self, payload: TaskPayload, delay: Optional[float] = None) -> Any:
        return self.context.enqueue_next(self.TASK, payload, delay=delay)


@contextmanager
def failing_as(archive_id: int, code: str) -> Iterator[None]:
    """Re-raise any error of the block as ValidationError(code)."""
    try:
        yield
    except ValidationError:
        raise
    except Exception as e:
        raise ValidationError(archive_id, code, f"{type(e).__name__}: {e}", cause=e) from e


__all__ = ["Stage", "failing_as"]
