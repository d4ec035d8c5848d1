"""
Background description generation per upload session.

Each session owns at most one task. A task walks the session's valid
packages strictly in order, one generator request at a time, and reports
progress through two sinks: coarse progress events and per-package
description updates. Cancellation is cooperative: a token is checked at the
top of every iteration, so a request already in flight is allowed to
finish and its result is kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from app.config import get_settings
from app.models.package import (
    DescriptionUpdate,
    PackageRecord,
    ProgressEvent,
    TaskStatus,
)
from app.services.description_service import (
    DescriptionGenerator,
    DescriptionRequest,
    DescriptionResult,
)
from app.utils.events import EventSink, emit

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag polled by the processing loop between packages"""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class DescriptionTask:
    id: str
    session_id: str
    packages: List[PackageRecord]
    status: str = "running"
    completed: int = 0
    total: int = 0
    results: Dict[str, str] = field(default_factory=dict)
    token: CancellationToken = field(default_factory=CancellationToken)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    started_monotonic: float = field(default_factory=time.monotonic)
    handle: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def progress(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)

    def snapshot(self) -> TaskStatus:
        return TaskStatus(
            id=self.id,
            status=self.status,
            progress=self.progress,
            completed=self.completed,
            total=self.total,
            startTime=self.started_at,
            duration=time.monotonic() - self.started_monotonic,
            cancelled=self.token.cancelled,
            error=self.error,
        )


class TaskStore:
    """Tasks and their results keyed by session id"""

    def __init__(self):
        self._tasks: Dict[str, DescriptionTask] = {}
        self._results: Dict[str, Dict[str, str]] = {}

    def create(self, task: DescriptionTask) -> DescriptionTask:
        self._tasks[task.session_id] = task
        self._results[task.session_id] = task.results
        return task

    def get(self, session_id: str) -> Optional[DescriptionTask]:
        return self._tasks.get(session_id)

    def results(self, session_id: str) -> Dict[str, str]:
        return dict(self._results.get(session_id, {}))

    def remove(self, session_id: str) -> Optional[DescriptionTask]:
        self._results.pop(session_id, None)
        return self._tasks.pop(session_id, None)

    def items(self):
        return list(self._tasks.items())


class DescriptionTaskManager:
    """Owns background description tasks for all sessions"""

    def __init__(
        self,
        generator: Optional[DescriptionGenerator] = None,
        request_delay: Optional[float] = None,
    ):
        self._generator = generator
        self._request_delay = request_delay
        self.store = TaskStore()

    @property
    def generator(self) -> DescriptionGenerator:
        if self._generator is None:
            self._generator = DescriptionGenerator()
        return self._generator

    @generator.setter
    def generator(self, value: DescriptionGenerator) -> None:
        self._generator = value

    @property
    def request_delay(self) -> float:
        if self._request_delay is None:
            return get_settings().description_request_delay
        return self._request_delay

    async def start_description_generation(
        self,
        session_id: str,
        packages: Sequence[PackageRecord],
        on_progress: Optional[EventSink] = None,
        on_item_update: Optional[EventSink] = None,
    ) -> str:
        """Start generating descriptions for a session and return the task id.

        Any task already running for the session is cancelled first.
        """
        self.cancel_task(session_id)

        valid = [pkg for pkg in packages if pkg.is_valid]
        task = self.store.create(
            DescriptionTask(
                id=str(uuid.uuid4()),
                session_id=session_id,
                packages=valid,
                total=len(valid),
            )
        )
        logger.info(
            f"Starting description generation for {task.total} packages "
            f"in session {session_id} (task {task.id})"
        )

        await emit(on_progress, ProgressEvent(
            type="started",
            message=f"Generating descriptions for {task.total} packages...",
            progress=0,
            total=task.total,
        ).model_dump(exclude_none=True))

        task.handle = asyncio.create_task(
            self._run(task, on_progress, on_item_update)
        )
        return task.id

    async def _run(
        self,
        task: DescriptionTask,
        on_progress: Optional[EventSink],
        on_item_update: Optional[EventSink],
    ) -> None:
        try:
            await self._process(task, on_progress, on_item_update)
        except asyncio.CancelledError:
            task.token.cancel()
            if task.status == "running":
                task.status = "cancelled"
            raise
        except Exception as e:
            logger.error(f"Description generation task failed: {e}", exc_info=True)
            if task.status == "running":
                task.status = "failed"
                task.error = str(e)
                await emit(on_progress, ProgressEvent(
                    type="error",
                    message=f"Description generation failed: {e}",
                    progress=0,
                ).model_dump(exclude_none=True))

    async def _process(
        self,
        task: DescriptionTask,
        on_progress: Optional[EventSink],
        on_item_update: Optional[EventSink],
    ) -> None:
        total = task.total

        for index, pkg in enumerate(task.packages):
            if task.token.cancelled:
                break

            title = pkg.display_title
            await emit(on_progress, ProgressEvent(
                type="progress",
                message=f"Generating description for: {title}",
                progress=round(index / total * 100),
                current=index + 1,
                total=total,
            ).model_dump(exclude_none=True))

            request = DescriptionRequest(
                title=title,
                filename=pkg.filename,
                contentSample=pkg.contentSample or "",
                existingDescription=pkg.description or "",
            )
            try:
                result = await self.generator.generate(request)
            except Exception as e:
                logger.warning(f"Error generating description for {title}: {e}")
                result = self.generator.fallback(request)

            self._store_result(task, pkg, result)
            await emit(on_item_update, DescriptionUpdate(
                packageId=pkg.id,
                description=result.description,
                progress=round((index + 1) / total * 100),
                fallback=result.fallback,
            ).model_dump())

            if index + 1 < total:
                await asyncio.sleep(self.request_delay)

        if task.token.cancelled:
            logger.info(f"Description generation cancelled for session {task.session_id}")
            task.status = "cancelled"
            await emit(on_progress, ProgressEvent(
                type="cancelled",
                message="Description generation cancelled",
                progress=task.progress,
            ).model_dump(exclude_none=True))
            return

        task.status = "completed"
        logger.info(f"Description generation completed for session {task.session_id}")
        await emit(on_progress, ProgressEvent(
            type="completed",
            message=f"Generated descriptions for {task.completed} packages",
            progress=100,
            total=task.completed,
        ).model_dump(exclude_none=True))

    def _store_result(
        self, task: DescriptionTask, pkg: PackageRecord, result: DescriptionResult
    ) -> None:
        task.results[pkg.id] = result.description
        task.completed += 1
        logger.debug(
            f"Stored description for {pkg.id}: {result.description[:50]}..."
        )

    def cancel_task(self, session_id: str) -> bool:
        """Request cancellation; True only if a running task was found"""
        task = self.store.get(session_id)
        if task and task.status == "running":
            task.token.cancel()
            task.status = "cancelled"
            logger.info(f"Cancelled description generation task for session {session_id}")
            return True
        return False

    def get_task_status(self, session_id: str) -> TaskStatus:
        task = self.store.get(session_id)
        if task is None:
            return TaskStatus(status="not_found")
        return task.snapshot()

    def get_task_results(self, session_id: str) -> Dict[str, str]:
        return self.store.results(session_id)

    def cleanup_task(self, session_id: str) -> None:
        task = self.store.remove(session_id)
        if task is not None and task.status == "running":
            task.token.cancel()
            task.status = "cancelled"

    def get_all_active_tasks(self) -> List[Dict[str, Any]]:
        return [
            {"sessionId": session_id, **task.snapshot().model_dump(exclude_none=True)}
            for session_id, task in self.store.items()
        ]


# Task manager instance
description_task_manager = DescriptionTaskManager()
