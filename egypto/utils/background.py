"""
BACKGROUND TASKS
================

Fire-and-forget coroutines (conversation titles) that must outlive the request
that started them. The event loop only keeps weak references to tasks, so we
hold a strong one here until the task finishes. A failing task is logged, never
re-raised into whoever spawned it.

Example:
  tasks = BackgroundTasks()
  tasks.spawn(summarize_title(...), name="title:abc123")
  ...
  await tasks.cancel_all()   # at shutdown
"""

import asyncio
import logging
from typing import Coroutine, List, Set

logger = logging.getLogger("EgyptoAI")


class BackgroundTasks:
    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: str = "background") -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    def pending(self) -> List[asyncio.Task]:
        return [t for t in self._tasks if not t.done()]

    async def cancel_all(self) -> None:
        """Cancel whatever is still pending (server shutdown)."""
        pending = self.pending()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d pending background task(s)", len(pending))
