import asyncio
import logging
from typing import Awaitable, Optional, Set

from tracker.domain import User
from tracker.events import EventBus

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "main"

MOCK_USER = User(
    id="google-user-12345",
    email="demo.user@example.com",
    name="Demo",
    picture="https://api.dicebear.com/8.x/initials/svg?seed=Demo",
)


class Session:
    """Context for one signed-in scope.

    Owns the event bus and the background tasks spawned on behalf of the
    scope. ``close()`` is the sign-out path.
    """

    def __init__(self, scope: str = DEFAULT_SCOPE, user: Optional[User] = None):
        self.scope = scope
        self.user = user
        self.bus = EventBus()
        self._tasks: Set[asyncio.Task] = set()
        self.closed = False

    def spawn(self, coro: Awaitable) -> Optional[asyncio.Task]:
        """Run ``coro`` in the background.

        Inside a running event loop it becomes a tracked task; from plain
        synchronous code it is run to completion on a fresh loop.
        """
        if self.closed:
            coro.close()
            raise RuntimeError(f"session {self.scope!r} is closed")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                asyncio.run(self._run_to_completion(coro))
            except Exception:
                logger.exception("Background job failed in session %s", self.scope)
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def _run_to_completion(self, coro: Awaitable) -> None:
        try:
            await coro
        finally:
            await self.drain()

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background job failed in session %s", self.scope, exc_info=exc)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until no background task is left, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.bus.clear()
        self.closed = True
        logger.info("Session %s closed", self.scope)


def sign_in(user: Optional[User] = None) -> Session:
    """Open a session scoped to ``user`` (the mock account when omitted)."""
    user = user or MOCK_USER
    logger.info("Signed in as %s", user.email)
    return Session(scope=user.id, user=user)
