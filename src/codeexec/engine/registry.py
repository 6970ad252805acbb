"""SandboxRegistry — the index of currently active sandboxes.

The only shared mutable structure in the engine.  All access goes through a
``threading.Lock`` so the registry can be shared between event loops or
worker threads as well as tasks.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

from codeexec.engine.models import Sandbox

logger = logging.getLogger(__name__)


class SandboxRegistry:
    """Lock-guarded mapping of sandbox id to :class:`Sandbox`."""

    def __init__(self) -> None:
        self._sandboxes: dict[str, Sandbox] = {}
        self._lock = threading.Lock()

    def register(self, sandbox: Sandbox) -> None:
        with self._lock:
            if sandbox.id in self._sandboxes:
                raise ValueError(f"Sandbox {sandbox.id} is already registered")
            self._sandboxes[sandbox.id] = sandbox

    def remove(self, sandbox_id: str) -> Sandbox | None:
        """Remove and return the entry, or ``None`` if it is already gone.

        At most one caller ever receives a given sandbox back, which is what
        makes reaping exactly-once.
        """
        with self._lock:
            return self._sandboxes.pop(sandbox_id, None)

    def get(self, sandbox_id: str) -> Sandbox | None:
        with self._lock:
            return self._sandboxes.get(sandbox_id)

    def count(self) -> int:
        with self._lock:
            return len(self._sandboxes)

    def snapshot(self) -> list[Sandbox]:
        with self._lock:
            return list(self._sandboxes.values())

    def __contains__(self, sandbox_id: object) -> bool:
        with self._lock:
            return sandbox_id in self._sandboxes

    async def cleanup_all(self, reap: Callable[[Sandbox], Awaitable[bool]]) -> int:
        """Reap every registered sandbox independently.

        Best-effort: one failing reap does not stop the others.  Returns the
        number of sandboxes whose reap reported success.
        """
        sandboxes = self.snapshot()
        if not sandboxes:
            return 0

        results = await asyncio.gather(*(reap(s) for s in sandboxes), return_exceptions=True)
        reaped = 0
        for sandbox, outcome in zip(sandboxes, results, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("Failed to clean up sandbox %s: %s", sandbox.id, outcome)
            elif outcome:
                reaped += 1
        return reaped
