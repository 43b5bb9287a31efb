"""
One-shot synchronization gate

A Gate is satisfied at most once. Waiters that arrive before satisfaction are
suspended on asyncio futures; waiters that arrive afterwards return
immediately. A Gate never re-fires: starting a new challenge round means
replacing the Gate with a fresh instance.
"""

import asyncio
from typing import List
import structlog

logger = structlog.get_logger()


class Gate:
    """Single-resolution synchronization primitive with an explicit waiter list"""

    def __init__(self, name: str = "gate"):
        self.name = name
        self._satisfied = False
        self._waiters: List[asyncio.Future] = []
        self.logger = logger.bind(component="gate", gate=name)

    @property
    def is_satisfied(self) -> bool:
        return self._satisfied

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    async def wait(self) -> None:
        """Suspend the calling task until the gate is satisfied"""
        if self._satisfied:
            return

        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            await future
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def satisfy(self) -> bool:
        """
        Satisfy the gate and release every waiter

        Returns:
            True if this call satisfied the gate, False if it already was
        """
        if self._satisfied:
            return False

        self._satisfied = True
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)

        self.logger.debug("Gate satisfied", released=len(waiters))
        return True

    def __repr__(self) -> str:
        state = "satisfied" if self._satisfied else "pending"
        return f"<Gate {self.name} {state} waiters={len(self._waiters)}>"

