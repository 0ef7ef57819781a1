from __future__ import annotations

import asyncio
from typing import Callable, Dict, Hashable


class DebounceScheduler:
    """
    Per-key delayed callbacks on the running event loop.
    Scheduling a key replaces its pending callback; only the last one fires.
    """

    def __init__(self) -> None:
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def schedule(self, key: Hashable, delay_sec: float, callback: Callable[[], None]) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = loop.call_later(max(0.0, float(delay_sec)), _fire)

    def pending(self, key: Hashable) -> bool:
        return key in self._handles

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
