from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Callable

TOAST_AUTO_CLOSE_SECONDS = 2.6
TOAST_REMOVE_DELAY_SECONDS = 0.18


def terminal_message(node_name: str) -> str:
    return f"Terminal Node Reach: {node_name} has no further downstream allocations."


@dataclass(frozen=True)
class ToastState:
    message: str
    open: bool
    seq: int


class TerminalToast:
    """Single transient notice: open for 2.6s, then closing for 0.18s, then gone.

    Time is read from ``clock`` on every access instead of timers, so a newer
    ``show`` simply supersedes the previous deadlines.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._seq = 0
        self._state: ToastState | None = None
        self._close_at: float | None = None
        self._remove_at: float | None = None

    def show(self, message: str) -> ToastState:
        self._seq += 1
        self._state = ToastState(message=message, open=True, seq=self._seq)
        self._close_at = self._clock() + TOAST_AUTO_CLOSE_SECONDS
        self._remove_at = None
        return self._state

    def close(self) -> None:
        if self._state is None:
            return
        self._state = replace(self._state, open=False)
        self._close_at = None
        self._remove_at = self._clock() + TOAST_REMOVE_DELAY_SECONDS

    @property
    def current(self) -> ToastState | None:
        now = self._clock()
        if self._state is not None and self._close_at is not None and now >= self._close_at:
            self._state = replace(self._state, open=False)
            self._remove_at = self._close_at + TOAST_REMOVE_DELAY_SECONDS
            self._close_at = None
        if self._remove_at is not None and now >= self._remove_at:
            self._state = None
            self._remove_at = None
        return self._state
