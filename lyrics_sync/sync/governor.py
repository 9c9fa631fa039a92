from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

USER_SCROLL_IDLE_MS = 4000


class ScrollMode(str, Enum):
    PLAYER = "player-controlled"
    USER = "user-controlled"


class ScrollInput(str, Enum):
    DRAG = "drag"
    WHEEL = "wheel"
    MOMENTUM = "momentum"


@dataclass(frozen=True, slots=True)
class ScrollInstruction:
    line_index: int
    instant: bool = False  # jump without animation (seeks)
    forced: bool = False  # issued regardless of the current scroll position


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ScrollGovernor:
    """
    Arbitrates between playback-driven and user-driven scrolling.

    No real timers: the time of the last manual input is stored and compared
    against `idle_revert_ms` whenever the governor is polled (once per tick).
    """

    def __init__(self, idle_revert_ms: int = USER_SCROLL_IDLE_MS, clock: Callable[[], float] | None = None):
        self.idle_revert_ms = idle_revert_ms
        self.clock = clock or _monotonic_ms
        self.mode = ScrollMode.PLAYER
        self.last_input_ms: float | None = None
        self.applied_target: int | None = None
        self.latest_target: int | None = None
        self._pending_line: int | None = None
        self._force_pending = False

    @property
    def is_user_controlled(self) -> bool:
        return self.mode is ScrollMode.USER

    def _now(self, now_ms: float | None) -> float:
        return self.clock() if now_ms is None else now_ms

    def _release(self) -> None:
        self.mode = ScrollMode.PLAYER
        self.last_input_ms = None

    def _issue(self, index: int | None, *, instant: bool = False, forced: bool = False) -> ScrollInstruction | None:
        if index is None:
            # nothing to scroll to yet; keep the force for the next target
            self._force_pending = self._force_pending or forced
            return None
        self.applied_target = index
        return ScrollInstruction(line_index=index, instant=instant, forced=forced)

    def manual_scroll(self, kind: ScrollInput = ScrollInput.WHEEL, *, now_ms: float | None = None) -> None:
        if self.mode is not ScrollMode.USER:
            logger.debug("Scroll control -> user (%s)", kind.value)
        self.mode = ScrollMode.USER
        self.last_input_ms = self._now(now_ms)

    def seek(self) -> None:
        """Explicit seek: hand control back and force the next scroll."""
        self._release()
        self._force_pending = True

    def click_line(self, index: int) -> None:
        self._release()
        self._pending_line = index

    def poll(self, now_ms: float | None = None) -> ScrollInstruction | None:
        """Revert to player control once the user has been idle long enough."""
        if self.mode is not ScrollMode.USER or self.last_input_ms is None:
            return None
        if self._now(now_ms) - self.last_input_ms < self.idle_revert_ms:
            return None
        self._release()
        logger.debug("Scroll control -> player (idle %d ms)", self.idle_revert_ms)
        return self._issue(self.latest_target, forced=True)

    def arbitrate(
        self,
        target: int | None,
        *,
        forced: bool = False,
        instant: bool = False,
        now_ms: float | None = None,
    ) -> ScrollInstruction | None:
        """
        Decide whether the engine's scroll target is applied this tick.

        `forced` marks a resync (seek); those are never suppressed and return
        control to the player.
        """
        self.latest_target = target
        reverted = self.poll(now_ms)
        if reverted is not None:
            return ScrollInstruction(reverted.line_index, instant=instant, forced=True)

        if self._pending_line is not None:
            index, self._pending_line = self._pending_line, None
            self._force_pending = False
            return self._issue(index, instant=instant, forced=True)

        if forced or self._force_pending:
            self._release()
            if target is not None:
                self._force_pending = False
            return self._issue(target, instant=instant, forced=True)

        if self.mode is ScrollMode.USER:
            if target != self.applied_target:
                logger.debug("Scroll to line %s suppressed (user-controlled)", target)
            return None
        if target is None or target == self.applied_target:
            return None
        return self._issue(target, instant=instant)

    def cancel(self) -> None:
        """Drop every pending revert/scroll; used when the session is torn down."""
        self._release()
        self._pending_line = None
        self._force_pending = False
        self.applied_target = None
        self.latest_target = None
