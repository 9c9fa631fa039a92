from __future__ import annotations

import logging
import math
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from lyrics_sync.errors import SessionClosed
from lyrics_sync.model import Line, Syllable, TimedDocument

from .governor import USER_SCROLL_IDLE_MS, ScrollGovernor, ScrollInput, ScrollInstruction

logger = logging.getLogger(__name__)


class SyllableState(str, Enum):
    IDLE = "idle"
    HIGHLIGHTED = "highlighted"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class SyncSettings:
    scroll_lookahead_ms: int = 300
    highlight_lookahead_ms: int = 190
    max_active_lines: int = 3
    seek_threshold_ms: int = 1000
    user_scroll_idle_ms: int = USER_SCROLL_IDLE_MS
    click_seek_lead_ms: int = 50


@dataclass(frozen=True, slots=True)
class SyllableChange:
    line_index: int
    syllable_index: int
    state: SyllableState


@dataclass(frozen=True, slots=True)
class TickResult:
    time_ms: int
    active_lines: tuple[int, ...]
    activated: tuple[int, ...]
    deactivated: tuple[int, ...]
    scroll_target: int | None
    scroll: ScrollInstruction | None
    syllable_states: dict[tuple[int, int], SyllableState] = field(default_factory=dict)
    syllable_changes: tuple[SyllableChange, ...] = ()
    line_progress: dict[int, float] = field(default_factory=dict)
    is_seek: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.activated or self.deactivated or self.syllable_changes or self.scroll)


def clamp_ms(value: float) -> int:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        return 0
    return int(round(value))


def syllable_state(syllable: Syllable, time_ms: int) -> SyllableState:
    if syllable.start_ms <= time_ms <= syllable.end_ms:
        return SyllableState.HIGHLIGHTED
    if time_ms > syllable.end_ms:
        return SyllableState.FINISHED
    return SyllableState.IDLE


def line_progress(line: Line, time_ms: int) -> float:
    # measured against the sung end so a cosmetically extended end does not delay completion
    span = line.sung_end_ms - line.start_ms
    if span <= 0:
        return 1.0 if time_ms >= line.start_ms else 0.0
    return min(max((time_ms - line.start_ms) / span, 0.0), 1.0)


class SyncSession:
    """
    Playback state for one displayed document.

    Create through `SyncEngine.open_session` and close when the document is
    replaced or torn down; a closed session refuses further ticks.
    """

    def __init__(self, document: TimedDocument, governor: ScrollGovernor):
        self.document = document
        self.governor = governor
        self.starts = [ln.start_ms for ln in document.lines]
        self.active: tuple[int, ...] = ()
        self.syllable_states: dict[tuple[int, int], SyllableState] = {}
        self.last_time_ms: int | None = None
        self.closed = False

    def __enter__(self) -> "SyncSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ensure_open(self) -> None:
        if self.closed:
            raise SessionClosed("Sync session was closed; open a new one for this document")

    def close(self) -> None:
        if self.closed:
            return
        self.governor.cancel()
        self.active = ()
        self.syllable_states.clear()
        self.last_time_ms = None
        self.closed = True


class SyncEngine:
    """
    Maps a playback time onto a document: active lines, scroll target and
    per-syllable highlight state. Stateless itself; all state is per session.
    """

    def __init__(self, settings: SyncSettings | None = None):
        self.settings = settings or SyncSettings()

    def open_session(
        self,
        document: TimedDocument,
        *,
        previous: SyncSession | None = None,
        clock: Callable[[], float] | None = None,
    ) -> SyncSession:
        if previous is not None:
            previous.close()
        governor = ScrollGovernor(idle_revert_ms=self.settings.user_scroll_idle_ms, clock=clock)
        return SyncSession(document, governor)

    def scroll_target(self, document: TimedDocument, time_ms: float, *, starts: list[int] | None = None) -> int | None:
        lines = document.lines
        if not lines:
            return None
        t = clamp_ms(time_ms)
        starts = starts if starts is not None else [ln.start_ms for ln in lines]
        predictive = t + self.settings.scroll_lookahead_ms

        best: int | None = None
        for i in range(bisect_right(starts, predictive) - 1, -1, -1):
            line = lines[i]
            if not line.start_ms <= predictive < line.end_ms:
                continue
            # latest start wins; equal starts resolve to the earlier line
            if best is None or line.start_ms >= lines[best].start_ms:
                best = i
        if best is not None:
            return best

        # mid-gap: stay on the most recent line that has started
        idx = bisect_right(starts, t - self.settings.scroll_lookahead_ms) - 1
        return idx if idx >= 0 else 0

    def active_lines(self, document: TimedDocument, time_ms: float, *, starts: list[int] | None = None) -> tuple[int, ...]:
        lines = document.lines
        t = clamp_ms(time_ms)
        lead = self.settings.highlight_lookahead_ms
        starts = starts if starts is not None else [ln.start_ms for ln in lines]

        hits = [
            i
            for i in range(bisect_right(starts, t + lead))
            if lines[i].start_ms - lead <= t <= lines[i].end_ms - lead
        ]
        hits.sort(key=lambda i: (lines[i].start_ms, i))
        keep = max(self.settings.max_active_lines, 0)
        return tuple(hits[len(hits) - keep :]) if keep else ()

    def tick(self, session: SyncSession, time_ms: float, *, now_ms: float | None = None) -> TickResult:
        session.ensure_open()
        doc = session.document
        t = clamp_ms(time_ms)

        is_seek = session.last_time_ms is not None and abs(t - session.last_time_ms) > self.settings.seek_threshold_ms
        if is_seek:
            logger.debug("Seek detected: %d -> %d ms", session.last_time_ms, t)

        active = self.active_lines(doc, t, starts=session.starts)
        active_set = set(active)
        previous = session.active
        previous_set = set(previous)
        deactivated = tuple(i for i in previous if i not in active_set)
        activated = tuple(i for i in active if i not in previous_set)

        changes: list[SyllableChange] = []
        for li in deactivated:
            for si in range(len(doc.lines[li].syllables)):
                if session.syllable_states.get((li, si), SyllableState.IDLE) is not SyllableState.IDLE:
                    changes.append(SyllableChange(li, si, SyllableState.IDLE))

        states: dict[tuple[int, int], SyllableState] = {}
        for li in active:
            for si, syl in enumerate(doc.lines[li].syllables):
                key = (li, si)
                new = syllable_state(syl, t)
                if new is not session.syllable_states.get(key, SyllableState.IDLE):
                    changes.append(SyllableChange(li, si, new))
                states[key] = new

        target = self.scroll_target(doc, t, starts=session.starts)
        scroll = session.governor.arbitrate(target, forced=is_seek, instant=is_seek, now_ms=now_ms)

        session.active = active
        session.syllable_states = states
        session.last_time_ms = t

        return TickResult(
            time_ms=t,
            active_lines=active,
            activated=activated,
            deactivated=deactivated,
            scroll_target=target,
            scroll=scroll,
            syllable_states=dict(states),
            syllable_changes=tuple(changes),
            line_progress={li: line_progress(doc.lines[li], t) for li in active},
            is_seek=is_seek,
        )

    def manual_scroll(self, session: SyncSession, kind: ScrollInput = ScrollInput.WHEEL, *, now_ms: float | None = None) -> None:
        session.ensure_open()
        session.governor.manual_scroll(kind, now_ms=now_ms)

    def seek(self, session: SyncSession, time_ms: float) -> int:
        """Explicit seek request from the renderer; returns the time to hand to the player."""
        session.ensure_open()
        session.governor.seek()
        return clamp_ms(time_ms)

    def click_line(self, session: SyncSession, index: int) -> int:
        """Line click: scroll to it on the next tick and return where the player should seek."""
        session.ensure_open()
        lines = session.document.lines
        if not 0 <= index < len(lines):
            logger.debug("Ignoring click on line %d of %d", index, len(lines))
            return session.last_time_ms or 0
        line = lines[index]
        session.governor.click_line(index)
        return max(line.start_ms - self.settings.click_seek_lead_ms, 0)
