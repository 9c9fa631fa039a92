from __future__ import annotations

from typing import Any

from lyrics_sync.model import Line, TimedDocument


class FakeClock:
    """
    Manually advanced clock.

    Call it for the current time in ms (governor clocks), use `seconds` for
    `time.monotonic`-style consumers, and pass `sleep` where a loop sleeps.
    """

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = float(start_ms)

    def __call__(self) -> float:
        return self.now_ms

    def seconds(self) -> float:
        return self.now_ms / 1000.0

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    def sleep(self, seconds: float) -> None:
        self.advance(seconds * 1000.0)


class MockPlayer:
    """
    Player with a scripted position.

    With `positions`, each `position_ms()` call returns the next value (the
    last one repeats); otherwise the position is read from `clock`.
    """

    def __init__(self, positions: list[int] | None = None, clock: FakeClock | None = None, start_ms: int = 0):
        self.positions = list(positions or [])
        self.clock = clock
        self.start_ms = start_ms
        self.calls = 0

    def position_ms(self) -> int:
        self.calls += 1
        if self.positions:
            return self.positions.pop(0) if len(self.positions) > 1 else self.positions[0]
        if self.clock is not None:
            return self.start_ms + int(self.clock.now_ms)
        return self.start_ms


class RecordingRenderer:
    """Renderer double that records every capability call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.loaded: tuple[str, TimedDocument] | None = None
        self.flushes = 0

    def load(self, title: str, document: TimedDocument) -> None:
        self.loaded = (title, document)

    def flush(self) -> bool:
        self.flushes += 1
        return True

    def activate_line(self, index: int, line: Line) -> None:
        self.calls.append(("activate", index))

    def deactivate_line(self, index: int, line: Line) -> None:
        self.calls.append(("deactivate", index))

    def highlight_syllable(self, line_index: int, syllable_index: int, finished: bool) -> None:
        self.calls.append(("highlight", line_index, syllable_index, finished))

    def reset_syllable(self, line_index: int, syllable_index: int) -> None:
        self.calls.append(("reset", line_index, syllable_index))

    def scroll_to(self, index: int, instant: bool) -> None:
        self.calls.append(("scroll", index, instant))

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]
