from __future__ import annotations

from typing import Protocol

from lyrics_sync.model import Line, TimedDocument

from .engine import SyllableState, TickResult


class LyricsRenderer(Protocol):
    def activate_line(self, index: int, line: Line) -> None: ...

    def deactivate_line(self, index: int, line: Line) -> None: ...

    def highlight_syllable(self, line_index: int, syllable_index: int, finished: bool) -> None: ...

    def reset_syllable(self, line_index: int, syllable_index: int) -> None: ...

    def scroll_to(self, index: int, instant: bool) -> None: ...


def dispatch(document: TimedDocument, result: TickResult, renderer: LyricsRenderer) -> bool:
    """
    Apply one tick's changes: deactivations, activations, syllables, scroll.

    Returns False when the tick carried nothing to apply.
    """
    for i in result.deactivated:
        renderer.deactivate_line(i, document.lines[i])
    for i in result.activated:
        renderer.activate_line(i, document.lines[i])
    for change in result.syllable_changes:
        if change.state is SyllableState.IDLE:
            renderer.reset_syllable(change.line_index, change.syllable_index)
        else:
            renderer.highlight_syllable(
                change.line_index, change.syllable_index, change.state is SyllableState.FINISHED
            )
    if result.scroll is not None:
        renderer.scroll_to(result.scroll.line_index, result.scroll.instant)
    return result.changed
