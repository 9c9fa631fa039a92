from __future__ import annotations

import shutil
import signal
import sys
from dataclasses import dataclass
from typing import Callable

from lyrics_sync.model import Line, Syllable, TimedDocument


CSI = "\x1b["


def _sgr(*codes: int) -> str:
    return CSI + ";".join(str(c) for c in codes) + "m"


@dataclass(frozen=True, slots=True)
class Theme:
    title: str = _sgr(36, 1)  # cyan bold
    current: str = _sgr(32, 1)  # green bold
    sung: str = _sgr(32)  # green
    singing: str = _sgr(33, 1, 4)  # yellow bold underline
    pending: str = _sgr(37)  # white
    background: str = _sgr(3)  # italic
    dim: str = _sgr(90)  # bright black
    warning: str = _sgr(33, 1)  # yellow bold
    reset: str = _sgr(0)


class AnsiRenderer:
    """
    Terminal renderer driven by tick results (see `lyrics_sync.sync.dispatch`).

    Capability calls only update state; `flush()` repaints the frame when
    something changed since the last paint.
    """

    def __init__(self, use_alt_screen: bool = True, theme: Theme | None = None, context_lines: int = 1):
        self.use_alt_screen = use_alt_screen
        self.theme = theme or Theme()
        self.context_lines = context_lines
        self._entered = False
        self._resize_handler: Callable[..., None] | None = None
        self._last_render_args: tuple[str, list[str], int, int] | None = None

        self.title = ""
        self.document: TimedDocument | None = None
        self.active: set[int] = set()
        self.syllables: dict[tuple[int, int], bool] = {}  # (line, syllable) -> finished
        self.scroll_index = -1
        self.dirty = False

    def __enter__(self):
        self.enter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit()

    def enter(self) -> None:
        if self._entered:
            return
        if self.use_alt_screen:
            sys.stdout.write(CSI + "?1049h")  # alt screen
        sys.stdout.write(CSI + "?25l")  # hide cursor
        sys.stdout.write(CSI + "H" + CSI + "2J")  # home + clear
        sys.stdout.flush()
        self._entered = True

        # Register SIGWINCH handler for resize
        def _on_resize(signum=None, frame=None):
            if self._last_render_args:
                title, lines, current_idx, context_lines = self._last_render_args
                self.render(title, lines, current_idx, context_lines)

        self._resize_handler = _on_resize
        signal.signal(signal.SIGWINCH, _on_resize)

    def exit(self) -> None:
        if not self._entered:
            return
        # Restore default SIGWINCH handler
        if self._resize_handler:
            signal.signal(signal.SIGWINCH, signal.SIG_DFL)
            self._resize_handler = None
        sys.stdout.write(self.theme.reset)
        sys.stdout.write(CSI + "?25h")  # show cursor
        if self.use_alt_screen:
            sys.stdout.write(CSI + "?1049l")  # normal screen
        sys.stdout.flush()
        self._entered = False
        self._last_render_args = None

    # document state

    def load(self, title: str, document: TimedDocument) -> None:
        self.title = title
        self.document = document
        self.active.clear()
        self.syllables.clear()
        self.scroll_index = -1
        self.dirty = True

    def message(self, title: str, text: str) -> None:
        self.document = None
        self.render(title, [f"{self.theme.warning}{text}{self.theme.reset}"], current_idx=-1)

    # renderer capabilities

    def activate_line(self, index: int, line: Line) -> None:
        self.active.add(index)
        self.dirty = True

    def deactivate_line(self, index: int, line: Line) -> None:
        self.active.discard(index)
        self.dirty = True

    def highlight_syllable(self, line_index: int, syllable_index: int, finished: bool) -> None:
        self.syllables[(line_index, syllable_index)] = finished
        self.dirty = True

    def reset_syllable(self, line_index: int, syllable_index: int) -> None:
        self.syllables.pop((line_index, syllable_index), None)
        self.dirty = True

    def scroll_to(self, index: int, instant: bool) -> None:
        # no scroll animation in a terminal; instant and animated look the same
        self.scroll_index = index
        self.dirty = True

    # painting

    def _style_syllable(self, line_index: int, syllable_index: int, syl: Syllable) -> str:
        state = self.syllables.get((line_index, syllable_index))
        if state is None:
            color = self.theme.pending
        elif state:
            color = self.theme.sung
        else:
            color = self.theme.singing
        if syl.is_background:
            color += self.theme.background
        return f"{color}{syl.text}{self.theme.reset}"

    def _style_line(self, index: int, line: Line) -> str:
        if index not in self.active:
            if line.is_gap:
                return ""
            return f"{self.theme.dim}{line.text}{self.theme.reset}"
        if not line.syllables:
            return f"{self.theme.current}{line.text}{self.theme.reset}"
        parts = [self._style_syllable(index, i, s) for i, s in enumerate(line.syllables)]
        sep = " " if line.is_gap else ""
        return sep.join(parts)

    def flush(self) -> bool:
        if not self.dirty or self.document is None:
            return False
        lines = [self._style_line(i, ln) for i, ln in enumerate(self.document.lines)]
        # current_idx is pre-styled here; render only decides the window
        self.render(self.title, lines, self.scroll_index, self.context_lines)
        self.dirty = False
        return True

    def render(
        self,
        title: str,
        lines: list[str],
        current_idx: int,
        context_lines: int = 1,
    ) -> None:
        # Store args for SIGWINCH redraw
        self._last_render_args = (title, lines, current_idx, context_lines)

        cols, rows = shutil.get_terminal_size(fallback=(80, 24))
        # reserve 1 line for title
        body_rows = max(rows - 1, 1)

        # window around current line, but keep within list
        if current_idx < 0:
            start = 0
        else:
            start = max(current_idx - context_lines, 0)
        end = min(start + body_rows, len(lines))
        start = max(end - body_rows, 0)

        out: list[str] = []
        out.append(f"{self.theme.title}♫ {title} ♫{self.theme.reset}")
        out.extend(lines[start:end])

        # move home + clear, then print full frame
        sys.stdout.write(CSI + "H" + CSI + "2J")
        sys.stdout.write("\n".join(out))
        sys.stdout.write(self.theme.reset)
        sys.stdout.flush()
