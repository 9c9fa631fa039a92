from __future__ import annotations

import logging
import signal
import time
from typing import Callable, Protocol

from lyrics_sync.config import AppConfig
from lyrics_sync.model import TimedDocument
from lyrics_sync.render.ansi import AnsiRenderer
from lyrics_sync.sync.dispatch import LyricsRenderer, dispatch
from lyrics_sync.sync.engine import SyncEngine
from lyrics_sync.sync.retime import prepare_document

logger = logging.getLogger(__name__)

# keep the last frame on screen briefly once the final line is over
TAIL_MS = 1000


class Player(Protocol):
    def position_ms(self) -> int: ...


class PlayerView(LyricsRenderer, Protocol):
    def load(self, title: str, document: TimedDocument) -> None: ...

    def flush(self) -> bool: ...


class SimulatedPlayer:
    """Playback position derived from a monotonic clock: start offset plus elapsed time times speed."""

    def __init__(self, start_ms: int = 0, speed: float = 1.0, clock: Callable[[], float] | None = None):
        self.start_ms = max(int(start_ms), 0)
        self.speed = speed
        self.clock = clock or time.monotonic
        self._t0 = self.clock()

    def position_ms(self) -> int:
        elapsed = self.clock() - self._t0
        return self.start_ms + int(elapsed * 1000.0 * self.speed)


def prepare(cfg: AppConfig, doc: TimedDocument) -> TimedDocument:
    return prepare_document(
        doc,
        gap_lines=cfg.gap_lines,
        min_gap_ms=cfg.gap_min_ms,
        overlap_threshold_ms=cfg.retime_overlap_threshold_ms,
        max_extension_ms=cfg.retime_max_extension_ms,
    )


def run_loop(
    cfg: AppConfig,
    doc: TimedDocument,
    player: Player,
    renderer: PlayerView,
    *,
    title: str,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: int | None = None,
) -> int:
    """
    Tick loop: player position -> engine tick -> dispatch -> repaint on change.
    Returns once playback passes the last line.
    """
    engine = SyncEngine(cfg.sync_settings())
    tick_s = 1.0 / max(cfg.refresh_hz, 1.0)
    end_ms = max((ln.end_ms for ln in doc.lines), default=0) + TAIL_MS

    renderer.load(title, doc)
    ticks = 0
    with engine.open_session(doc) as session:
        while max_ticks is None or ticks < max_ticks:
            pos_ms = player.position_ms()
            result = engine.tick(session, pos_ms)
            if dispatch(doc, result, renderer):
                renderer.flush()
            ticks += 1
            if pos_ms >= end_ms:
                logger.debug("Playback finished at %d ms after %d ticks", pos_ms, ticks)
                break
            sleep(tick_s)
    return 0


def play(cfg: AppConfig, doc: TimedDocument, *, title: str, start_ms: int = 0, speed: float = 1.0) -> int:
    """Simulated playback of `doc` in the terminal."""
    renderer = AnsiRenderer(use_alt_screen=cfg.use_alt_screen, context_lines=cfg.context_lines)
    renderer.enter()

    # Handle SIGINT (Ctrl+C) gracefully
    def _on_sigint(signum, frame):
        renderer.exit()
        raise KeyboardInterrupt

    previous_sigint = signal.signal(signal.SIGINT, _on_sigint)

    try:
        if doc.is_empty:
            renderer.message(title, "No timed lyrics in this file")
            return 1
        doc = prepare(cfg, doc)
        player = SimulatedPlayer(start_ms=start_ms, speed=speed)
        return run_loop(cfg, doc, player, renderer, title=title)
    finally:
        signal.signal(signal.SIGINT, previous_sigint)
        renderer.exit()
