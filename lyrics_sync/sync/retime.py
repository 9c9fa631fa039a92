"""
Line end-time post-processing.

Source end times often equal the next line's start (instant, jarring
transitions) or leave dead gaps on screen. `compute_retimed_ends` turns them
into presentation end times in three passes:

1. triple-overlap precursor: A overlaps B, B overlaps C, A does not overlap C
   -> A semantically contains B and ends where C starts;
2. backward sweep: real overlaps snap through to the next line's resolved
   end, tiny overlaps keep the source end, gaps get a capped extension
   unless a gap filler line follows;
3. write-back of ends that moved by more than EPSILON_MS.

The pass always starts from each line's untouched source end, so running it
again over its own output changes nothing.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from lyrics_sync.model import Line, Syllable, TimedDocument

logger = logging.getLogger(__name__)

OVERLAP_THRESHOLD_MS = 100
MAX_EXTENSION_MS = 1300
EPSILON_MS = 1

GAP_LINE_MIN_MS = 7000
GAP_LEAD_MS = 310
GAP_TRAIL_MS = 660
GAP_DOT = "•"


@dataclass(slots=True)
class _Timing:
    start_ms: int
    original_end_ms: int
    new_end_ms: int
    followed_by_gap: bool
    resolved: bool = False


def _clamp_ms(value: float) -> int:
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def _source_end(line: Line) -> int:
    start = _clamp_ms(line.start_ms)
    return max(_clamp_ms(line.sung_end_ms), start)


def compute_retimed_ends(
    lines: Sequence[Line],
    *,
    overlap_threshold_ms: int = OVERLAP_THRESHOLD_MS,
    max_extension_ms: int = MAX_EXTENSION_MS,
) -> list[int]:
    """
    Presentation end time for every entry of `lines` (chronological order).

    Gap filler lines keep their own end; they only stop the line before them
    from being extended.
    """
    out = [_source_end(ln) for ln in lines]
    indices = [i for i, ln in enumerate(lines) if not ln.is_gap]
    timings = [
        _Timing(
            start_ms=_clamp_ms(lines[i].start_ms),
            original_end_ms=out[i],
            new_end_ms=out[i],
            followed_by_gap=i + 1 < len(lines) and lines[i + 1].is_gap,
        )
        for i in indices
    ]

    for i in range(len(timings) - 2):
        a, b, c = timings[i], timings[i + 1], timings[i + 2]
        a_overlaps_b = b.start_ms < a.original_end_ms
        b_overlaps_c = c.start_ms < b.original_end_ms
        if a_overlaps_b and b_overlaps_c and c.start_ms >= a.original_end_ms:
            a.new_end_ms = c.start_ms
            a.resolved = True

    for i in range(len(timings) - 2, -1, -1):
        cur, nxt = timings[i], timings[i + 1]
        if cur.resolved:
            continue
        if nxt.start_ms < cur.original_end_ms:
            overlap = cur.original_end_ms - nxt.start_ms
            if overlap >= overlap_threshold_ms:
                cur.new_end_ms = nxt.new_end_ms
            else:
                cur.new_end_ms = cur.original_end_ms
        else:
            gap = nxt.start_ms - cur.original_end_ms
            if gap > 0 and not cur.followed_by_gap:
                cur.new_end_ms = cur.original_end_ms + min(max_extension_ms, gap)

    for i, t in zip(indices, timings):
        if abs(t.new_end_ms - t.original_end_ms) > EPSILON_MS:
            out[i] = max(t.new_end_ms, t.start_ms)
    return out


def retime_lines(
    lines: Sequence[Line],
    *,
    overlap_threshold_ms: int = OVERLAP_THRESHOLD_MS,
    max_extension_ms: int = MAX_EXTENSION_MS,
) -> int:
    """Write retimed ends back in place; returns how many lines moved."""
    ends = compute_retimed_ends(
        lines, overlap_threshold_ms=overlap_threshold_ms, max_extension_ms=max_extension_ms
    )
    changed = 0
    for line, end_ms in zip(lines, ends):
        if line.is_gap:
            continue
        line.source_end_ms = _source_end(line)
        if line.end_ms != end_ms:
            line.end_ms = end_ms
            changed += 1
    return changed


def retime_document(doc: TimedDocument, **kwargs: int) -> int:
    changed = retime_lines(doc.lines, **kwargs)
    logger.debug("Retimed %d of %d lines", changed, len(doc.lines))
    return changed


def _gap_line(start_ms: int, end_ms: int, next_line: Line) -> Line:
    start_ms = max(start_ms, 0)
    end_ms = max(end_ms, start_ms)
    span = end_ms - start_ms
    dots = [
        Syllable(
            text=GAP_DOT,
            start_ms=start_ms + round(i * span / 3),
            duration_ms=round(span / 3 / 0.9),
            is_line_ending=i == 2,
        )
        for i in range(3)
    ]
    return Line(
        start_ms=start_ms,
        end_ms=end_ms,
        text="",
        syllables=dots,
        speaker_id=next_line.speaker_id,
        song_part_index=next_line.song_part_index,
        is_gap=True,
    )


def insert_gap_lines(doc: TimedDocument, *, min_gap_ms: int = GAP_LINE_MIN_MS) -> TimedDocument:
    """
    New document with filler lines in long instrumental gaps.

    A filler goes before a first line starting at `min_gap_ms` or later, and
    between two lines when the next one starts `min_gap_ms` or more after the
    previous one's sung end. Lines are copied; `doc` is left untouched.
    """
    source = [replace(ln) for ln in doc.lines if not ln.is_gap]
    out: list[Line] = []
    if source and source[0].start_ms >= min_gap_ms:
        out.append(_gap_line(0, source[0].start_ms - GAP_TRAIL_MS, source[0]))
    for i, line in enumerate(source):
        out.append(line)
        if i + 1 < len(source):
            nxt = source[i + 1]
            if nxt.start_ms - line.sung_end_ms >= min_gap_ms:
                out.append(_gap_line(line.sung_end_ms + GAP_LEAD_MS, nxt.start_ms - GAP_TRAIL_MS, nxt))
    return replace(doc, lines=out)


def prepare_document(
    doc: TimedDocument,
    *,
    gap_lines: bool = True,
    min_gap_ms: int = GAP_LINE_MIN_MS,
    overlap_threshold_ms: int = OVERLAP_THRESHOLD_MS,
    max_extension_ms: int = MAX_EXTENSION_MS,
) -> TimedDocument:
    """Gap filler lines (optional) followed by retiming: the usual step before syncing."""
    if gap_lines:
        doc = insert_gap_lines(doc, min_gap_ms=min_gap_ms)
    retime_document(doc, overlap_threshold_ms=overlap_threshold_ms, max_extension_ms=max_extension_ms)
    return doc
