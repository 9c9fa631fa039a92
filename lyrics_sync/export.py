from __future__ import annotations

import json

from lyrics_sync.model import Line, TimedDocument, TimingKind
from lyrics_sync.parsers.lrc import SPEAKER_TOKENS


def _lyric_lines(doc: TimedDocument) -> list[Line]:
    return [ln for ln in doc.lines if not ln.is_gap]


def export_json(doc: TimedDocument) -> str:
    data = doc.to_dict()
    data["lines"] = [d for d in data["lines"] if not d.get("is_gap")]
    return json.dumps(data, ensure_ascii=False, indent=2)


def _fmt_lrc_time(ms: int) -> str:
    m, rem = divmod(max(ms, 0), 60_000)
    s, ms2 = divmod(rem, 1_000)
    # keep 2 decimals for compatibility
    return f"{m:02d}:{s:02d}.{ms2 // 10:02d}"


def _enhanced_body(line: Line) -> str:
    return "".join(f"<{_fmt_lrc_time(s.start_ms)}>{s.text}" for s in line.syllables)


def export_lrc(doc: TimedDocument, include_tags: bool = True) -> str:
    """
    Times are written with the offset already applied, so no [offset:] tag.
    Word-timed documents come out as Enhanced LRC.
    """
    out: list[str] = []
    tags = doc.metadata.tags
    if include_tags and tags:
        for k in sorted(tags.keys()):
            out.append(f"[{k}:{tags[k]}]")

    enhanced = doc.kind is TimingKind.WORD
    for ln in _lyric_lines(doc):
        body = _enhanced_body(ln) if enhanced and ln.syllables else ln.text
        prefix = f"[{ln.speaker_id}]" if ln.speaker_id in SPEAKER_TOKENS else ""
        out.append(f"[{_fmt_lrc_time(ln.start_ms)}]{prefix}{body}")
    return "\n".join(out) + ("\n" if out else "")


def _fmt_srt_time(ms: int) -> str:
    # HH:MM:SS,mmm
    h, rem = divmod(max(ms, 0), 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms2 = divmod(rem, 1_000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms2:03d}"


def export_srt(doc: TimedDocument) -> str:
    """Cue times are the line's start and end; zero-length lines get 1 ms."""
    lines = _lyric_lines(doc)
    if not lines:
        return ""
    out: list[str] = []
    for i, ln in enumerate(lines, start=1):
        out.append(str(i))
        out.append(f"{_fmt_srt_time(ln.start_ms)} --> {_fmt_srt_time(max(ln.end_ms, ln.start_ms + 1))}")
        out.append(ln.text or "")
        out.append("")
    return "\n".join(out)
