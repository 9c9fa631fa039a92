from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from lyrics_sync.model import Line, Metadata, Syllable, TimedDocument, TimingKind

logger = logging.getLogger(__name__)

_TS_RE = re.compile(r"\[(\d+):(\d{2})(?:[.:](\d+))?\]")  # [mm:ss] / [mm:ss.xx] / [mm:ss:xx]
_WORD_TS_RE = re.compile(r"<(\d+):(\d{2})(?:[.:](\d+))?>")  # <mm:ss.xx>
_OFFSET_RE = re.compile(r"^\[offset:([+-]?\d+)\]$", re.IGNORECASE)
_TAG_RE = re.compile(r"^\[([a-zA-Z#]+):([^\]]*)\]$")
SPEAKER_TOKENS = ("bg", "v1", "v2", "v3", "f", "m", "d", "duet", "male", "female")
_SPEAKER_RE = re.compile(r"\[(" + "|".join(SPEAKER_TOKENS) + r"):?\]", re.IGNORECASE)

LAST_LINE_MS = 5000


class LrcParseError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class LrcParseStats:
    lines_total: int
    entries_total: int
    lines_with_timestamps: int
    lines_ignored: int
    offset_ms: int


@dataclass(slots=True)
class _Run:
    text: str
    start_ms: int | None  # None: starts with the line itself


@dataclass(slots=True)
class _Entry:
    start_ms: int
    text: str
    runs: list[_Run]
    speaker: str | None


def _parse_ts_to_ms(m: int, s: int, frac: str | None) -> int:
    if not (0 <= s <= 59):
        raise LrcParseError(f"Invalid seconds: {s}")
    if not frac:
        ms = 0
    elif len(frac) == 1:
        ms = int(frac) * 100
    elif len(frac) == 2:
        ms = int(frac) * 10
    else:
        # "234567" -> 234ms
        ms = int(frac[:3])
    return (m * 60 + s) * 1000 + ms


def _stamp_ms(match: re.Match[str], offset_ms: int) -> int | None:
    try:
        t_ms = _parse_ts_to_ms(int(match.group(1)), int(match.group(2)), match.group(3))
    except LrcParseError as e:
        logger.debug("Skipping malformed timestamp %r: %s", match.group(0), e)
        return None
    return max(t_ms + offset_ms, 0)


def _scan_offset(raw_lines: list[str]) -> int:
    # [offset:+N] shifts lyrics earlier, so the tag value is applied negated
    offset_ms = 0
    for raw in raw_lines:
        off = _OFFSET_RE.match(raw.strip())
        if off:
            offset_ms = -int(off.group(1))
    return offset_ms


def _apply_header_tag(md: Metadata, key: str, value: str) -> None:
    k = key.strip().lower()
    v = value.strip()
    if not k or not v:
        return
    md.tags[k] = v
    if k == "ti":
        md.title = v
    elif k in ("la", "lang"):
        md.language = v
    elif k == "au":
        md.song_writers = [w.strip() for w in re.split(r"[/,]", v) if w.strip()]


def _split_word_runs(content: str, offset_ms: int) -> list[_Run]:
    """
    Split `content` at inline <mm:ss.xx> tags.

    Each tag marks the start of the text that follows it. Returns [] when the
    content has no usable word tag.
    """
    runs: list[_Run] = []
    cursor = 0
    current: int | None = None
    has_tag = False
    for m in _WORD_TS_RE.finditer(content):
        piece = content[cursor : m.start()]
        if piece:
            runs.append(_Run(text=piece, start_ms=current))
        t_ms = _stamp_ms(m, offset_ms)
        if t_ms is not None:
            current = t_ms
            has_tag = True
        cursor = m.end()
    tail = content[cursor:]
    if tail:
        runs.append(_Run(text=tail, start_ms=current))
    return runs if has_tag else []


def _build_syllables(entry: _Entry, line_end_ms: int) -> list[Syllable]:
    starts: list[int] = []
    prev = 0
    for run in entry.runs:
        start = entry.start_ms if run.start_ms is None else run.start_ms
        # keep starts non-decreasing even when tags are out of order
        start = max(start, prev)
        starts.append(start)
        prev = start

    durations = [max(starts[i + 1] - starts[i], 0) for i in range(len(starts) - 1)]
    if starts:
        durations.append(max(line_end_ms - starts[-1], 0))

    background = entry.speaker == "bg"
    last = len(entry.runs) - 1
    return [
        Syllable(
            text=run.text,
            start_ms=starts[i],
            duration_ms=durations[i],
            is_background=background,
            is_line_ending=i == last,
        )
        for i, run in enumerate(entry.runs)
    ]


def parse_lrc(text: str, *, source: str = "Local Files", last_line_ms: int = LAST_LINE_MS) -> TimedDocument:
    """
    Supported:
    - [mm:ss], [mm:ss.x], [mm:ss.xx], [mm:ss.xxx], [mm:ss:xx]
    - multiple timestamps per line (compressed LRC)
    - inline <mm:ss.xx> word timestamps (Enhanced LRC)
    - [offset:+/-ms]
    - speaker tokens: [bg], [v1], [v2], [v3], [F], [M], [D], [duet], [male], [female]
    - header tags: [ar:], [ti:], [al:], [au:], [la:], ...

    Result is normalized:
    - lines sorted by start time
    - each line ends where the next entry starts (last line: +last_line_ms)
    - negative times clamped to 0
    - empty lines removed after their timing was used
    """
    doc, _stats = parse_lrc_with_stats(text, source=source, last_line_ms=last_line_ms)
    return doc


def parse_lrc_with_stats(
    text: str, *, source: str = "Local Files", last_line_ms: int = LAST_LINE_MS
) -> tuple[TimedDocument, LrcParseStats]:
    raw_lines = text.splitlines()
    offset_ms = _scan_offset(raw_lines)
    metadata = Metadata(source=source)
    entries: list[_Entry] = []
    enhanced = False

    lines_with_ts = 0
    ignored = 0

    for raw in raw_lines:
        line = raw.strip()
        if not line:
            ignored += 1
            continue

        if _OFFSET_RE.match(line):
            continue

        tag = _TAG_RE.match(line)
        if tag and not _TS_RE.search(line):
            _apply_header_tag(metadata, tag.group(1), tag.group(2))
            continue

        speaker: str | None = None
        sp = _SPEAKER_RE.search(line)
        if sp:
            speaker = sp.group(1).lower()
            line = line[: sp.start()] + line[sp.end() :]

        stamps = [t for t in (_stamp_ms(m, offset_ms) for m in _TS_RE.finditer(line)) if t is not None]
        if not stamps:
            ignored += 1
            continue

        lines_with_ts += 1
        content = _TS_RE.sub("", line).strip()
        runs = _split_word_runs(content, offset_ms)
        if runs:
            enhanced = True
        content = _WORD_TS_RE.sub("", content).strip()

        for t_ms in stamps:
            entries.append(_Entry(start_ms=t_ms, text=content, runs=runs, speaker=speaker))

    entries.sort(key=lambda e: e.start_ms)

    lines: list[Line] = []
    for i, entry in enumerate(entries):
        if i + 1 < len(entries):
            duration = entries[i + 1].start_ms - entry.start_ms
        else:
            duration = last_line_ms
        if not entry.text.strip():
            continue
        end_ms = entry.start_ms + duration

        syllables = _build_syllables(entry, end_ms)
        if enhanced and not syllables:
            syllables = [
                Syllable(
                    text=entry.text,
                    start_ms=entry.start_ms,
                    duration_ms=duration,
                    is_background=entry.speaker == "bg",
                    is_line_ending=True,
                )
            ]
        lines.append(
            Line(
                start_ms=entry.start_ms,
                end_ms=end_ms,
                text=entry.text,
                syllables=syllables,
                speaker_id=entry.speaker,
            )
        )

    doc = TimedDocument(kind=TimingKind.WORD if enhanced else TimingKind.LINE, metadata=metadata, lines=lines)
    stats = LrcParseStats(
        lines_total=len(raw_lines),
        entries_total=len(lines),
        lines_with_timestamps=lines_with_ts,
        lines_ignored=ignored,
        offset_ms=offset_ms,
    )
    logger.debug(
        "LRC parsed: %d lines (%s), %d ignored, offset %+d ms",
        len(lines),
        doc.kind.value,
        ignored,
        offset_ms,
    )
    return doc, stats