from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any

from lyrics_sync.model import (
    Agent,
    Line,
    Metadata,
    SongPart,
    Syllable,
    TimedDocument,
    TimingKind,
    Translation,
    Transliteration,
)

logger = logging.getLogger(__name__)


def _ms(value: Any) -> int:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(v) or v < 0:
        return 0
    return round(v)


def _syllable(raw: Mapping[str, Any], *, is_background: bool = False, is_line_ending: bool = False) -> Syllable:
    return Syllable(
        text=str(raw.get("text") or ""),
        start_ms=_ms(raw.get("time")),
        duration_ms=_ms(raw.get("duration")),
        is_background=is_background or raw.get("isBackground") is True,
        is_line_ending=is_line_ending,
    )


def _mark_ending(syllables: list[Syllable]) -> list[Syllable]:
    if syllables and not syllables[-1].is_line_ending:
        last = syllables[-1]
        syllables[-1] = Syllable(last.text, last.start_ms, last.duration_ms, last.is_background, True)
    return syllables


def _element(segment: Mapping[str, Any]) -> Mapping[str, Any]:
    el = segment.get("element")
    return el if isinstance(el, Mapping) else {}


def _side_channels(segment: Mapping[str, Any]) -> tuple[Translation | None, Transliteration | None]:
    translation = None
    tr = segment.get("translation")
    if isinstance(tr, Mapping) and tr.get("text"):
        translation = Translation(lang=str(tr.get("lang") or ""), text=str(tr["text"]))

    transliteration = None
    tl = segment.get("transliteration")
    if isinstance(tl, Mapping) and tl.get("text"):
        syl = [_syllable(s) for s in tl.get("syllabus") or [] if isinstance(s, Mapping)]
        transliteration = Transliteration(
            lang=str(tl.get("lang") or ""), text=str(tl["text"]), syllables=tuple(_mark_ending(syl))
        )
    return translation, transliteration


def _line_from_segment(segment: Mapping[str, Any], kind: TimingKind) -> Line:
    start = _ms(segment.get("time"))
    duration = _ms(segment.get("duration"))
    text = str(segment.get("text") or "")
    el = _element(segment)
    syllables = [_syllable(s) for s in segment.get("syllabus") or [] if isinstance(s, Mapping)]
    if kind is TimingKind.WORD and not syllables and text:
        syllables = [Syllable(text=text, start_ms=start, duration_ms=duration)]
    translation, transliteration = _side_channels(segment)
    return Line(
        start_ms=start,
        end_ms=start + duration,
        text=text,
        syllables=_mark_ending(sorted(syllables, key=lambda s: s.start_ms)),
        speaker_id=str(el.get("singer") or "") or None,
        song_part_index=el.get("songPartIndex") if isinstance(el.get("songPartIndex"), int) else None,
        key=str(el.get("key") or "") or None,
        translation=translation,
        transliteration=transliteration,
    )


def _close_group(syllables: list[Syllable], text: str, el: Mapping[str, Any]) -> Line:
    # group span is the extent of its syllables
    start = min(s.start_ms for s in syllables)
    end = max(s.end_ms for s in syllables)
    return Line(
        start_ms=start,
        end_ms=end,
        text=text.strip(),
        syllables=_mark_ending(sorted(syllables, key=lambda s: s.start_ms)),
        speaker_id=str(el.get("singer") or "") or None,
        key=str(el.get("key") or "") or None,
    )


def _group_by_line_ending(segments: list[Mapping[str, Any]]) -> list[Line]:
    lines: list[Line] = []
    syllables: list[Syllable] = []
    text = ""
    first_el: Mapping[str, Any] = {}
    for segment in segments:
        if not syllables:
            first_el = _element(segment)
        ending = segment.get("isLineEnding") == 1
        syllables.append(
            _syllable(
                segment,
                is_background=_element(segment).get("isBackground") is True,
                is_line_ending=ending,
            )
        )
        text += str(segment.get("text") or "")
        if ending:
            lines.append(_close_group(syllables, text, first_el))
            syllables, text = [], ""
    if syllables:
        # file ended without a closing isLineEnding
        lines.append(_close_group(syllables, text, first_el))
    return lines


def _metadata(raw: Any, source: str) -> Metadata:
    md = Metadata(source=source)
    if not isinstance(raw, Mapping):
        return md
    md.title = str(raw.get("title") or "")
    md.language = str(raw.get("language") or "")
    md.total_duration = str(raw.get("totalDuration") or "")
    md.song_writers = [str(w) for w in raw.get("songWriters") or [] if w]
    agents = raw.get("agents")
    if isinstance(agents, Mapping):
        for agent_id, a in agents.items():
            if isinstance(a, Mapping):
                md.agents[str(agent_id)] = Agent(
                    type=str(a.get("type") or "person"),
                    name=str(a.get("name") or ""),
                    alias=str(a.get("alias") or ""),
                )
    for part in raw.get("songParts") or []:
        if isinstance(part, Mapping):
            md.song_parts.append(
                SongPart(name=str(part.get("name") or ""), start_ms=_ms(part.get("time")), duration_ms=_ms(part.get("duration")))
            )
    return md


def parse_kpoe_json(data: str | Mapping[str, Any], *, source: str = "Local Files") -> TimedDocument | None:
    """
    Read KPoe lyrics JSON.

    Two shapes are accepted: the grouped form (one entry per line with an
    optional ``syllabus``) and the legacy segment list where consecutive
    segments form a line up to one flagged ``isLineEnding: 1``.
    """
    if isinstance(data, str):
        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.warning("Failed to parse lyrics JSON: %s", e)
            return None
    else:
        payload = data

    if not isinstance(payload, Mapping) or not isinstance(payload.get("lyrics"), list):
        logger.warning("Lyrics JSON has no 'lyrics' list")
        return None

    kind = TimingKind.parse(payload.get("type"))
    segments = [s for s in payload["lyrics"] if isinstance(s, Mapping)]
    grouped = kind is not TimingKind.LINE and any(s.get("isLineEnding") == 1 for s in segments)

    if grouped:
        lines = _group_by_line_ending(segments)
    else:
        lines = [_line_from_segment(s, kind) for s in segments]

    lines = [ln for ln in lines if ln.text.strip()]
    lines.sort(key=lambda ln: ln.start_ms)
    logger.debug("KPoe JSON parsed: %d lines (%s, grouped=%s)", len(lines), kind.value, grouped)
    return TimedDocument(kind=kind, metadata=_metadata(payload.get("metadata"), source), lines=lines)
