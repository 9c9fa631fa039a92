"""
TTML (timed text markup) lyrics parser.

Handles the word/line synced documents served by Apple Music style sources:
- document-level ``itunes:timing`` of Word, Line or None
- ``ttm:agent`` voices and ``itunes:song-part`` sections
- background vocals wrapped in a ``ttm:role="x-bg"`` span
- translation/transliteration side tables in ``iTunesMetadata``, joined to
  paragraphs through ``itunes:key``

Unparsable input returns None; that is the normal "no lyrics" outcome.
"""

from __future__ import annotations

import html
import io
import logging
import math
import re
from dataclasses import dataclass, field
from xml.etree import ElementTree as ET

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

NS = {
    "tt": "http://www.w3.org/ns/ttml",
    "itunes": "http://music.apple.com/lyric-ttml-internal",
    "ttm": "http://www.w3.org/ns/ttml#metadata",
    "xml": "http://www.w3.org/XML/1998/namespace",
}

BACKGROUND_ROLE = "x-bg"

_NUMBER_RE = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)")


@dataclass(slots=True)
class _Context:
    prefixes: dict[str, str]
    parents: dict[ET.Element, ET.Element]
    offset_ms: int
    keep_separate: bool
    translations: dict[str, Translation] = field(default_factory=dict)
    transliterations: dict[str, Transliteration] = field(default_factory=dict)


def time_to_ms(value: str | None) -> int:
    """H:MM:SS.fff, MM:SS.fff or bare seconds -> non-negative ms (0 when unparsable)."""
    if not value:
        return 0
    parts = value.strip().split(":")
    if len(parts) == 3:
        h, m, s = (_leading_float(p) for p in parts)
        total = (h * 3600 + m * 60 + s) * 1000
    elif len(parts) == 2:
        m, s = (_leading_float(p) for p in parts)
        total = (m * 60 + s) * 1000
    else:
        total = _leading_float(parts[0]) * 1000
    if not math.isfinite(total) or total < 0:
        return 0
    return round(total)


def _leading_float(s: str) -> float:
    m = _NUMBER_RE.match(s)
    if not m:
        return 0.0
    try:
        return float(m.group(0))
    except ValueError:
        return 0.0


def _decode(text: str | None) -> str:
    # ElementTree already resolved one level of entities; sources sometimes double-encode
    if not text:
        return ""
    return html.unescape(text)


def _local(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(el: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in el.iter() if c is not el and _local(c.tag) == name]


def _first(el: ET.Element | None, *names: str) -> ET.Element | None:
    if el is None:
        return None
    for name in names:
        found = _children(el, name)
        if found:
            return found[0]
    return None


def _attr(ctx: _Context, el: ET.Element | None, ns_key: str | None, local: str) -> str | None:
    """
    Namespaced lookup first, then the prefixed name as declared by this
    document, then the bare attribute name.
    """
    if el is None:
        return None
    if ns_key:
        v = el.get(f"{{{NS[ns_key]}}}{local}")
        if v is not None:
            return v
        declared = ctx.prefixes.get(ns_key)
        if declared and declared != NS[ns_key]:
            v = el.get(f"{{{declared}}}{local}")
            if v is not None:
                return v
        v = el.get(f"{ns_key}:{local}")
        if v is not None:
            return v
    return el.get(local)


def _load(text: str) -> tuple[ET.Element, dict[str, str]] | None:
    prefixes: dict[str, str] = {}
    root: ET.Element | None = None
    try:
        for event, item in ET.iterparse(io.StringIO(text), events=("start-ns", "end")):
            if event == "start-ns":
                prefix, uri = item
                prefixes.setdefault(prefix, uri)
            else:
                root = item
    except ET.ParseError as e:
        logger.warning("Failed to parse TTML document: %s", e)
        return None
    if root is None:
        return None
    return root, prefixes


def _direct_text(el: ET.Element) -> str:
    parts = [el.text or ""]
    parts.extend(child.tail or "" for child in el)
    return "".join(parts)


def _is_timed(ctx: _Context, el: ET.Element) -> bool:
    return _local(el.tag) == "span" and bool(_attr(ctx, el, None, "begin"))


def _inside_background(ctx: _Context, node: ET.Element, paragraph: ET.Element) -> bool:
    current = ctx.parents.get(node)
    while current is not None and current is not paragraph:
        if _attr(ctx, current, "ttm", "role") == BACKGROUND_ROLE:
            return True
        current = ctx.parents.get(current)
    return False


def _walk_spans(ctx: _Context, container: ET.Element, *, flag_background: bool) -> tuple[list[Syllable], str]:
    """
    Flat walk over the timed spans below `container` in document order.

    Spans of a background wrapper are flagged; spans nested inside such a span
    are not visited again (one level of nesting is flattened).
    """
    syllables: list[Syllable] = []
    text = ""
    seen: set[int] = set()
    for sp in [c for c in container.iter() if c is not container and _is_timed(ctx, c)]:
        if id(sp) in seen:
            continue
        is_bg = flag_background and _inside_background(ctx, sp, container)
        if is_bg:
            seen.update(id(nested) for nested in sp.iter() if nested is not sp and _local(nested.tag) == "span")
        seen.add(id(sp))

        span_text = _decode(_direct_text(sp))
        tail = sp.tail or ""
        if tail and not ctx.keep_separate:
            span_text += _decode(tail)
        if not span_text.strip() and " " not in tail:
            continue

        begin = time_to_ms(_attr(ctx, sp, None, "begin"))
        end = time_to_ms(_attr(ctx, sp, None, "end"))
        syllables.append(
            Syllable(
                text=span_text,
                start_ms=max(begin + ctx.offset_ms, 0),
                duration_ms=max(end - begin, 0),
                is_background=is_bg,
            )
        )
        text += span_text
    return syllables, text


def _finish_syllables(syllables: list[Syllable]) -> list[Syllable]:
    # main and background vocals interleave in time; keep the layer order stable
    ordered = sorted(syllables, key=lambda s: s.start_ms)
    if ordered:
        last = ordered[-1]
        ordered[-1] = Syllable(
            text=last.text,
            start_ms=last.start_ms,
            duration_ms=last.duration_ms,
            is_background=last.is_background,
            is_line_ending=True,
        )
    return ordered


def _read_agents(ctx: _Context, head: ET.Element, md: Metadata) -> None:
    for a in _children(head, "agent"):
        agent_id = _attr(ctx, a, "xml", "id")
        if not agent_id:
            continue
        name_el = _first(a, "name")
        name = _decode((name_el.text or "").strip()) if name_el is not None else ""
        md.agents[agent_id] = Agent(
            type=_attr(ctx, a, None, "type") or "person",
            name=name,
            alias=agent_id.replace("voice", "v"),
        )


def _read_song_info(ctx: _Context, head: ET.Element, itunes_meta: ET.Element | None, md: Metadata) -> None:
    meta = itunes_meta if itunes_meta is not None else _first(head, "metadata")
    if meta is None:
        return
    title_el = _first(meta, "title")
    if title_el is not None:
        md.title = _decode("".join(title_el.itertext()).strip())
    writers = _first(meta, "songwriters")
    if writers is not None:
        for w in _children(writers, "songwriter"):
            name = _decode("".join(w.itertext()).strip())
            if name:
                md.song_writers.append(name)


def _read_side_tables(ctx: _Context, itunes_meta: ET.Element) -> None:
    translations = _first(itunes_meta, "translations")
    if translations is not None:
        for tr in _children(translations, "translation"):
            lang = _attr(ctx, tr, "xml", "lang") or ""
            for text_el in _children(tr, "text"):
                line_id = _attr(ctx, text_el, None, "for")
                if line_id:
                    ctx.translations[line_id] = Translation(
                        lang=lang, text=_decode("".join(text_el.itertext()).strip())
                    )

    transliterations = _first(itunes_meta, "transliterations")
    if transliterations is not None:
        for tl in _children(transliterations, "transliteration"):
            lang = _attr(ctx, tl, "xml", "lang") or ""
            for text_el in _children(tl, "text"):
                line_id = _attr(ctx, text_el, None, "for")
                if not line_id:
                    continue
                has_spans = any(_is_timed(ctx, c) for c in text_el.iter() if c is not text_el)
                if has_spans:
                    syllables, full_text = _walk_spans(ctx, text_el, flag_background=False)
                    ctx.transliterations[line_id] = Transliteration(
                        lang=lang, text=full_text.strip(), syllables=tuple(_finish_syllables(syllables))
                    )
                else:
                    ctx.transliterations[line_id] = Transliteration(
                        lang=lang, text=_decode("".join(text_el.itertext()).strip())
                    )


def _paragraph_to_line(ctx: _Context, p: ET.Element, timing: TimingKind, part_index: int) -> Line | None:
    key = _attr(ctx, p, "itunes", "key") or ""
    singer = (_attr(ctx, p, "ttm", "agent") or "").replace("voice", "v")
    p_begin = _attr(ctx, p, None, "begin")
    p_end = _attr(ctx, p, None, "end")

    start_ms = 0
    end_ms = 0
    timed = bool(p_begin and p_end)
    if timed:
        start_ms = max(time_to_ms(p_begin) + ctx.offset_ms, 0)
        end_ms = start_ms + max(time_to_ms(p_end) - time_to_ms(p_begin), 0)

    syllables: list[Syllable] = []
    if timing is TimingKind.WORD:
        syllables, text = _walk_spans(ctx, p, flag_background=True)
        if not syllables:
            # word mode without spans: treat as a plain line
            text = _decode("".join(p.itertext()).strip())
        elif not timed:
            start_ms = min(s.start_ms for s in syllables)
            end_ms = max(s.end_ms for s in syllables)
    else:
        text = _decode("".join(p.itertext()).strip())
        if timing is TimingKind.NONE:
            start_ms = end_ms = 0

    if not text and not syllables:
        return None

    return Line(
        start_ms=start_ms,
        end_ms=end_ms,
        text=text,
        syllables=_finish_syllables(syllables),
        speaker_id=singer or None,
        song_part_index=part_index,
        key=key or None,
        translation=ctx.translations.get(key) if key else None,
        transliteration=ctx.transliterations.get(key) if key else None,
    )


def parse_ttml(
    text: str,
    *,
    offset_ms: int = 0,
    keep_separate: bool = False,
    source: str = "Apple Music",
) -> TimedDocument | None:
    loaded = _load(text)
    if loaded is None:
        return None
    root, prefixes = loaded
    ctx = _Context(
        prefixes=prefixes,
        parents={child: parent for parent in root.iter() for child in parent},
        offset_ms=offset_ms,
        keep_separate=keep_separate,
    )

    timing = TimingKind.parse(_attr(ctx, root, "itunes", "timing") or "Word")
    body = _first(root, "body")
    md = Metadata(
        source=source,
        language=_attr(ctx, root, "xml", "lang") or "",
        total_duration=_attr(ctx, body, None, "dur") or "",
    )

    head = _first(root, "head")
    if head is not None:
        itunes_meta = _first(head, "iTunesMetadata")
        _read_agents(ctx, head, md)
        _read_song_info(ctx, head, itunes_meta, md)
        if itunes_meta is not None:
            _read_side_tables(ctx, itunes_meta)

    lines: list[Line] = []
    for i, div in enumerate(_children(root, "div")):
        part_name = _attr(ctx, div, "itunes", "song-part") or _attr(ctx, div, "itunes", "songPart") or ""
        paragraphs = _children(div, "p")

        div_begin = _attr(ctx, div, None, "begin")
        div_end = _attr(ctx, div, None, "end")
        if paragraphs:
            div_begin = div_begin or _attr(ctx, paragraphs[0], None, "begin")
            div_end = div_end or _attr(ctx, paragraphs[-1], None, "end")
        md.song_parts.append(
            SongPart(
                name=part_name,
                start_ms=max(time_to_ms(div_begin) + (ctx.offset_ms if div_begin else 0), 0),
                duration_ms=max(time_to_ms(div_end) - time_to_ms(div_begin), 0),
            )
        )

        for p in paragraphs:
            line = _paragraph_to_line(ctx, p, timing, i)
            if line is not None:
                lines.append(line)

    lines.sort(key=lambda ln: ln.start_ms)
    logger.debug("TTML parsed: %d lines (%s), %d song parts", len(lines), timing.value, len(md.song_parts))
    return TimedDocument(kind=timing, metadata=md, lines=lines)
