from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from enum import Enum

from lyrics_sync.model import Syllable, TimedDocument, TimingKind, Translation, Transliteration

logger = logging.getLogger(__name__)


class DisplayMode(str, Enum):
    NONE = "none"
    TRANSLATE = "translate"
    ROMANIZE = "romanize"
    BOTH = "both"


def to_line_timing(doc: TimedDocument) -> TimedDocument:
    """Word-synced document -> line-synced copy without syllables. Other kinds pass through."""
    if doc.kind is not TimingKind.WORD:
        return doc
    return replace(doc, kind=TimingKind.LINE, lines=[replace(ln, syllables=[]) for ln in doc.lines])


def _romanized_syllables(syllables: Sequence[Syllable], chunk: Sequence[str]) -> tuple[Syllable, ...]:
    out = []
    for i, syl in enumerate(syllables):
        text = chunk[i] if i < len(chunk) and chunk[i] else syl.text
        out.append(replace(syl, text=text))
    return tuple(out)


def merge_side_channels(
    doc: TimedDocument,
    *,
    translations: Sequence[str | None] | None = None,
    romanizations: Sequence[str | Sequence[str] | None] | None = None,
    translation_lang: str = "",
    romanization_lang: str = "",
) -> TimedDocument:
    """
    Copy of `doc` with externally fetched translations/romanizations joined by line index.

    A romanization entry is either the whole romanized line or, for
    word-synced documents, one string per syllable; the latter becomes a
    timed transliteration reusing the original syllable timings.
    """
    translations = translations or ()
    romanizations = romanizations or ()
    lines = []
    for i, line in enumerate(doc.lines):
        merged = replace(line)
        tr = translations[i] if i < len(translations) else None
        if tr:
            merged.translation = Translation(lang=translation_lang, text=tr)

        rom = romanizations[i] if i < len(romanizations) else None
        if isinstance(rom, str):
            if rom:
                merged.transliteration = Transliteration(lang=romanization_lang, text=rom)
        elif rom:
            if doc.kind is TimingKind.WORD and line.syllables:
                syllables = _romanized_syllables(line.syllables, rom)
                merged.transliteration = Transliteration(
                    lang=romanization_lang, text="".join(s.text for s in syllables), syllables=syllables
                )
            else:
                merged.transliteration = Transliteration(lang=romanization_lang, text=" ".join(rom))
        lines.append(merged)

    if len(translations) > len(doc.lines) or len(romanizations) > len(doc.lines):
        logger.debug("Side channels longer than the document (%d lines); extra entries ignored", len(doc.lines))
    return replace(doc, lines=lines)


def resolve_display_mode(intended: DisplayMode | str, has_translation: bool, has_romanization: bool) -> DisplayMode:
    """Fall back gracefully when the data behind the intended mode is missing."""
    mode = DisplayMode(intended)
    if mode is DisplayMode.BOTH:
        if has_translation and has_romanization:
            return DisplayMode.BOTH
        if has_translation:
            return DisplayMode.TRANSLATE
        if has_romanization:
            return DisplayMode.ROMANIZE
    if mode is DisplayMode.TRANSLATE and has_translation:
        return DisplayMode.TRANSLATE
    if mode is DisplayMode.ROMANIZE and has_romanization:
        return DisplayMode.ROMANIZE
    return DisplayMode.NONE
