from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TimingKind(str, Enum):
    WORD = "Word"
    LINE = "Line"
    NONE = "None"

    @classmethod
    def parse(cls, value: str | None) -> "TimingKind":
        # anything unrecognised (including "syllable") is word-synced
        if value == "None":
            return cls.NONE
        if value == "Line":
            return cls.LINE
        return cls.WORD


@dataclass(frozen=True, slots=True)
class Agent:
    type: str = "person"
    name: str = ""
    alias: str = ""


@dataclass(frozen=True, slots=True)
class SongPart:
    name: str
    start_ms: int
    duration_ms: int


@dataclass(slots=True)
class Metadata:
    source: str = ""
    title: str = ""
    language: str = ""
    song_writers: list[str] = field(default_factory=list)
    agents: dict[str, Agent] = field(default_factory=dict)
    song_parts: list[SongPart] = field(default_factory=list)
    total_duration: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Syllable:
    text: str
    start_ms: int
    duration_ms: int
    is_background: bool = False
    is_line_ending: bool = False

    @property
    def end_ms(self) -> int:
        return self.start_ms + self.duration_ms


@dataclass(frozen=True, slots=True)
class Translation:
    lang: str
    text: str


@dataclass(frozen=True, slots=True)
class Transliteration:
    lang: str
    text: str
    syllables: tuple[Syllable, ...] = ()


@dataclass(slots=True)
class Line:
    """
    One displayed lyric line.

    `end_ms` may be rewritten by the retimer; the value it replaced is kept in
    `source_end_ms` so completion logic can still see where singing stops.
    """

    start_ms: int
    end_ms: int
    text: str
    syllables: list[Syllable] = field(default_factory=list)
    speaker_id: str | None = None
    song_part_index: int | None = None
    key: str | None = None
    translation: Translation | None = None
    transliteration: Transliteration | None = None
    source_end_ms: int | None = None
    is_gap: bool = False

    @property
    def duration_ms(self) -> int:
        return max(self.end_ms - self.start_ms, 0)

    @property
    def sung_end_ms(self) -> int:
        return self.end_ms if self.source_end_ms is None else self.source_end_ms


@dataclass(slots=True)
class TimedDocument:
    kind: TimingKind
    metadata: Metadata = field(default_factory=Metadata)
    lines: list[Line] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def syllable_count(self) -> int:
        return sum(len(ln.syllables) for ln in self.lines)

    def to_dict(self) -> dict[str, Any]:
        md = self.metadata
        return {
            "kind": self.kind.value,
            "metadata": {
                "source": md.source,
                "title": md.title,
                "language": md.language,
                "song_writers": list(md.song_writers),
                "agents": {
                    k: {"type": a.type, "name": a.name, "alias": a.alias} for k, a in md.agents.items()
                },
                "song_parts": [
                    {"name": p.name, "start_ms": p.start_ms, "duration_ms": p.duration_ms} for p in md.song_parts
                ],
                "total_duration": md.total_duration,
                "tags": dict(md.tags),
            },
            "lines": [_line_to_dict(ln) for ln in self.lines],
        }


def _syllable_to_dict(s: Syllable) -> dict[str, Any]:
    return {
        "text": s.text,
        "start_ms": s.start_ms,
        "duration_ms": s.duration_ms,
        "is_background": s.is_background,
        "is_line_ending": s.is_line_ending,
    }


def _line_to_dict(ln: Line) -> dict[str, Any]:
    out: dict[str, Any] = {
        "start_ms": ln.start_ms,
        "end_ms": ln.end_ms,
        "text": ln.text,
        "syllables": [_syllable_to_dict(s) for s in ln.syllables],
    }
    if ln.speaker_id:
        out["speaker_id"] = ln.speaker_id
    if ln.song_part_index is not None:
        out["song_part_index"] = ln.song_part_index
    if ln.key:
        out["key"] = ln.key
    if ln.translation is not None:
        out["translation"] = {"lang": ln.translation.lang, "text": ln.translation.text}
    if ln.transliteration is not None:
        tr = ln.transliteration
        out["transliteration"] = {
            "lang": tr.lang,
            "text": tr.text,
            "syllables": [_syllable_to_dict(s) for s in tr.syllables],
        }
    if ln.source_end_ms is not None:
        out["source_end_ms"] = ln.source_end_ms
    if ln.is_gap:
        out["is_gap"] = True
    return out
