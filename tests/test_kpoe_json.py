from __future__ import annotations

import json

from lyrics_sync.model import TimingKind
from lyrics_sync.parsers.kpoe import parse_kpoe_json


def test_grouped_lines_with_syllabus():
    payload = {
        "type": "Word",
        "metadata": {
            "title": "T",
            "songWriters": ["W"],
            "agents": {"v1": {"type": "person", "name": "A"}},
            "songParts": [{"name": "Chorus", "time": 1000, "duration": 2000}],
        },
        "lyrics": [
            {
                "time": 1000,
                "duration": 2000,
                "text": "Hi there",
                "syllabus": [
                    {"time": 1000, "duration": 500, "text": "Hi "},
                    {"time": 1500, "duration": 1500, "text": "there"},
                ],
                "element": {"singer": "v1", "key": "L1", "songPartIndex": 0},
                "translation": {"lang": "es", "text": "Hola"},
            }
        ],
    }
    doc = parse_kpoe_json(json.dumps(payload))
    assert doc is not None
    assert doc.kind is TimingKind.WORD
    line = doc.lines[0]
    assert (line.start_ms, line.end_ms, line.text) == (1000, 3000, "Hi there")
    assert [(s.text, s.start_ms, s.duration_ms, s.is_line_ending) for s in line.syllables] == [
        ("Hi ", 1000, 500, False),
        ("there", 1500, 1500, True),
    ]
    assert (line.speaker_id, line.key, line.song_part_index) == ("v1", "L1", 0)
    assert line.translation is not None and line.translation.text == "Hola"

    md = doc.metadata
    assert md.title == "T"
    assert md.song_writers == ["W"]
    assert md.agents["v1"].name == "A"
    assert [(p.name, p.start_ms, p.duration_ms) for p in md.song_parts] == [("Chorus", 1000, 2000)]


def test_segment_list_grouped_by_line_ending():
    doc = parse_kpoe_json(
        {
            "type": "Word",
            "lyrics": [
                {"time": 1000, "duration": 300, "text": "Hel", "isLineEnding": 0},
                {"time": 1300, "duration": 400, "text": "lo", "isLineEnding": 1},
                {"time": 2000, "duration": 500, "text": "Bye", "isLineEnding": 1},
            ],
        }
    )
    assert [(ln.start_ms, ln.end_ms, ln.text) for ln in doc.lines] == [(1000, 1700, "Hello"), (2000, 2500, "Bye")]
    assert [s.text for s in doc.lines[0].syllables] == ["Hel", "lo"]
    assert doc.lines[0].syllables[-1].is_line_ending


def test_line_type_has_no_syllables():
    doc = parse_kpoe_json({"type": "Line", "lyrics": [{"time": 0, "duration": 1000, "text": "a"}]})
    assert doc.kind is TimingKind.LINE
    assert doc.lines[0].syllables == []


def test_bad_numbers_clamp_to_zero_and_lines_sorted():
    doc = parse_kpoe_json(
        {
            "type": "Line",
            "lyrics": [
                {"time": 5000, "duration": 1000, "text": "b"},
                {"time": -20, "duration": "oops", "text": "a"},
                {"time": 100, "duration": 100, "text": "   "},
            ],
        }
    )
    assert [(ln.start_ms, ln.end_ms, ln.text) for ln in doc.lines] == [(0, 0, "a"), (5000, 6000, "b")]


def test_invalid_json_returns_none():
    assert parse_kpoe_json("{not json") is None
    assert parse_kpoe_json('{"type": "Word"}') is None
    assert parse_kpoe_json("[]") is None
