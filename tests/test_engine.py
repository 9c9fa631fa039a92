from __future__ import annotations

import pytest

from lyrics_sync.errors import SessionClosed
from lyrics_sync.model import Line, Syllable, TimedDocument, TimingKind
from lyrics_sync.sync.engine import SyllableState, SyncEngine, SyncSettings, line_progress
from lyrics_sync.sync.governor import ScrollInstruction
from tests.mocks.player_mock import FakeClock


def _doc(*lines: Line) -> TimedDocument:
    return TimedDocument(kind=TimingKind.WORD, lines=list(lines))


def _ab() -> TimedDocument:
    return _doc(Line(start_ms=0, end_ms=2000, text="A"), Line(start_ms=2000, end_ms=4000, text="B"))


def _word_line() -> Line:
    return Line(
        start_ms=1000,
        end_ms=4000,
        text="abc",
        syllables=[
            Syllable("a", 1000, 500),
            Syllable("b", 1500, 500),
            Syllable("c", 2000, 1000, is_line_ending=True),
        ],
    )


@pytest.fixture
def engine():
    return SyncEngine()


class TestPureRules:
    def test_zero_max_active_lines_yields_none(self):
        engine = SyncEngine(SyncSettings(max_active_lines=0))
        assert engine.active_lines(_ab(), 500) == ()

    def test_scroll_leads_highlight(self, engine):
        doc = _ab()
        # predictive time 2050 is inside B while A is still highlighted
        assert engine.scroll_target(doc, 1750) == 1
        assert engine.active_lines(doc, 1750) == (0,)

    def test_scroll_target_before_playback_is_first_line(self, engine):
        doc = _doc(Line(start_ms=5000, end_ms=6000, text="x"), Line(start_ms=7000, end_ms=8000, text="y"))
        assert engine.scroll_target(doc, 0) == 0
        assert engine.active_lines(doc, 0) == ()

    def test_scroll_target_mid_gap_stays_on_previous_line(self, engine):
        doc = _doc(Line(start_ms=0, end_ms=1000, text="x"), Line(start_ms=5000, end_ms=6000, text="y"))
        assert engine.scroll_target(doc, 3000) == 0

    def test_scroll_target_prefers_latest_start(self, engine):
        doc = _doc(Line(start_ms=0, end_ms=5000, text="long"), Line(start_ms=1000, end_ms=3000, text="short"))
        assert engine.scroll_target(doc, 1500) == 1

    def test_scroll_target_tie_goes_to_earlier_line(self, engine):
        doc = _doc(Line(start_ms=1000, end_ms=3000, text="x"), Line(start_ms=1000, end_ms=4000, text="y"))
        assert engine.scroll_target(doc, 1500) == 0

    def test_empty_document(self, engine):
        doc = _doc()
        assert engine.scroll_target(doc, 1000) is None
        assert engine.active_lines(doc, 1000) == ()

    def test_active_lines_capped_to_latest_three(self, engine):
        doc = _doc(*(Line(start_ms=i * 100, end_ms=10_000, text=str(i)) for i in range(5)))
        assert engine.active_lines(doc, 1000) == (2, 3, 4)

    def test_custom_settings(self):
        engine = SyncEngine(SyncSettings(scroll_lookahead_ms=0, highlight_lookahead_ms=0, max_active_lines=1))
        doc = _ab()
        assert engine.scroll_target(doc, 1750) == 0
        assert engine.active_lines(doc, 2000) == (1,)


class TestTick:
    def test_activation_is_change_driven(self, engine):
        doc = _ab()
        with engine.open_session(doc, clock=FakeClock()) as session:
            r = engine.tick(session, 0)
            assert (r.activated, r.deactivated) == ((0,), ())
            r = engine.tick(session, 1000)
            assert (r.activated, r.deactivated) == ((), ())
            r = engine.tick(session, 1900)
            assert (r.activated, r.deactivated) == ((1,), (0,))
            assert r.active_lines == (1,)

    def test_unchanged_time_emits_nothing(self, engine):
        doc = _doc(_word_line())
        with engine.open_session(doc, clock=FakeClock()) as session:
            first = engine.tick(session, 1600)
            assert first.changed
            again = engine.tick(session, 1600)
            assert not again.changed
            assert again.activated == () and again.syllable_changes == () and again.scroll is None
            assert again.syllable_states == first.syllable_states

    def test_syllable_states(self, engine):
        doc = _doc(_word_line())
        with engine.open_session(doc, clock=FakeClock()) as session:
            r = engine.tick(session, 1600)
        assert r.syllable_states == {
            (0, 0): SyllableState.FINISHED,
            (0, 1): SyllableState.HIGHLIGHTED,
            (0, 2): SyllableState.IDLE,
        }
        assert [(c.syllable_index, c.state) for c in r.syllable_changes] == [
            (0, SyllableState.FINISHED),
            (1, SyllableState.HIGHLIGHTED),
        ]

    def test_backward_seek_resets_syllables_and_jumps(self, engine):
        doc = _doc(_word_line())
        with engine.open_session(doc, clock=FakeClock()) as session:
            r = engine.tick(session, 3500)
            assert set(r.syllable_states.values()) == {SyllableState.FINISHED}

            r = engine.tick(session, 1200)
            assert r.is_seek
            assert r.scroll == ScrollInstruction(0, instant=True, forced=True)
            assert r.syllable_states[(0, 0)] is SyllableState.HIGHLIGHTED
            assert r.syllable_states[(0, 1)] is SyllableState.IDLE
            assert r.syllable_states[(0, 2)] is SyllableState.IDLE
            assert {(c.syllable_index, c.state) for c in r.syllable_changes} == {
                (0, SyllableState.HIGHLIGHTED),
                (1, SyllableState.IDLE),
                (2, SyllableState.IDLE),
            }

    def test_small_jump_is_not_a_seek(self, engine):
        doc = _ab()
        with engine.open_session(doc, clock=FakeClock()) as session:
            engine.tick(session, 0)
            r = engine.tick(session, 1000)
            assert not r.is_seek

    def test_deactivated_line_syllables_reset(self, engine):
        doc = _doc(_word_line(), Line(start_ms=4000, end_ms=6000, text="next"))
        with engine.open_session(doc, clock=FakeClock()) as session:
            engine.tick(session, 3000)
            r = engine.tick(session, 3900)
        assert r.deactivated == (0,)
        assert {(c.line_index, c.state) for c in r.syllable_changes} == {(0, SyllableState.IDLE)}
        assert len(r.syllable_changes) == 3
        assert r.syllable_states == {}

    def test_non_finite_time_clamps_to_zero(self, engine):
        with engine.open_session(_ab(), clock=FakeClock()) as session:
            assert engine.tick(session, float("nan")).time_ms == 0
            assert engine.tick(session, -500).time_ms == 0

    def test_line_progress_uses_sung_end(self, engine):
        line = Line(start_ms=1000, end_ms=4000, text="x", source_end_ms=3000)
        assert line_progress(line, 2000) == 0.5
        assert line_progress(line, 3500) == 1.0
        assert line_progress(line, 0) == 0.0


class TestSessionLifecycle:
    def test_closed_session_refuses_ticks(self, engine):
        session = engine.open_session(_ab(), clock=FakeClock())
        session.close()
        with pytest.raises(SessionClosed):
            engine.tick(session, 0)
        with pytest.raises(SessionClosed):
            engine.click_line(session, 0)

    def test_context_manager_closes(self, engine):
        with engine.open_session(_ab(), clock=FakeClock()) as session:
            engine.tick(session, 0)
        assert session.closed
        assert session.active == ()

    def test_open_session_closes_previous(self, engine):
        old = engine.open_session(_ab(), clock=FakeClock())
        new = engine.open_session(_ab(), previous=old, clock=FakeClock())
        assert old.closed and not new.closed
        assert engine.tick(new, 0).active_lines == (0,)


class TestInputEvents:
    def test_click_line_returns_seek_time_and_forces_scroll(self, engine):
        doc = _doc(Line(start_ms=30, end_ms=1000, text="x"), Line(start_ms=5000, end_ms=6000, text="y"))
        with engine.open_session(doc, clock=FakeClock()) as session:
            engine.tick(session, 0)
            engine.manual_scroll(session, now_ms=10)
            assert engine.click_line(session, 0) == 0
            assert engine.click_line(session, 1) == 4950
            r = engine.tick(session, 100)
            assert r.scroll == ScrollInstruction(1, instant=False, forced=True)

    @pytest.mark.parametrize("index", [-1, 2])
    def test_click_outside_document_is_ignored(self, engine, index):
        doc = _doc(Line(start_ms=30, end_ms=1000, text="x"), Line(start_ms=5000, end_ms=6000, text="y"))
        with engine.open_session(doc, clock=FakeClock()) as session:
            engine.tick(session, 100)
            engine.manual_scroll(session, now_ms=10)
            assert engine.click_line(session, index) == 100
            r = engine.tick(session, 150)
            assert r.scroll is None
            assert session.governor.is_user_controlled

    def test_manual_scroll_suppresses_until_idle(self, engine):
        clock = FakeClock()
        doc = _ab()
        with engine.open_session(doc, clock=clock) as session:
            assert engine.tick(session, 0).scroll == ScrollInstruction(0)
            engine.manual_scroll(session)
            clock.advance(1000)
            r = engine.tick(session, 1750)
            assert r.scroll_target == 1 and r.scroll is None
            clock.advance(3000)
            r = engine.tick(session, 1800)
            assert r.scroll == ScrollInstruction(1, forced=True)

    def test_seek_request_forces_scroll(self, engine):
        clock = FakeClock()
        with engine.open_session(_ab(), clock=clock) as session:
            engine.tick(session, 0)
            engine.manual_scroll(session)
            assert engine.seek(session, 2500) == 2500
            r = engine.tick(session, 2500)
            assert r.scroll is not None and r.scroll.line_index == 1 and r.scroll.forced
