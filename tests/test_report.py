"""
Tests for event deduplication and integrity scoring
"""
import random

from conftest import at_ms, make_event

from app.models import EventKind, Session
from app.report import (
    build_report,
    canonicalize,
    compute_duration,
    compute_integrity_score,
    summarize_events,
)


class TestCanonicalize:
    def test_same_bucket_collapses(self):
        events = [make_event(EventKind.FOCUS_LOST, 0), make_event(EventKind.FOCUS_LOST, 4999)]
        canonical = canonicalize(events)
        assert len(canonical) == 1
        assert canonical[0].occurred_at == at_ms(0)

    def test_bucket_boundary_splits(self):
        events = [make_event(EventKind.FOCUS_LOST, 4999), make_event(EventKind.FOCUS_LOST, 5000)]
        assert len(canonicalize(events)) == 2

    def test_different_kinds_share_bucket(self):
        events = [make_event(EventKind.FOCUS_LOST, 100), make_event(EventKind.ABSENCE_DETECTED, 100)]
        assert len(canonicalize(events)) == 2

    def test_keeps_earliest_regardless_of_input_order(self):
        events = [make_event(EventKind.MULTIPLE_FACES, 3000), make_event(EventKind.MULTIPLE_FACES, 1000)]
        canonical = canonicalize(events)
        assert [e.occurred_at for e in canonical] == [at_ms(1000)]

    def test_equal_timestamps_keep_first_arrival(self):
        first = make_event(EventKind.FOCUS_LOST, 2000).model_copy(update={"id": "a"})
        second = make_event(EventKind.FOCUS_LOST, 2000).model_copy(update={"id": "b"})
        assert canonicalize([first, second])[0].id == "a"

    def test_idempotent_and_order_independent(self):
        rng = random.Random(7)
        kinds = [EventKind.FOCUS_LOST, EventKind.ABSENCE_DETECTED, EventKind.PHONE_DETECTED]
        events = [make_event(rng.choice(kinds), rng.randrange(0, 60000)) for _ in range(200)]
        once = canonicalize(events)
        shuffled = list(events)
        rng.shuffle(shuffled)

        assert canonicalize(once) == once
        assert canonicalize(shuffled) == once
        assert [e.occurred_at for e in once] == sorted(e.occurred_at for e in once)

    def test_count_never_decreases_as_events_arrive(self):
        rng = random.Random(11)
        raw = []
        previous = 0
        for _ in range(100):
            raw.append(make_event(EventKind.BOOK_DETECTED, rng.randrange(0, 100000)))
            count = len(canonicalize(raw))
            assert count >= previous
            previous = count


class TestScoring:
    def test_focus_lost_scenario(self):
        events = [
            make_event(EventKind.FOCUS_LOST, 0),
            make_event(EventKind.FOCUS_LOST, 1200),
            make_event(EventKind.FOCUS_LOST, 4999),
            make_event(EventKind.FOCUS_LOST, 7000),
        ]
        counts = summarize_events(canonicalize(events))
        assert counts["focus_lost"] == 2
        assert compute_integrity_score(counts) == 90

    def test_weights(self):
        counts = {
            "focus_lost": 1,
            "absence": 1,
            "multiple_faces": 1,
            "phone_detected": 1,
            "book_detected": 1,
            "laptop_detected": 1,
        }
        assert compute_integrity_score(counts) == 100 - (5 + 10 + 15 + 10 + 8 + 8)

    def test_clamped_at_zero(self):
        events = [make_event(EventKind.MULTIPLE_FACES, i * 5000) for i in range(10)]
        counts = summarize_events(canonicalize(events))
        assert counts["multiple_faces"] == 10
        assert compute_integrity_score(counts) == 0

    def test_unscored_kinds_are_ignored(self):
        counts = summarize_events([make_event("bottle_detected", 0)])
        assert sum(counts.values()) == 0
        assert compute_integrity_score(counts) == 100

    def test_score_never_increases(self):
        rng = random.Random(3)
        kinds = [
            EventKind.FOCUS_LOST,
            EventKind.ABSENCE_DETECTED,
            EventKind.MULTIPLE_FACES,
            EventKind.PHONE_DETECTED,
            EventKind.BOOK_DETECTED,
            EventKind.LAPTOP_DETECTED,
        ]
        raw = []
        previous = 100
        for _ in range(60):
            raw.append(make_event(rng.choice(kinds), rng.randrange(0, 300000)))
            score = compute_integrity_score(summarize_events(canonicalize(raw)))
            assert 0 <= score <= previous
            previous = score


class TestDuration:
    def test_ongoing_without_end(self):
        session = Session(session_id="alice", display_name="Alice", started_at=at_ms(0))
        assert compute_duration(session) == "ongoing"
        assert compute_duration(None) == "ongoing"

    def test_rounds_half_up(self):
        session = Session(session_id="alice", display_name="Alice", started_at=at_ms(0), ended_at=at_ms(1500))
        assert compute_duration(session) == 2
        session = Session(session_id="alice", display_name="Alice", started_at=at_ms(0), ended_at=at_ms(1499))
        assert compute_duration(session) == 1

    def test_zero_length_session_is_numeric(self):
        session = Session(session_id="alice", display_name="Alice", started_at=at_ms(0), ended_at=at_ms(0))
        assert compute_duration(session) == 0


class TestBuildReport:
    def test_unknown_session_defaults(self):
        report = build_report("ghost", None, [])
        assert report.candidate_name == "Unknown"
        assert report.integrity_score == 100
        assert report.interview_duration == "ongoing"
        assert report.total_events == 0
        assert report.logs == []

    def test_report_counts_canonical_events(self):
        session = Session(session_id="alice", display_name="Alice", started_at=at_ms(0), ended_at=at_ms(60000))
        events = [
            make_event(EventKind.PHONE_DETECTED, 1000),
            make_event(EventKind.PHONE_DETECTED, 2000),
            make_event(EventKind.ABSENCE_DETECTED, 12000),
        ]
        report = build_report("alice", session, events)
        assert report.candidate_name == "Alice"
        assert report.interview_duration == 60
        assert report.phone_detected == 1
        assert report.absence == 1
        assert report.total_events == 2
        assert report.integrity_score == 80
        assert [e.kind for e in report.logs] == [EventKind.PHONE_DETECTED, EventKind.ABSENCE_DETECTED]
