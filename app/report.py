"""
Deduplication and scoring of a session's raw event stream.

Everything here is a pure function of the events and session record passed
in; reports are recomputed from the raw log on every request.
"""
import math
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .config import DEDUP_BUCKET_MS
from .models import CanonicalEvent, EventKind, ObservationEvent, Session, to_epoch_ms
from .schemas import EventResponse, ReportResponse

UNKNOWN_CANDIDATE = "Unknown"
ONGOING = "ongoing"

# report field -> event kind
COUNTED_KINDS = {
    "focus_lost": EventKind.FOCUS_LOST,
    "absence": EventKind.ABSENCE_DETECTED,
    "multiple_faces": EventKind.MULTIPLE_FACES,
    "phone_detected": EventKind.PHONE_DETECTED,
    "book_detected": EventKind.BOOK_DETECTED,
    "laptop_detected": EventKind.LAPTOP_DETECTED,
}

EVENT_WEIGHTS = {
    "focus_lost": 5,
    "absence": 10,
    "multiple_faces": 15,
    "phone_detected": 10,
    "book_detected": 8,
    "laptop_detected": 8,
}


def bucket_key(event: ObservationEvent, bucket_ms: int = DEDUP_BUCKET_MS) -> Tuple[str, int]:
    return event.kind, event.occurred_at_ms // bucket_ms


def canonicalize(events: Iterable[ObservationEvent], bucket_ms: int = DEDUP_BUCKET_MS) -> List[CanonicalEvent]:
    """Keep the earliest event of every (kind, bucket) pair.

    The result is sorted by occurrence time. Events with equal timestamps keep
    their input order, so the first one that arrived wins.
    """
    # stable sort; SessionEventStore.fetch_events returns ties in _id order
    ordered = sorted(events, key=lambda e: to_epoch_ms(e.occurred_at))
    seen = set()
    canonical: List[CanonicalEvent] = []
    for event in ordered:
        key = bucket_key(event, bucket_ms)
        if key in seen:
            continue
        seen.add(key)
        canonical.append(event)
    return canonical


def summarize_events(events: List[CanonicalEvent]) -> Dict[str, int]:
    counts: Dict[str, int] = {field: 0 for field in COUNTED_KINDS}
    fields_by_kind = {kind: field for field, kind in COUNTED_KINDS.items()}
    for e in events:
        field = fields_by_kind.get(e.kind)
        if field:
            counts[field] += 1
    return counts


def compute_integrity_score(counts: Dict[str, int]) -> int:
    score = 100
    for k, v in counts.items():
        weight = EVENT_WEIGHTS.get(k, 0)
        score -= v * weight
    return max(0, score)


def compute_duration(session: Optional[Session]) -> Union[int, str]:
    """Whole seconds between start and end, or "ongoing" while not ended."""
    if session is None or session.started_at is None or session.ended_at is None:
        return ONGOING
    elapsed_ms = to_epoch_ms(session.ended_at) - to_epoch_ms(session.started_at)
    # half-up rounding, not banker's rounding
    return int(math.floor(elapsed_ms / 1000 + 0.5))


def build_report(session_id: str, session: Optional[Session], events: Iterable[ObservationEvent]) -> ReportResponse:
    canonical = canonicalize(events)
    counts = summarize_events(canonical)
    return ReportResponse(
        candidate_id=session_id,
        candidate_name=session.display_name if session else UNKNOWN_CANDIDATE,
        interview_duration=compute_duration(session),
        total_events=len(canonical),
        integrity_score=compute_integrity_score(counts),
        logs=[
            EventResponse(id=e.id, session_id=e.session_id, kind=e.kind, occurred_at=e.occurred_at)
            for e in canonical
        ],
        **counts,
    )
