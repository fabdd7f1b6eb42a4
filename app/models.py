import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Naive UTC now, the representation MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_epoch_ms(value: datetime) -> int:
    return (as_naive_utc(value) - EPOCH) // timedelta(milliseconds=1)


class EventKind:
    FOCUS_LOST = "focus_lost"
    ABSENCE_DETECTED = "absence_detected"
    MULTIPLE_FACES = "multiple_faces"
    PHONE_DETECTED = "cell phone_detected"
    BOOK_DETECTED = "book_detected"
    LAPTOP_DETECTED = "laptop_detected"

    FACE_KINDS = (FOCUS_LOST, ABSENCE_DETECTED, MULTIPLE_FACES)

    # <object label>_detected, labels as the object detector names them
    _OBJECT_KIND = re.compile(r"^[a-z0-9]+( [a-z0-9]+)*_detected$")

    @classmethod
    def object_detected(cls, label: str) -> str:
        return f"{label.strip().lower()}_detected"

    @classmethod
    def is_valid(cls, kind: str) -> bool:
        return kind in cls.FACE_KINDS or bool(cls._OBJECT_KIND.match(kind))


class Session(BaseModel):
    session_id: str
    display_name: str
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None


class ObservationEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    kind: str
    occurred_at: datetime
    id: Optional[str] = None

    @property
    def occurred_at_ms(self) -> int:
        return to_epoch_ms(self.occurred_at)


# A canonical event is the raw event kept for its (kind, bucket) pair
CanonicalEvent = ObservationEvent
