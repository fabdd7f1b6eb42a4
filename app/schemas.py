from pydantic import BaseModel, ConfigDict # type: ignore
from pydantic.alias_generators import to_camel # type: ignore
from typing import Literal, Optional, List, Union
from datetime import datetime


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(CamelModel):
    session_id: str
    name: str

class EndSessionRequest(CamelModel):
    session_id: str

class SessionResponse(CamelModel):
    session_id: str
    name: str
    started_at: datetime
    ended_at: Optional[datetime] = None

class LogEventRequest(CamelModel):
    session_id: str
    kind: str
    occurred_at: Optional[datetime] = None

class EventResponse(CamelModel):
    id: Optional[str] = None
    session_id: str
    kind: str
    occurred_at: datetime

class SessionWithEventsResponse(SessionResponse):
    events: List[EventResponse]

class PurgeResponse(CamelModel):
    session_id: str
    sessions_deleted: int
    events_deleted: int
    recordings_deleted: int

class ReportResponse(CamelModel):
    candidate_id: str
    candidate_name: str
    interview_duration: Union[int, Literal["ongoing"]]
    total_events: int
    focus_lost: int
    absence: int
    multiple_faces: int
    phone_detected: int
    book_detected: int
    laptop_detected: int
    integrity_score: int
    logs: List[EventResponse]

class RecordingResponse(CamelModel):
    filename: str
    url: str
    session_id: Optional[str] = None
    captured_at_ms: int = 0

class RecordingListResponse(CamelModel):
    recordings: List[RecordingResponse]
    latest: Optional[RecordingResponse] = None
