"""
Session event store backed by MongoDB.

Sessions are keyed by the externally supplied session id; raw observation
events are append-only and only ever removed together with their session.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING # type: ignore
from pymongo.errors import DuplicateKeyError, PyMongoError # type: ignore

from .errors import ConflictError, NotFoundError, StoreUnavailable
from .models import ObservationEvent, Session, as_naive_utc, utcnow

logger = logging.getLogger(__name__)


@contextmanager
def _guard(action: str) -> Iterator[None]:
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        raise StoreUnavailable(f"Could not {action}: {exc}") from exc


def _session_from_doc(doc: dict) -> Session:
    return Session(
        session_id=str(doc["_id"]),
        display_name=doc["display_name"],
        started_at=doc["started_at"],
        ended_at=doc.get("ended_at"),
    )


def _event_from_doc(doc: dict) -> ObservationEvent:
    return ObservationEvent(
        id=str(doc["_id"]),
        session_id=doc["session_id"],
        kind=doc["kind"],
        occurred_at=doc["occurred_at"],
    )


class SessionEventStore:
    def __init__(self, sessions, events) -> None:
        self.sessions = sessions
        self.events = events

    async def create_session(self, session_id: str, display_name: str,
                             started_at: Optional[datetime] = None) -> Session:
        session = Session(
            session_id=session_id,
            display_name=display_name,
            started_at=as_naive_utc(started_at) if started_at else utcnow(),
        )
        session_doc = {
            "_id": session.session_id,
            "display_name": session.display_name,
            "started_at": session.started_at,
            "ended_at": None,
        }
        with _guard("create session"):
            if await self.sessions.find_one({"_id": session_id}):
                raise ConflictError(f"Session {session_id} already exists")
            try:
                await self.sessions.insert_one(session_doc)
            except DuplicateKeyError as exc:
                raise ConflictError(f"Session {session_id} already exists") from exc
        logger.info("Session %s started for %s", session_id, display_name)
        return session

    async def end_session(self, session_id: str, ended_at: Optional[datetime] = None) -> Session:
        now = as_naive_utc(ended_at) if ended_at else utcnow()
        with _guard("end session"):
            # Only the first end request sets ended_at
            result = await self.sessions.update_one(
                {"_id": session_id, "ended_at": None},
                {"$set": {"ended_at": now}},
            )
            doc = await self.sessions.find_one({"_id": session_id})
        if not doc:
            raise NotFoundError(f"Session {session_id} not found")
        if result.modified_count:
            logger.info("Session %s ended", session_id)
        return _session_from_doc(doc)

    async def get_session(self, session_id: str) -> Optional[Session]:
        with _guard("read session"):
            doc = await self.sessions.find_one({"_id": session_id})
        return _session_from_doc(doc) if doc else None

    async def list_sessions(self) -> List[Session]:
        sessions = []
        with _guard("list sessions"):
            cursor = self.sessions.find().sort("started_at", DESCENDING)
            async for doc in cursor:
                sessions.append(_session_from_doc(doc))
        return sessions

    async def append_event(self, session_id: str, kind: str,
                           occurred_at: Optional[datetime] = None) -> ObservationEvent:
        event_doc = {
            "session_id": session_id,
            "kind": kind,
            "occurred_at": as_naive_utc(occurred_at) if occurred_at else utcnow(),
        }
        with _guard("append event"):
            result = await self.events.insert_one(event_doc)
        event_doc["_id"] = result.inserted_id
        return _event_from_doc(event_doc)

    async def fetch_events(self, session_id: str) -> List[ObservationEvent]:
        events = []
        with _guard("read events"):
            cursor = self.events.find({"session_id": session_id}).sort(
                [("occurred_at", ASCENDING), ("_id", ASCENDING)]
            )
            async for doc in cursor:
                events.append(_event_from_doc(doc))
        return events

    async def purge_session(self, session_id: str) -> Tuple[int, int]:
        """Remove the session record and every event for it.

        Returns (sessions_deleted, events_deleted).
        """
        with _guard("purge session"):
            events_result = await self.events.delete_many({"session_id": session_id})
            session_result = await self.sessions.delete_one({"_id": session_id})
        logger.info(
            "Purged session %s (%d events)", session_id, events_result.deleted_count
        )
        return session_result.deleted_count, events_result.deleted_count
