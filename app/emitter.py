"""
Client-side rate limiting of session events.

Detectors fire on every frame. The emitter forwards an event kind at most once
per cooldown window (10 s for absence, 5 s for everything else) so the event
store sees state changes, not frames.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol

import httpx

from .config import ABSENCE_COOLDOWN_SECONDS, DEFAULT_COOLDOWN_SECONDS
from .models import EventKind, utcnow
from .observations import ObservationChannel, observation_kinds

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def send_event(self, session_id: str, kind: str, occurred_at: datetime): ...


@dataclass
class SessionDebounceState:
    """Per-kind last emission times for one active session."""

    session_id: str
    last_emitted: Dict[str, datetime] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def claim(self, kind: str, now: datetime, cooldown: timedelta) -> bool:
        """Record ``now`` for ``kind`` unless it was emitted within ``cooldown``."""
        with self._lock:
            last = self.last_emitted.get(kind)
            if last is not None and now - last < cooldown:
                return False
            self.last_emitted[kind] = now
            return True


class DebouncedEmitter:
    def __init__(self, sink: EventSink, cooldowns: Optional[Dict[str, float]] = None,
                 default_cooldown: float = DEFAULT_COOLDOWN_SECONDS) -> None:
        self.sink = sink
        self.default_cooldown = timedelta(seconds=default_cooldown)
        self.cooldowns = {
            EventKind.ABSENCE_DETECTED: timedelta(seconds=ABSENCE_COOLDOWN_SECONDS),
        }
        for kind, seconds in (cooldowns or {}).items():
            self.cooldowns[kind] = timedelta(seconds=seconds)

    def cooldown(self, kind: str) -> timedelta:
        return self.cooldowns.get(kind, self.default_cooldown)

    async def emit(self, state: SessionDebounceState, kind: str, now: Optional[datetime] = None) -> bool:
        """Forward ``kind`` unless it is still cooling down. Returns True if forwarded.

        A failed forward is logged and dropped; the cooldown still applies.
        """
        now = now or utcnow()
        if not state.claim(kind, now, self.cooldown(kind)):
            return False
        try:
            await self.sink.send_event(state.session_id, kind, now)
            logger.debug("Event sent: %s for %s", kind, state.session_id)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Dropped %s for %s: %s", kind, state.session_id, exc)
        return True


class SessionMonitor:
    """Owns one monitored session: its channel, debounce state and consumer."""

    def __init__(self, client, session_id: str, name: str,
                 channel: Optional[ObservationChannel] = None,
                 emitter: Optional[DebouncedEmitter] = None) -> None:
        self.client = client
        self.session_id = session_id
        self.name = name
        self.channel = channel or ObservationChannel()
        self.emitter = emitter or DebouncedEmitter(client)
        self.state: Optional[SessionDebounceState] = None
        self.forwarded = 0
        self._consumer: Optional[asyncio.Task] = None

    async def start(self) -> None:
        try:
            await self.client.start_session(self.session_id, self.name)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error starting session %s: %s", self.session_id, exc)
        self.state = SessionDebounceState(session_id=self.session_id)
        self._consumer = asyncio.create_task(self._consume(self.state))
        logger.info("Monitoring session %s", self.session_id)

    async def _consume(self, state: SessionDebounceState) -> None:
        try:
            async for observation in self.channel:
                for kind in observation_kinds(observation):
                    if await self.emitter.emit(state, kind, observation.observed_at):
                        self.forwarded += 1
        except BaseException:
            # nobody drains the channel any more; release blocked publishers
            self.channel.abandon()
            raise

    async def stop(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            await self.channel.close()
        else:
            self.channel.abandon()
        if consumer is not None:
            try:
                await consumer
            except Exception:
                logger.exception("Observation consumer for %s failed", self.session_id)
        self.state = None
        try:
            await self.client.end_session(self.session_id)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error ending session %s: %s", self.session_id, exc)
        logger.info("Stopped monitoring session %s (%d events sent)", self.session_id, self.forwarded)
