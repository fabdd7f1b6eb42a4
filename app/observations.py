"""
Typed detector observations and the bounded channel that carries them.

Detectors publish at frame rate; the session monitor consumes in arrival
order. A full channel makes publishers wait, and closing it ends the consumer.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from .config import OBJECT_CONFIDENCE_THRESHOLD, OBSERVATION_QUEUE_SIZE
from .models import EventKind, utcnow

SUSPICIOUS_OBJECTS = ("cell phone", "book", "laptop")


@dataclass(frozen=True)
class FaceObservation:
    face_count: int
    observed_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ObjectObservation:
    label: str
    confidence: float
    observed_at: datetime = field(default_factory=utcnow)


Observation = Union[FaceObservation, ObjectObservation]


def observation_kinds(observation: Observation,
                      confidence_threshold: float = OBJECT_CONFIDENCE_THRESHOLD) -> List[str]:
    """Event kinds raised by one observation (possibly none)."""
    if isinstance(observation, FaceObservation):
        if observation.face_count <= 0:
            return [EventKind.FOCUS_LOST, EventKind.ABSENCE_DETECTED]
        if observation.face_count > 1:
            return [EventKind.MULTIPLE_FACES]
        return []
    label = observation.label.strip().lower()
    if label in SUSPICIOUS_OBJECTS and observation.confidence > confidence_threshold:
        return [EventKind.object_detected(label)]
    return []


class ChannelClosed(Exception):
    pass


_CLOSED = object()


class ObservationChannel:
    def __init__(self, maxsize: int = OBSERVATION_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._abandoned = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, observation: Observation) -> None:
        if self._closed:
            raise ChannelClosed("observation channel is closed")
        await self._queue.put(observation)
        if self._abandoned:
            self._drain()
            raise ChannelClosed("observation channel was abandoned")

    async def receive(self) -> Optional[Observation]:
        """Next observation, or None once the channel is closed and drained."""
        if self._abandoned:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            # leave the marker for any other consumer
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)
        if self._abandoned:
            self._drain()

    def abandon(self) -> None:
        """Close without a consumer: pending observations are discarded.

        Each discarded item wakes one blocked publisher, which then drains
        whatever it put and fails with ChannelClosed.
        """
        self._closed = True
        self._abandoned = True
        self._drain()

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Observation:
        item = await self.receive()
        if item is None:
            raise StopAsyncIteration
        return item
