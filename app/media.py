"""
Recording naming, selection and byte-range delivery.

Recordings are named ``<session id>_interview_<epoch millis>.<ext>``. Range
handling covers the single ``bytes=<start>-[<end>]`` form that browsers send
when seeking or resuming a video.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from fastapi.concurrency import run_in_threadpool

from .config import STREAM_CHUNK_SIZE
from .errors import RangeNotSatisfiable, ValidationError

logger = logging.getLogger(__name__)

NAME_SEPARATOR = "_interview_"
_TIMESTAMP_SUFFIX = re.compile(r"_interview_(\d+)\.[A-Za-z0-9]+$")
_RANGE_HEADER = re.compile(r"^bytes=(\d+)-(\d*)$")

MEDIA_TYPES = {
    ".webm": "video/webm",
    ".mp4": "video/mp4",
}


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """Resolve a Range header against a resource of ``size`` bytes.

    Returns None when no range was requested (serve everything).
    """
    if header is None or not header.strip():
        return None
    match = _RANGE_HEADER.match(header.strip())
    if not match:
        raise ValidationError(f"Malformed Range header: {header!r}")
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else size - 1
    if start >= size or end >= size or start > end:
        raise RangeNotSatisfiable(size)
    return ByteRange(start=start, end=end, size=size)


def media_type_for(name: str) -> str:
    return MEDIA_TYPES.get(Path(name).suffix.lower(), "application/octet-stream")


def recording_name(session_id: str, captured_at_ms: int, extension: str) -> str:
    ext = extension if extension.startswith(".") else f".{extension}"
    return f"{session_id}{NAME_SEPARATOR}{captured_at_ms}{ext.lower()}"


def session_id_of(name: str) -> Optional[str]:
    if NAME_SEPARATOR not in name:
        return None
    return name.rsplit(NAME_SEPARATOR, 1)[0]


def captured_at_of(name: str) -> int:
    """Embedded capture timestamp; 0 when missing or unparsable."""
    match = _TIMESTAMP_SUFFIX.search(name)
    return int(match.group(1)) if match else 0


def belongs_to(name: str, session_id: str) -> bool:
    owner = session_id_of(name)
    return owner is not None and owner == session_id


def select_latest(names: Iterable[str], session_id: str) -> Optional[str]:
    candidates = [n for n in names if belongs_to(n, session_id)]
    if not candidates:
        return None
    return max(candidates, key=lambda n: (captured_at_of(n), n))


async def iter_file_range(path: Path, start: int, length: int,
                          chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield ``length`` bytes of ``path`` from ``start`` in chunks.

    The handle belongs to this generator alone and is closed when it finishes,
    fails, or is closed early by a disconnecting client.
    """
    fh = await run_in_threadpool(open, path, "rb")
    try:
        await run_in_threadpool(fh.seek, start)
        remaining = length
        while remaining > 0:
            chunk = await run_in_threadpool(fh.read, min(chunk_size, remaining))
            if not chunk:
                logger.warning("%s shrank while streaming; %d bytes short", path.name, remaining)
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        fh.close()
