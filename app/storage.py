import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence

from .config import RECORDING_EXTENSIONS, RECORDINGS_DIR
from .errors import NotFoundError, ValidationError
from .media import belongs_to, recording_name

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


class LocalStorage:
    """Recordings kept in one flat directory, keyed by file name."""

    backend: str = "local"

    def __init__(self, recordings_dir: Path, extensions: Sequence[str] = RECORDING_EXTENSIONS) -> None:
        self.recordings_dir = recordings_dir
        self.extensions = tuple(e.lower() for e in extensions)
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

    def is_recording(self, name: str) -> bool:
        return not name.startswith(".") and Path(name).suffix.lower() in self.extensions

    def _check_name(self, name: str) -> None:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValidationError(f"Invalid recording name: {name!r}")

    def resolve(self, name: str) -> Path:
        self._check_name(name)
        path = self.recordings_dir / name
        if not self.is_recording(name) or not path.is_file():
            raise NotFoundError(f"Recording {name} not found")
        return path

    def save_recording(self, session_id: str, source: BinaryIO, extension: str,
                       captured_at_ms: Optional[int] = None) -> str:
        """Copy an upload into place under the session naming convention.

        The bytes land in a temporary file first and are renamed once complete,
        so readers never see a partial recording.
        """
        self._check_name(session_id)
        if extension.lower() not in self.extensions:
            raise ValidationError(f"Unsupported recording type: {extension!r}")

        captured_at_ms = captured_at_ms or int(time.time() * 1000)
        fd, tmp_name = tempfile.mkstemp(dir=self.recordings_dir, prefix=".", suffix=PARTIAL_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(source, out)
            name = recording_name(session_id, captured_at_ms, extension)
            # Two uploads in the same millisecond must not overwrite each other
            while (self.recordings_dir / name).exists():
                captured_at_ms += 1
                name = recording_name(session_id, captured_at_ms, extension)
            os.replace(tmp_name, self.recordings_dir / name)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Stored recording %s", name)
        return name

    def list_names(self) -> List[str]:
        # Read the directory on every call so fresh uploads show up at once
        return sorted(
            entry.name
            for entry in os.scandir(self.recordings_dir)
            if entry.is_file() and self.is_recording(entry.name)
        )

    def purge_session(self, session_id: str) -> int:
        deleted = 0
        for name in self.list_names():
            if belongs_to(name, session_id):
                (self.recordings_dir / name).unlink(missing_ok=True)
                deleted += 1
        if deleted:
            logger.info("Deleted %d recordings for session %s", deleted, session_id)
        return deleted


def get_storage(recordings_dir: Path = RECORDINGS_DIR) -> LocalStorage:
    return LocalStorage(recordings_dir=recordings_dir)
