"""Temporary storage for upload bodies of unknown length."""
import io
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional, Tuple

logger = logging.getLogger(__name__)


class TempStorage(ABC):
    """Makes an arbitrary stream replayable and measures its length."""

    @abstractmethod
    def store(self, stream: BinaryIO) -> Tuple[BinaryIO, int]:
        """Copy the stream somewhere it can be re-read.

        Returns:
            A new seekable stream positioned at the start with the same
            contents, and its length in bytes. Closing the returned stream
            releases the storage.
        """
        pass


class MemoryStorage(TempStorage):
    """Buffers the stream into memory."""

    def store(self, stream: BinaryIO) -> Tuple[BinaryIO, int]:
        buf = io.BytesIO()
        shutil.copyfileobj(stream, buf)
        length = buf.tell()
        buf.seek(0)
        return buf, length


class TempFileStorage(TempStorage):
    """Spools the stream to an anonymous file in the OS temp directory."""

    def __init__(self, dir: Optional[str] = None, prefix: str = "b2client-"):
        self.dir = dir
        self.prefix = prefix

    def store(self, stream: BinaryIO) -> Tuple[BinaryIO, int]:
        f = tempfile.TemporaryFile(dir=self.dir, prefix=self.prefix)
        try:
            shutil.copyfileobj(stream, f)
            length = f.tell()
            f.seek(0)
        except BaseException:
            f.close()
            raise
        logger.debug(f"Spooled {length} bytes to temporary storage")
        return f, length


def is_seekable(stream) -> bool:
    seekable = getattr(stream, "seekable", None)
    if seekable is None:
        return False
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False


def read_length(storage: Optional[TempStorage], stream: BinaryIO) -> Tuple[BinaryIO, int]:
    """Store ``stream`` and close it, returning the replayable copy and its length.

    Falls back to MemoryStorage when no storage is configured.
    """
    storage = storage or MemoryStorage()
    stored, length = storage.store(stream)
    stream.close()
    return stored, length
