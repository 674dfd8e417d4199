"""Stream wrappers used for uploads."""
import hashlib
from typing import BinaryIO, Iterator

DEFAULT_CHUNK_SIZE = 64 * 1024


class HashedPostfixedReader:
    """Hashes a stream as it is read and appends the hex digest at the end.

    Draining the reader yields the source bytes followed by
    ``hasher.hexdigest()``. The upload can therefore advertise
    ``length + postfix_length`` bytes and stream a payload of any size while
    B2 checks its SHA-1 (``X-Bz-Content-Sha1: hex_digits_at_end``).

    The reader is single pass and not safe for concurrent readers.
    """

    def __init__(self, source: BinaryIO, hasher=None):
        self.source = source
        self.hasher = hasher if hasher is not None else hashlib.sha1()
        self.finished = False
        self._remainder = b""

    @property
    def postfix_length(self) -> int:
        """Number of trailing bytes added to the stream."""
        return 2 * self.hasher.digest_size

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; ``b""`` only once the digest is delivered."""
        if size is None or size < 0:
            return self._read_all()
        if size == 0:
            return b""

        if self.finished:
            return self._take(size)

        data = self.source.read(size)
        if data:
            self.hasher.update(data)
            return data

        # source exhausted, switch to serving the digest
        self.finished = True
        self._remainder = self.hasher.hexdigest().encode("ascii")
        return self._take(size)

    def _take(self, size: int) -> bytes:
        chunk, self._remainder = self._remainder[:size], self._remainder[size:]
        return chunk

    def _read_all(self) -> bytes:
        chunks = []
        while True:
            chunk = self.read(DEFAULT_CHUNK_SIZE)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(DEFAULT_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    def readable(self) -> bool:
        return True

    def close(self):
        self.source.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SizedBody:
    """Request body of a known length over a readable stream.

    ``requests`` sends readable objects with a ``len`` as a plain
    Content-Length body instead of falling back to chunked encoding.
    """

    def __init__(self, stream, length: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.stream = stream
        self.len = length
        self.chunk_size = chunk_size

    def read(self, size: int = -1) -> bytes:
        return self.stream.read(size)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.stream.read(self.chunk_size)
            if not chunk:
                return
            yield chunk

