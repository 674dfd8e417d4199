"""Unit tests for temporary body storage."""
import io
import unittest
from unittest.mock import Mock

from b2client.storage import MemoryStorage, TempFileStorage, is_seekable, read_length


class Unseekable(io.RawIOBase):
    """Readable stream without seek support."""

    def __init__(self, data: bytes):
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def readinto(self, b):
        chunk = self._data.read(len(b))
        b[:len(chunk)] = chunk
        return len(chunk)


class TestStorage(unittest.TestCase):
    """Test cases for TempStorage implementations."""

    def test_memory_storage(self):
        """Test memory storage returns a rewound copy and its length."""
        stored, length = MemoryStorage().store(Unseekable(b"payload"))
        self.assertEqual(length, 7)
        self.assertEqual(stored.read(), b"payload")

    def test_temp_file_storage(self):
        """Test temp file storage returns a rewound copy and its length."""
        stored, length = TempFileStorage().store(Unseekable(b"x" * 1000))
        try:
            self.assertEqual(length, 1000)
            self.assertEqual(stored.read(), b"x" * 1000)
        finally:
            stored.close()

    def test_read_length_closes_source(self):
        """Test read_length consumes and closes the source stream."""
        source = Unseekable(b"data")
        stored, length = read_length(None, source)
        self.assertEqual(length, 4)
        self.assertEqual(stored.read(), b"data")
        self.assertTrue(source.closed)

    def test_read_length_uses_given_storage(self):
        """Test read_length stores through the configured storage."""
        storage = Mock()
        storage.store.return_value = (io.BytesIO(b"ab"), 2)
        source = io.BytesIO(b"ab")

        stored, length = read_length(storage, source)

        storage.store.assert_called_once_with(source)
        self.assertEqual(length, 2)

    def test_is_seekable(self):
        """Test seekability detection."""
        self.assertTrue(is_seekable(io.BytesIO(b"")))
        self.assertFalse(is_seekable(Unseekable(b"")))
        self.assertFalse(is_seekable(object()))

        closed = io.BytesIO(b"")
        closed.close()
        self.assertFalse(is_seekable(closed))


if __name__ == "__main__":
    unittest.main()
