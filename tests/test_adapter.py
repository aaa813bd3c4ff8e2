"""test_adapter.py

Unit tests for the stream binding handed to the codec engine.
"""

import io
import unittest

from chunkzip.adapter import NullSink, StreamBinding
from chunkzip.orchestrator import Job


class TrickleReader:
    """Source without readinto that hands out at most 3 bytes per read."""

    def __init__(self, data: bytes) -> None:
        self.data = data

    def read(self, size: int) -> bytes:
        chunk, self.data = self.data[:min(size, 3)], self.data[min(size, 3):]
        return chunk


class TestStreamBinding(unittest.TestCase):

    def test_pull_counts_bytes(self) -> None:
        """Test that pulls fill the buffer and count consumed bytes."""
        job = Job("input")
        binding = StreamBinding(io.BytesIO(b"abcdef"), io.BytesIO(), job)
        buffer = bytearray(4)
        self.assertEqual(binding.pull(memoryview(buffer)), 4)
        self.assertEqual(bytes(buffer), b"abcd")
        self.assertEqual(binding.pull(memoryview(buffer)), 2)
        self.assertEqual(binding.pull(memoryview(buffer)), 0)
        self.assertEqual(job.bytes_in, 6)

    def test_short_pulls(self) -> None:
        """
        Test that a source without readinto works and that short reads
        are passed on as they are.
        """
        job = Job("input")
        binding = StreamBinding(TrickleReader(b"hello"), io.BytesIO(), job)
        buffer = bytearray(8)
        self.assertEqual(binding.pull(memoryview(buffer)), 3)
        self.assertEqual(bytes(buffer[:3]), b"hel")
        self.assertEqual(binding.pull(memoryview(buffer)), 2)
        self.assertEqual(binding.pull(memoryview(buffer)), 0)
        self.assertEqual(job.bytes_in, 5)

    def test_push_counts_bytes(self) -> None:
        """Test that pushes reach the sink and count produced bytes."""
        job = Job("input")
        sink = io.BytesIO()
        binding = StreamBinding(io.BytesIO(), sink, job)
        self.assertEqual(binding.push(b"xyz"), 3)
        self.assertEqual(binding.push(b""), 0)
        self.assertEqual(sink.getvalue(), b"xyz")
        self.assertEqual(job.bytes_out, 3)


class TestNullSink(unittest.TestCase):

    def test_discards(self) -> None:
        sink = NullSink()
        self.assertEqual(sink.write(b"12345"), 5)
        self.assertEqual(sink.write(memoryview(b"ab")), 2)
        self.assertFalse(sink.isatty())


if __name__ == "__main__":
    unittest.main()
