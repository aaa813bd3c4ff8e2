"""adapter.py

Pull/push callbacks the codec engine uses to consume input and produce
output without knowing what the streams are.
"""

import io
from typing import TYPE_CHECKING, BinaryIO, Protocol

if TYPE_CHECKING:
    from .orchestrator import Job


class IOBinding(Protocol):
    def pull(self, buffer: memoryview) -> int:
        """
        Fill `buffer` with as many bytes as are available and return the
        count. 0 means end of input.
        """
        ...

    def push(self, buffer: bytes) -> int:
        """
        Write all of `buffer` and return the count actually written. A
        count below len(buffer) is a failed write.
        """
        ...


class NullSink(io.RawIOBase):
    """Write-only stream that discards everything written to it."""

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:  # type: ignore[override]
        return memoryview(data).nbytes


class StreamBinding:
    """
    Binding over a source and a sink stream, owned by a single `Job`.
    Both callbacks add to the job's byte counters.
    """

    def __init__(self, source: BinaryIO, sink: BinaryIO, job: "Job") -> None:
        self.source = source
        self.sink = sink
        self.job = job

    def pull(self, buffer: memoryview) -> int:
        readinto = getattr(self.source, "readinto", None)
        if readinto is not None:
            filled = readinto(buffer) or 0
        else:
            data = self.source.read(len(buffer))
            filled = len(data)
            buffer[:filled] = data
        self.job.bytes_in += filled
        return filled

    def push(self, buffer: bytes) -> int:
        written = self.sink.write(buffer)
        # Raw streams may report None when nothing could be written
        written = written or 0
        self.job.bytes_out += written
        return written
