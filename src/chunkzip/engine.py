"""engine.py

Multithreaded chunk compression engine.

Input is cut into fixed size chunks and every chunk becomes an independent
zstd frame, so chunks can be (de)compressed in parallel. Each frame is
preceded by a zstd skippable frame holding the compressed length of the
frame that follows:

    u32 magic (0x184D2A50)  u32 length (4)  u32 compressed_size

Regular zstd tools skip those headers, so the output stays readable by
them. The engine only sees the input and output through an `IOBinding`.
"""

import struct
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import IntEnum
from typing import List, Optional, Tuple

import zstandard as zstd

from .adapter import IOBinding

SKIPPABLE_MAGIC = 0x184D2A50
FRAME_HEADER = struct.Struct("<III")  # magic, header payload length, size

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024
MAX_CHUNK_SIZE = 256 * 1024 * 1024


def compress_bound(size: int) -> int:
    """Largest zstd frame a chunk of `size` bytes can compress into."""
    small = 128 * 1024
    margin = (small - size) >> 11 if size < small else 0
    return size + (size >> 8) + margin


# Headers announcing more than this can't come from a chunkzip stream
MAX_FRAME_SIZE = compress_bound(MAX_CHUNK_SIZE)

# Per-thread zstd objects; they are not safe to share between threads
_TLS = threading.local()


class ResultCode(IntEnum):
    OK = 0
    READ_FAILED = 1
    WRITE_FAILED = 2
    BAD_FORMAT = 3
    TRUNCATED = 4
    CODEC_FAILED = 5
    NO_MEMORY = 6


_DESCRIPTIONS = {
    ResultCode.OK: "success",
    ResultCode.READ_FAILED: "error while reading input",
    ResultCode.WRITE_FAILED: "error while writing output",
    ResultCode.BAD_FORMAT: "not in chunkzip format",
    ResultCode.TRUNCATED: "unexpected end of file",
    ResultCode.CODEC_FAILED: "corrupt input or codec failure",
    ResultCode.NO_MEMORY: "not enough memory",
}


def is_failure(code: ResultCode) -> bool:
    return code != ResultCode.OK


def describe(code: ResultCode) -> str:
    return _DESCRIPTIONS.get(code, f"unknown error {int(code)}")


class ContextError(Exception):
    pass


class _Failure(Exception):
    def __init__(self, code: ResultCode) -> None:
        super().__init__(describe(code))
        self.code = code


def _get_compressor(level: int) -> zstd.ZstdCompressor:
    cache = getattr(_TLS, "compressors", None)
    if cache is None:
        cache = {}
        _TLS.compressors = cache
    compressor = cache.get(level)
    if compressor is None:
        compressor = zstd.ZstdCompressor(level=level, write_content_size=True)
        cache[level] = compressor
    return compressor


def _get_decompressor() -> zstd.ZstdDecompressor:
    decompressor = getattr(_TLS, "decompressor", None)
    if decompressor is None:
        decompressor = zstd.ZstdDecompressor()
        _TLS.decompressor = decompressor
    return decompressor


class _Context:
    """State shared by compression and decompression contexts."""

    def __init__(self, threads: int, chunk_size: int) -> None:
        if threads < 1:
            raise ContextError(f"invalid thread count {threads}")
        if chunk_size > MAX_CHUNK_SIZE:
            raise ContextError(f"chunk size {chunk_size} exceeds "
                               f"{MAX_CHUNK_SIZE}")
        self.threads = threads
        self.chunk_size = chunk_size if chunk_size > 0 else DEFAULT_CHUNK_SIZE
        self.bytes_in = 0
        self.bytes_out = 0
        self.frames = 0
        try:
            self._pool: Optional[ThreadPoolExecutor] = \
                ThreadPoolExecutor(max_workers=threads)
        except (RuntimeError, MemoryError) as exc:
            raise ContextError(f"unable to start workers: {exc}") from exc

    def __enter__(self) -> "_Context":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def run(self, binding: IOBinding) -> ResultCode:
        if self._pool is None:
            raise ContextError("context already closed")
        try:
            self._run(binding, self._pool)
        except _Failure as failure:
            return failure.code
        except MemoryError:
            return ResultCode.NO_MEMORY
        return ResultCode.OK

    def _run(self, binding: IOBinding, pool: ThreadPoolExecutor) -> None:
        raise NotImplementedError

    def _read(self, binding: IOBinding, size: int) -> bytes:
        """
        Pull until `size` bytes arrived or the input ended. Shorter
        results only happen at the end of input.
        """
        buffer = bytearray(size)
        filled = 0
        try:
            with memoryview(buffer) as view:
                while filled < size:
                    count = binding.pull(view[filled:])
                    if count == 0:
                        break
                    filled += count
        except OSError:
            raise _Failure(ResultCode.READ_FAILED) from None
        return bytes(buffer[:filled])

    def _write(self, binding: IOBinding, data: bytes) -> None:
        try:
            written = binding.push(data)
        except OSError:
            raise _Failure(ResultCode.WRITE_FAILED) from None
        if written != len(data):
            raise _Failure(ResultCode.WRITE_FAILED)
        self.bytes_out += written


class CompressionContext(_Context):
    def __init__(self, threads: int, level: int, chunk_size: int) -> None:
        self.level = level
        try:
            # Build one up front so bad parameters fail at creation
            _get_compressor(level)
        except (zstd.ZstdError, ValueError) as exc:
            raise ContextError(f"invalid compression level {level}: {exc}"
                               ) from exc
        super().__init__(threads, chunk_size)

    def _run(self, binding: IOBinding, pool: ThreadPoolExecutor) -> None:
        while True:
            chunks, finished = self._read_batch(binding)
            # Empty input still gets one (empty) frame
            if not chunks and self.frames > 0:
                break
            for frame in pool.map(self._compress_chunk, chunks or [b""]):
                header = FRAME_HEADER.pack(SKIPPABLE_MAGIC, 4, len(frame))
                self._write(binding, header + frame)
                self.frames += 1
            if finished:
                break

    def _read_batch(self, binding: IOBinding) -> Tuple[List[bytes], bool]:
        chunks: List[bytes] = []
        while len(chunks) < self.threads:
            chunk = self._read(binding, self.chunk_size)
            if chunk:
                chunks.append(chunk)
                self.bytes_in += len(chunk)
            if len(chunk) < self.chunk_size:
                return (chunks, True)
        return (chunks, False)

    def _compress_chunk(self, chunk: bytes) -> bytes:
        try:
            return _get_compressor(self.level).compress(chunk)
        except zstd.ZstdError:
            raise _Failure(ResultCode.CODEC_FAILED) from None


class DecompressionContext(_Context):
    def _run(self, binding: IOBinding, pool: ThreadPoolExecutor) -> None:
        while True:
            frames, finished = self._read_batch(binding)
            for data in pool.map(self._decompress_frame, frames):
                self._write(binding, data)
                self.frames += 1
            if finished:
                break

    def _read_batch(self, binding: IOBinding) -> Tuple[List[bytes], bool]:
        frames: List[bytes] = []
        while len(frames) < self.threads:
            header = self._read(binding, FRAME_HEADER.size)
            if not header:
                return (frames, True)
            if len(header) < FRAME_HEADER.size:
                raise _Failure(ResultCode.TRUNCATED)
            magic, length, size = FRAME_HEADER.unpack(header)
            if magic != SKIPPABLE_MAGIC or length != 4:
                raise _Failure(ResultCode.BAD_FORMAT)
            if size > MAX_FRAME_SIZE:
                raise _Failure(ResultCode.BAD_FORMAT)
            frame = self._read(binding, size)
            if len(frame) < size:
                raise _Failure(ResultCode.TRUNCATED)
            self.bytes_in += len(header) + size
            frames.append(frame)
        return (frames, False)

    @staticmethod
    def _decompress_frame(frame: bytes) -> bytes:
        try:
            decoder = _get_decompressor().decompressobj()
            data = decoder.decompress(frame)
        except zstd.ZstdError:
            raise _Failure(ResultCode.CODEC_FAILED) from None
        if not decoder.eof:
            raise _Failure(ResultCode.TRUNCATED)
        return data


def create_compressor(threads: int, level: int, chunk_size: int
                      ) -> CompressionContext:
    return CompressionContext(threads, level, chunk_size)


def create_decompressor(threads: int, chunk_size: int
                        ) -> DecompressionContext:
    return DecompressionContext(threads, chunk_size)
