"""orchestrator.py

Treatment of a single input: validate it, decide where its output goes,
drive the codec engine over it and clean up whatever the outcome.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from stat import S_ISDIR, S_ISREG
from typing import BinaryIO, Optional, Union

import click

from . import echo_error, echo_info, echo_warning
from .adapter import StreamBinding
from .engine import (CompressionContext, ContextError, DecompressionContext,
                     create_compressor, create_decompressor, describe,
                     is_failure)
from .naming import (compressed_name, confirm_overwrite, decompressed_name,
                     has_suffix, space_saving)
from .options import Mode, RunOptions, RunStatus

STDIN_TOKEN = "-"

LIST_HEADER = f"{'compressed':>20} {'uncompressed':>20} {'ratio':>7} " \
              "uncompressed_name"

Context = Union[CompressionContext, DecompressionContext]


class Outcome(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def status(self) -> RunStatus:
        return _STATUSES[self]


_STATUSES = {
    Outcome.OK: RunStatus.OK,
    Outcome.SKIPPED: RunStatus.WARNING,
    Outcome.ERROR: RunStatus.ERROR,
}


class FatalError(Exception):
    """Condition under which no further job could succeed."""


class JobFailed(Exception):
    pass


class JobSkipped(Exception):
    pass


@dataclass
class Job:
    name: str
    source: Optional[Path] = None
    destination: Optional[Path] = None
    bytes_in: int = 0
    bytes_out: int = 0

    @property
    def reads_stdin(self) -> bool:
        return self.name == STDIN_TOKEN


class SharedSink:
    """
    Destination used by every job of a run: standard output, the -o
    file or the discard sink of list and test modes. Jobs never close or
    delete it.
    """

    def __init__(self, stream: BinaryIO, label: str,
                 path: Optional[Path] = None) -> None:
        self.stream = stream
        self.label = label
        self.path = path

    def isatty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def rewind(self) -> None:
        if self.path is not None and self.stream.seekable():
            self.stream.seek(0)
            self.stream.truncate()


class _Streams:
    """Handles opened for one job."""

    def __init__(self) -> None:
        self.source: Optional[BinaryIO] = None
        self.sink: Optional[BinaryIO] = None
        self.owns_source = False
        self.owns_sink = False

    def close(self) -> Optional[str]:
        """Close the owned streams, returning the first failure."""
        failure = None
        for stream, owned in ((self.source, self.owns_source),
                              (self.sink, self.owns_sink)):
            if stream is None:
                continue
            try:
                if owned:
                    stream.close()
                else:
                    stream.flush()
            except OSError as exc:
                failure = failure or exc.strerror or str(exc)
        self.source = self.sink = None
        return failure


def stdin_stream() -> BinaryIO:
    return sys.stdin.buffer


def stdout_stream() -> BinaryIO:
    return sys.stdout.buffer


class Orchestrator:
    def __init__(self, options: RunOptions,
                 destination: Optional[SharedSink] = None,
                 statistics=None) -> None:
        self.options = options
        self.destination = destination
        self.statistics = statistics
        self.status = RunStatus.OK

    def start_iteration(self) -> None:
        if self.destination is not None:
            self.destination.rewind()
        if self.options.mode is Mode.LIST:
            click.echo(LIST_HEADER)

    def treat(self, name: str) -> Outcome:
        job = Job(name)
        streams = _Streams()
        outcome = Outcome.ERROR
        try:
            outcome = self._process(job, streams)
        finally:
            failure = streams.close()
            if failure is not None and outcome is Outcome.OK:
                outcome = self._fail(job, f"close failed: {failure}")
            self._cleanup(job, outcome)

        if outcome is Outcome.OK:
            self._report(job)
        self.status = self.status.escalate(outcome.status)
        return outcome

    def _process(self, job: Job, streams: _Streams) -> Outcome:
        try:
            source = self._open_source(job, streams)
            sink = self._open_destination(job, streams)
            self._run_codec(job, source, sink)
        except JobSkipped as exc:
            if self.options.verbosity >= 1:
                echo_warning(f"{job.name}: {exc}")
            return Outcome.SKIPPED
        except JobFailed as exc:
            return self._fail(job, str(exc))
        return Outcome.OK

    def _fail(self, job: Job, message: str) -> Outcome:
        echo_error(f"{job.name}: {message}")
        return Outcome.ERROR

    def _open_source(self, job: Job, streams: _Streams) -> BinaryIO:
        if job.reads_stdin:
            stdin = stdin_stream()
            streams.source = stdin
            return stdin

        path = Path(job.name)
        try:
            mode = path.stat().st_mode
        except FileNotFoundError:
            raise JobFailed("No such file or directory") from None
        except OSError as exc:
            raise JobFailed(exc.strerror or str(exc)) from None
        if S_ISDIR(mode):
            raise JobFailed("is a directory")
        if not S_ISREG(mode):
            raise JobFailed("not a regular file")
        try:
            source = path.open("rb")
        except OSError as exc:
            raise JobFailed(exc.strerror or str(exc)) from None
        streams.source = source
        streams.owns_source = True
        job.source = path
        return source

    def _open_destination(self, job: Job, streams: _Streams) -> BinaryIO:
        destination = self.destination
        if destination is None and job.reads_stdin:
            destination = SharedSink(stdout_stream(), "stdout")

        if destination is not None:
            if self.options.mode is Mode.COMPRESS and destination.isatty() \
                    and not self.options.force:
                raise JobFailed(
                    "compressed data not written to a terminal "
                    "(use -f to force)"
                )
            streams.sink = destination.stream
            return destination.stream

        suffix = self.options.suffix
        if self.options.mode is Mode.COMPRESS:
            if has_suffix(job.name, suffix) and not self.options.force:
                raise JobSkipped(f"already has {suffix} suffix -- unchanged")
            target = Path(compressed_name(job.name, suffix))
        else:
            target = Path(decompressed_name(job.name, suffix))

        if not confirm_overwrite(target, self.options.force):
            raise JobSkipped(f"{target} not overwritten")
        try:
            sink = target.open("wb")
        except OSError as exc:
            raise JobFailed(f"{target}: {exc.strerror or exc}") from None
        streams.sink = sink
        streams.owns_sink = True
        job.destination = target
        return sink

    def _create_context(self) -> Context:
        options = self.options
        try:
            if options.mode is Mode.COMPRESS:
                return create_compressor(options.threads, options.level,
                                         options.chunk_size)
            return create_decompressor(options.threads, options.chunk_size)
        except ContextError as exc:
            raise FatalError(f"allocating context failed: {exc}") from exc

    def _run_codec(self, job: Job, source: BinaryIO, sink: BinaryIO) -> None:
        binding = StreamBinding(source, sink, job)
        with self._create_context() as context:
            code = context.run(binding)
            if is_failure(code):
                raise JobFailed(describe(code))
            if self.statistics is not None:
                level = self.options.level \
                    if self.options.mode is Mode.COMPRESS else 0
                self.statistics.record(level, self.options.threads, context)

    def _cleanup(self, job: Job, outcome: Outcome) -> None:
        if outcome is Outcome.ERROR and job.destination is not None:
            job.destination.unlink(missing_ok=True)
        elif outcome is Outcome.OK and job.source is not None \
                and self._removes_source(job):
            try:
                job.source.unlink()
            except OSError as exc:
                echo_warning(f"{job.name}: could not remove input: "
                             f"{exc.strerror or exc}")

    def _removes_source(self, job: Job) -> bool:
        # Output that went to a shared destination leaves the input alone
        return not self.options.keep and job.source is not None \
            and job.destination is not None

    def _report(self, job: Job) -> None:
        mode = self.options.mode
        if mode is Mode.LIST:
            name = decompressed_name(job.name, self.options.suffix) \
                if not job.reads_stdin else job.name
            ratio = space_saving(job.bytes_in, job.bytes_out)
            click.echo(f"{job.bytes_in:20d} {job.bytes_out:20d} "
                       f"{ratio:6.2f}% {name}")
        elif self.options.verbosity < 2:
            return
        elif mode is Mode.TEST:
            echo_info(f"{job.name}: OK")
        else:
            if mode is Mode.COMPRESS:
                ratio = space_saving(job.bytes_out, job.bytes_in)
            else:
                ratio = space_saving(job.bytes_in, job.bytes_out)
            if job.destination is None:
                action = "written to " + (self.destination.label
                                          if self.destination else "stdout")
            elif self._removes_source(job):
                action = f"replaced with {job.destination}"
            else:
                action = f"created {job.destination}"
            echo_info(f"{job.name}:\t{ratio:5.1f}% -- {action}")
