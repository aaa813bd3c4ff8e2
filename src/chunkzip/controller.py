"""controller.py

Drive the orchestrator over standard input or the named files, repeat
the run for benchmarking and report timings.
"""

import os
import sys
import time
from typing import Optional, Sequence

import click

from . import echo_error, echo_warning
from .adapter import NullSink
from .naming import confirm_overwrite
from .options import RunOptions, RunStatus
from .orchestrator import (STDIN_TOKEN, Context, FatalError, Orchestrator,
                           SharedSink, stdin_stream, stdout_stream)

STATS_HEADER = "Level;Threads;InSize;OutSize;Frames;Real;User;Sys;MaxMem"


def format_seconds(seconds: float) -> str:
    whole = int(seconds)
    millis = int((seconds - whole) * 1000)
    return f"{whole}.{millis:03d}"


def peak_memory() -> int:
    """Peak resident set size as getrusage reports it, 0 where unknown."""
    if sys.platform == "win32":
        return 0
    import resource  # pylint: disable=import-outside-toplevel
    return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss


class RunStatistics:
    """
    CSV timing line on stderr: the codec figures of the first job, then
    wall, user and system time plus peak memory once the run is over.
    """

    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled
        self.recorded = False
        self.started = time.perf_counter()

    def record(self, level: int, threads: int, context: Context) -> None:
        if not self.enabled or self.recorded:
            return
        click.echo(
            f"{level};{threads};{context.bytes_in};{context.bytes_out};"
            f"{context.frames}",
            nl=False,
            err=True,
        )
        self.recorded = True

    def finish(self) -> None:
        if not self.enabled:
            return
        wall = time.perf_counter() - self.started
        times = os.times()
        click.echo(
            f";{format_seconds(wall)};{format_seconds(times.user)};"
            f"{format_seconds(times.system)};{peak_memory()}",
            err=True,
        )


class DestinationDeclined(Exception):
    pass


def open_destination(options: RunOptions, reading_stdin: bool
                     ) -> Optional[SharedSink]:
    """
    Return the destination shared by all jobs of the run, or None when
    every job derives its own output file.
    """
    if options.mode.discards_output:
        return SharedSink(NullSink(), "discard")

    if options.output is not None:
        if not confirm_overwrite(options.output, options.force):
            raise DestinationDeclined(f"{options.output} not overwritten")
        try:
            stream = options.output.open("wb")
        except OSError as exc:
            raise FatalError(
                f"opening {options.output} failed: {exc.strerror or exc}"
            ) from exc
        return SharedSink(stream, str(options.output), options.output)

    if options.stdout or reading_stdin:
        return SharedSink(stdout_stream(), "stdout")
    return None


def check_inputs(options: RunOptions, files: Sequence[str]) -> None:
    reads_stdin = not files or STDIN_TOKEN in files
    if reads_stdin and options.iterations > 1:
        raise click.UsageError(
            "standard input can't be read for more than one iteration",
            ctx=click.get_current_context(silent=True),
        )
    if reads_stdin and options.mode.decompresses and not options.force \
            and stdin_stream().isatty():
        raise click.UsageError(
            "compressed data not read from a terminal (use -f to force)",
            ctx=click.get_current_context(silent=True),
        )


def run(options: RunOptions, files: Sequence[str]) -> RunStatus:
    check_inputs(options, files)
    reading_stdin = not files
    names = list(files) if files else [STDIN_TOKEN]

    statistics = RunStatistics(options.timings)
    try:
        destination = open_destination(options, reading_stdin)
    except DestinationDeclined as exc:
        if options.verbosity >= 1:
            echo_warning(str(exc))
        return RunStatus.WARNING

    orchestrator = Orchestrator(options, destination, statistics)
    try:
        for _ in range(options.iterations):
            orchestrator.start_iteration()
            for name in names:
                orchestrator.treat(name)
    finally:
        status = close_destination(destination)

    statistics.finish()
    return orchestrator.status.escalate(status)


def close_destination(destination: Optional[SharedSink]) -> RunStatus:
    if destination is None:
        return RunStatus.OK
    try:
        if destination.path is not None:
            destination.stream.close()
        else:
            destination.stream.flush()
    except OSError as exc:
        echo_error(f"{destination.label}: {exc.strerror or exc}")
        return RunStatus.ERROR
    return RunStatus.OK
