"""options.py

Run modes, per-invocation configuration and the aggregated run status.
"""

import os
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, Optional

import click

from .engine import MAX_CHUNK_SIZE
from .naming import DEFAULT_SUFFIX, validate_suffix

LEVEL_MIN = 1
LEVEL_MAX = 22
LEVEL_DEFAULT = 3

THREAD_MAX = 128

MAX_ITERATIONS = 1000

MIB = 1024 * 1024
CHUNK_MIB_MAX = MAX_CHUNK_SIZE // MIB


class Mode(Enum):
    COMPRESS = "compress"
    DECOMPRESS = "decompress"
    LIST = "list"
    TEST = "test"

    @property
    def decompresses(self) -> bool:
        return self is not Mode.COMPRESS

    @property
    def discards_output(self) -> bool:
        """List and test modes decode into a sink that keeps nothing."""
        return self in (Mode.LIST, Mode.TEST)


class RunStatus(IntEnum):
    """
    Worst outcome seen so far. The integer value is the process exit
    code; severity is ordered separately since WARNING exits with 2.
    """
    OK = 0
    ERROR = 1
    WARNING = 2

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def escalate(self, other: "RunStatus") -> "RunStatus":
        return other if other.severity > self.severity else self


_SEVERITY = {RunStatus.OK: 0, RunStatus.WARNING: 1, RunStatus.ERROR: 2}


@dataclass(frozen=True)
class Invocation:
    """Defaults implied by the name the program was started under."""
    name: str
    mode: Mode = Mode.COMPRESS
    stdout: bool = False
    force: bool = False


INVOCATIONS: Dict[str, Invocation] = {
    "chunkzip": Invocation("chunkzip"),
    "chunkunzip": Invocation("chunkunzip", mode=Mode.DECOMPRESS),
    "chunkcat": Invocation("chunkcat", mode=Mode.DECOMPRESS,
                           stdout=True, force=True),
}
DEFAULT_INVOCATION = INVOCATIONS["chunkzip"]


def resolve_invocation(program: str) -> Invocation:
    name = Path(program).name
    for extension in (".exe", ".py"):
        if name.endswith(extension):
            name = name[:-len(extension)]
    return INVOCATIONS.get(name, DEFAULT_INVOCATION)


@dataclass(frozen=True)
class RunOptions:
    mode: Mode = Mode.COMPRESS
    level: int = LEVEL_DEFAULT
    threads: int = 1
    chunk_size: int = 0
    suffix: str = DEFAULT_SUFFIX
    force: bool = False
    keep: bool = False
    verbosity: int = 1
    iterations: int = 1
    stdout: bool = False
    timings: bool = False
    output: Optional[Path] = field(default=None)


def clamp(value: int, lowest: int, highest: int) -> int:
    return max(lowest, min(highest, value))


def default_threads() -> int:
    return clamp(os.cpu_count() or 1, 1, THREAD_MAX)


def resolve_options(invocation: Invocation,
                    mode: Optional[Mode] = None,
                    level: Optional[int] = None,
                    threads: Optional[int] = None,
                    chunk_mib: int = 0,
                    suffix: str = DEFAULT_SUFFIX,
                    force: bool = False,
                    keep: bool = False,
                    verbose: int = 0,
                    quiet: bool = False,
                    iterations: int = 1,
                    stdout: bool = False,
                    timings: bool = False,
                    output: Optional[Path] = None,
                    ) -> RunOptions:
    """
    Merge command line values over the invocation defaults and clamp
    numeric values into their supported ranges.
    """
    try:
        validate_suffix(suffix)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="'-S'") from None

    if threads is None or threads < 1:
        threads = default_threads()

    return RunOptions(
        mode=mode or invocation.mode,
        level=clamp(LEVEL_DEFAULT if level is None else level,
                    LEVEL_MIN, LEVEL_MAX),
        threads=clamp(threads, 1, THREAD_MAX),
        chunk_size=clamp(chunk_mib, 0, CHUNK_MIB_MAX) * MIB,
        suffix=suffix,
        force=force or invocation.force,
        keep=keep,
        verbosity=0 if quiet else 1 + verbose,
        iterations=clamp(iterations, 1, MAX_ITERATIONS),
        stdout=stdout or invocation.stdout,
        timings=timings,
        output=output,
    )
