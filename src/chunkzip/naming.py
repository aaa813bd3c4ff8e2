"""naming.py

Output name derivation and the overwrite policy.
"""

import os
import sys
from pathlib import Path

import click

DEFAULT_SUFFIX = ".zst"

# Appended to inputs that lack the suffix when decompressing
FALLBACK_EXTENSION = ".out"


def has_suffix(name: str, suffix: str) -> bool:
    return len(name) > len(suffix) and name.endswith(suffix)


def compressed_name(name: str, suffix: str) -> str:
    return name + suffix


def decompressed_name(name: str, suffix: str) -> str:
    if has_suffix(name, suffix):
        return name[:-len(suffix)]
    return name + FALLBACK_EXTENSION


def validate_suffix(suffix: str) -> None:
    if not suffix:
        raise ValueError("suffix must not be empty")
    separators = {os.sep, os.altsep} - {None}
    if any(sep in suffix for sep in separators):
        raise ValueError(f"invalid suffix {suffix!r}")


def space_saving(compressed: int, uncompressed: int) -> float:
    """
    Return the percentage of `uncompressed` saved by `compressed`.

    NOTE: an empty uncompressed stream has nothing to save, so the
    ratio is reported as 0 instead of dividing by zero.
    """
    if uncompressed == 0:
        return 0.0
    return 100 - compressed * 100 / uncompressed


def stdin_is_terminal() -> bool:
    stdin = sys.stdin
    return stdin is not None and stdin.isatty()


def confirm_overwrite(path: Path, force: bool) -> bool:
    """
    Return whether `path` may be written. Only an existing file with
    forcing disabled asks the user, and only when standard input is a
    terminal: piped input may be the data being compressed, so it is
    never read for an answer.
    """
    if force:
        return True
    try:
        path.stat()
    except FileNotFoundError:
        return True
    except OSError:
        # Can't tell whether it exists, so don't risk it
        return False

    if not stdin_is_terminal():
        return False
    try:
        return click.confirm(f"{path} already exists; overwrite?",
                             default=None,
                             err=True)
    except click.Abort:
        click.echo(err=True)
        return False
