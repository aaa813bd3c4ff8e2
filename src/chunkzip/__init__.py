"""
# chunkzip

gzip-style command line front end for a multithreaded, chunked zstd
compressor.
"""

from typing import NoReturn, Optional

import click

__version__ = "0.1.0"

PROGRAM_NAME = "chunkzip"


def echo_info(message: str) -> None:
    click.secho(message, err=True)


def echo_warning(message: str) -> None:
    click.secho("WARNING: ", nl=False, fg="yellow", bold=True, err=True)
    click.secho(message, fg="yellow", err=True)


def echo_error(message: str) -> None:
    click.secho("ERROR: ", nl=False, fg="red", bold=True, err=True)
    click.secho(message, fg="red", err=True)


def abort_with_error(message: Optional[str] = None) -> NoReturn:
    if message is not None:
        echo_error(message)
    raise click.Abort()
