"""main.py

Entry point for command line interface.
"""

import sys
from itertools import islice
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, Tuple

import click

from . import __version__, abort_with_error, echo_error
from .controller import STATS_HEADER, run
from .naming import DEFAULT_SUFFIX
from .options import (DEFAULT_INVOCATION, Invocation, Mode, RunStatus,
                      resolve_invocation, resolve_options)
from .orchestrator import FatalError

LICENSE_TEXT = """\
Copyright (c) chunkzip contributors

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in
all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND."""

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def print_license(ctx: click.Context, _param: click.Parameter,
                  value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    click.echo(LICENSE_TEXT)
    ctx.exit()


def print_headline(ctx: click.Context, _param: click.Parameter,
                   value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    click.echo(STATS_HEADER, err=True)
    ctx.exit()


def remember(key: str, value: Any) -> Callable:
    """
    Callback storing `value` under `key` in the context meta when its
    flag is given. Callbacks run in command line order, so the last mode
    flag wins.
    """
    def callback(ctx: click.Context, _param: click.Parameter,
                 given: bool) -> None:
        if given:
            ctx.meta[key] = value
    return callback


def split_level_digits(args: List[str], value_flags: Set[str]
                       ) -> Tuple[List[str], Optional[int]]:
    """
    Pull the digit flags out of short option clusters and join them into
    one compression level, so -19 means level 19 and -k9 means -k plus
    level 9. Values of `value_flags` and anything after -- are kept as
    they are.
    """
    remaining: List[str] = []
    digits = ""
    args_iter = iter(args)
    for arg in args_iter:
        if arg == "--":
            remaining.append(arg)
            remaining.extend(args_iter)
            break
        if not arg.startswith("-") or arg.startswith("--") or arg == "-":
            remaining.append(arg)
            continue

        cluster = ""
        value: Optional[str] = None
        for index, char in enumerate(arg[1:], start=1):
            if char in value_flags:
                cluster += char
                value = arg[index + 1:]
                break
            if char.isdigit():
                digits += char
            else:
                cluster += char
        if cluster:
            remaining.append(f"-{cluster}{value or ''}")
        # Value given as the next argument
        if value == "":
            remaining.extend(islice(args_iter, 1))

    return (remaining, int(digits) if digits else None)


class LevelCommand(click.Command):
    """Command taking -0 ... -9 as the digits of the compression level."""

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        value_flags = {
            opt[1]
            for param in self.params
            if isinstance(param, click.Option)
            and not param.is_flag and not param.count
            for opt in param.opts
            if len(opt) == 2 and opt[0] == "-"
        }
        args, level = split_level_digits(args, value_flags)
        if level is not None:
            ctx.meta["level"] = level
        return super().parse_args(ctx, args)


def mode_option(flag: str, mode: Mode, help_text: str) -> Callable:
    return click.option(flag, f"mode_{mode.value}",
                        is_flag=True,
                        expose_value=False,
                        callback=remember("mode", mode),
                        help=help_text)


@click.command(cls=LevelCommand, context_settings=CONTEXT_SETTINGS)
@click.option("-c", "stdout", is_flag=True,
              help="Write to standard output, keep input files.")
@mode_option("-d", Mode.DECOMPRESS, "Decompress.")
@mode_option("-z", Mode.COMPRESS, "Compress (the default).")
@mode_option("-l", Mode.LIST, "List sizes of compressed files.")
@mode_option("-t", Mode.TEST, "Test compressed file integrity.")
@click.option("-f", "force", is_flag=True,
              help="Force overwrite and compression of any file.")
@click.option("-k", "keep", is_flag=True,
              help="Keep (don't delete) input files.")
@click.option("-q", "quiet", is_flag=True,
              help="Suppress all warnings.")
@click.option("-v", "verbose", count=True,
              help="Be verbose (repeat for more).")
@click.option("-S", "suffix", default=DEFAULT_SUFFIX, show_default=True,
              metavar="SUF", help="Use suffix SUF on compressed files.")
@click.option("-o", "output", type=click.Path(path_type=Path),
              default=None, metavar="FILE",
              help="Write all results to FILE.")
@click.option("-T", "threads", type=int, default=None,
              envvar="CHUNKZIP_THREADS", metavar="N",
              help="Number of (de)compression threads (default: #cores).")
@click.option("-b", "chunk_mib", type=int, default=0, metavar="N",
              help="Input chunk size in MiB, at most 256 (default: auto).")
@click.option("-i", "iterations", type=int, default=1, metavar="N",
              help="Number of iterations for benchmarking.")
@click.option("-B", "timings", is_flag=True,
              help="Print timings and memory usage to stderr.")
@click.option("-H", "headline", is_flag=True,
              expose_value=False, is_eager=True,
              callback=print_headline,
              help="Print the headline for the timing values and exit.")
@click.option("-L", "show_license", is_flag=True,
              expose_value=False, is_eager=True,
              callback=print_license,
              help="Display the software license and exit.")
@click.option("-a", "ascii_mode", is_flag=True, hidden=True,
              help="ASCII text mode (ignored).")
@click.version_option(__version__, "-V", "--version",
                      message="%(prog)s version %(version)s")
@click.argument("files", nargs=-1)
@click.pass_context
# pylint: disable=too-many-arguments,unused-argument
def cli(ctx: click.Context,
        files: Tuple[str, ...],
        stdout: bool,
        force: bool,
        keep: bool,
        quiet: bool,
        verbose: int,
        suffix: str,
        output: Optional[Path],
        threads: Optional[int],
        chunk_mib: int,
        iterations: int,
        timings: bool,
        ascii_mode: bool,
        ) -> None:
    """
    Compress or decompress FILES in place. With no FILES, or when FILE
    is -, read standard input.

    Digit flags set the compression level: -1 is fastest, -9 compresses
    better, and consecutive digits such as -19 go up to level 22.
    """
    invocation: Invocation = ctx.obj or DEFAULT_INVOCATION
    options = resolve_options(
        invocation,
        mode=ctx.meta.get("mode"),
        level=ctx.meta.get("level"),
        threads=threads,
        chunk_mib=chunk_mib,
        suffix=suffix,
        force=force,
        keep=keep,
        verbose=verbose,
        quiet=quiet,
        iterations=iterations,
        stdout=stdout,
        timings=timings,
        output=output,
    )
    try:
        status = run(options, files)
    except FatalError as exc:
        abort_with_error(str(exc))
    ctx.exit(int(status))


def main() -> None:
    invocation = resolve_invocation(sys.argv[0])
    try:
        code = cli.main(args=sys.argv[1:],
                        prog_name=invocation.name,
                        obj=invocation,
                        standalone_mode=False)
    except click.UsageError as exc:
        if exc.ctx is not None:
            click.echo(exc.ctx.get_help(), err=True)
        echo_error(exc.format_message())
        sys.exit(int(RunStatus.ERROR))
    except click.ClickException as exc:
        exc.show()
        sys.exit(int(RunStatus.ERROR))
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(int(RunStatus.ERROR))
    sys.exit(code if isinstance(code, int) else 0)


if __name__ == "__main__":
    main()
