#!/usr/bin/env python3
"""
Command Line Interface for packetreplay.

This module provides the command-line interface for generating replay
artifacts (packet catalog plus action script) from packet dump files, and for
inspecting the frames recorded in a dump.
"""

import os
import sys
from collections import Counter
from typing import Optional

import click

from packetreplay import __version__
from packetreplay.dump import PacketDumpReader
from packetreplay.exceptions import DumpFormatError
from packetreplay.generator import GENERATION_PROFILES, GenerationManager, load_config
from packetreplay.models import DIRECTIONS


def debug_option(f):
    """Debug flag shared by all commands."""
    return click.option(
        "--debug/--no-debug",
        default=False,
        help="Enable detailed debug output to help identify issues",
    )(f)


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    packetreplay - Replay captured game-protocol sessions against clients.

    This tool can:
    1. Generate a packet catalog and action script from a packet dump
    2. Inspect the frames recorded in a packet dump

    See the subcommands for specific functionality.
    """
    pass


@cli.command(name="generate")
@click.argument("dump_file", type=click.Path(exists=True))
@click.option(
    "-o",
    "--output-dir",
    default="./replay",
    type=click.Path(file_okay=False),
    help="Output directory for the generated catalog and script",
)
@click.option(
    "--profile",
    type=click.Choice(sorted(GENERATION_PROFILES.keys()), case_sensitive=False),
    default="minimal",
    show_default=True,
    help="Built-in packet tables to start from",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with generation settings, layered over the profile",
)
@click.option("--sleep-threshold", type=int, help="Minimum gap (ms) that becomes a sleep")
@click.option("--sleep-granularity", type=int, help="Sleep durations are rounded to this many ms")
@click.option("--initial-sleep", type=int, help="Sleep (ms) inserted before the first action")
@click.option(
    "--template-dir",
    type=click.Path(exists=True, file_okay=False),
    help="Directory containing a custom script.j2 template",
)
@click.option("--dry-run", is_flag=True, help="Generate without writing any files")
@debug_option
def generate(
    dump_file: str,
    output_dir: str,
    profile: str,
    config_file: Optional[str],
    sleep_threshold: Optional[int],
    sleep_granularity: Optional[int],
    initial_sleep: Optional[int],
    template_dir: Optional[str],
    dry_run: bool,
    debug: bool,
) -> int:
    """
    Generate a packet catalog and action script from a packet dump.

    DUMP_FILE: Path to the input packet dump
    """
    if not os.path.isfile(dump_file):
        raise click.BadParameter(f"'{dump_file}' is not a file.")

    config = GENERATION_PROFILES[profile.lower()]
    if config_file:
        try:
            config = load_config(config_file, base=config)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--config")

    try:
        config = config.with_overrides(
            sleep_threshold_ms=sleep_threshold,
            sleep_granularity_ms=sleep_granularity,
            initial_sleep_ms=initial_sleep,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    if debug:
        click.echo(f"Processing {dump_file}...")
        click.echo(f"Profile: {profile}{' + ' + config_file if config_file else ''}")
        click.echo(f"Output directory: {output_dir}")

    try:
        manager = GenerationManager(
            dump_file=dump_file,
            output_dir=output_dir,
            config=config,
            template_dir=template_dir,
            dry_run=dry_run,
            debug=debug,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        result = manager.run()
    except DumpFormatError as e:
        raise click.ClickException(f"Invalid dump file: {e}")
    except ValueError as e:
        raise click.ClickException(f"Error generating replay script: {e}")
    except OSError as e:
        raise click.FileError(output_dir, hint=f"Error: {e}. Check permissions and path validity.")

    summary = result.summary
    if dry_run:
        click.echo(f"Dry run - would write {len(manager.planned_files)} files to {output_dir}:")
        for path in manager.planned_files:
            click.echo(f"  {path}")
    else:
        click.echo(
            f"Generated {len(result.used_entries())} catalog entries and "
            f"{summary.actions} actions in {output_dir}"
        )
    click.echo(
        f"{summary.total} frames: {summary.skipped} skipped, {summary.duplicates} duplicate, "
        f"{summary.failed} undecodable"
    )
    if not any(action.references() is not None for action in result.script):
        click.echo("Warning: the generated script sends no packets.", err=True)
    return 0


@cli.command(name="inspect")
@click.argument("dump_file", type=click.Path(exists=True))
@click.option(
    "--direction",
    type=click.Choice(list(DIRECTIONS), case_sensitive=False),
    help="Only show clientbound (C) or serverbound (S) frames",
)
@click.option("--limit", type=click.IntRange(min=1), help="Stop after this many frames")
@click.option("--summary", is_flag=True, help="Show per-packet counts instead of a frame listing")
@debug_option
def inspect(
    dump_file: str,
    direction: Optional[str],
    limit: Optional[int],
    summary: bool,
    debug: bool,
) -> int:
    """
    List the frames recorded in a packet dump.

    DUMP_FILE: Path to the input packet dump
    """
    if not os.path.isfile(dump_file):
        raise click.BadParameter(f"'{dump_file}' is not a file.")

    try:
        reader = PacketDumpReader(dump_file, debug=debug)
    except DumpFormatError as e:
        raise click.ClickException(f"Invalid dump file: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))

    counts: Counter = Counter()
    shown = 0
    with reader:
        click.echo(f"Protocol version: {reader.version}")
        for index, frame in enumerate(reader):
            if direction and frame.direction != direction.upper():
                continue
            name = frame.name if frame.decoded else "<undecodable>"
            if summary:
                counts[(frame.direction, name)] += 1
            else:
                click.echo(f"{index:6d} {frame.direction} {frame.timestamp_ms:>9}ms  {name} ({len(frame.raw)} bytes)")
            shown += 1
            if limit is not None and shown >= limit:
                break

    if summary:
        for (frame_direction, name), count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
            click.echo(f"{count:6d} {frame_direction} {name}")
    click.echo(f"{shown} frames")
    return 0


def main():
    """
    Main entry point for the CLI.

    Returns the exit code from the CLI command execution.
    """
    try:
        return cli()
    except Exception as e:
        # Catch any unexpected exceptions that weren't handled elsewhere
        click.echo(f"Unexpected error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
