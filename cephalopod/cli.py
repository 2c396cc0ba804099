from __future__ import annotations

import argparse
import logging
import os
from typing import Iterable

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from .config import ENV_OVERRIDES, FadeSettings
from .controller import FadeController
from .curves import fade_envelope, total_steps
from .logging_utils import DEBUG_ENV, configure_logging, get_log_path, log_exception
from .sampler import ThreadSampler
from .sinks import CallbackSink

_LOGGER = logging.getLogger("cephalopod.cli")
_CONSOLE = Console()
_BAR_WIDTH = 30


def _render_error(context: str, exc: BaseException) -> None:
    message = escape(str(exc))
    _CONSOLE.print(f"[bold red]{escape(context)} failed:[/] {type(exc).__name__}: {message}")


def _level_bar(volume: float) -> str:
    filled = round(volume * _BAR_WIDTH)
    return "█" * filled + "·" * (_BAR_WIDTH - filled)


def _add_curve_options(parser: argparse.ArgumentParser, settings: FadeSettings) -> None:
    parser.add_argument("--duration", type=float, default=settings.duration)
    parser.add_argument("--velocity", type=float, default=settings.velocity)
    parser.add_argument("--rate", type=float, default=settings.volume_alterations_per_second)


def build_parser(settings: FadeSettings | None = None) -> argparse.ArgumentParser:
    settings = settings or FadeSettings()
    parser = argparse.ArgumentParser(prog="cephalopod")
    sub = parser.add_subparsers(dest="command", required=True)

    preview = sub.add_parser("preview", help="Print the volume written on every tick of a fade.")
    preview.add_argument("--from", dest="from_volume", type=float, default=1.0)
    preview.add_argument("--to", dest="to_volume", type=float, default=0.0)
    preview.add_argument("--every", type=int, default=1, help="Show every Nth tick.")
    _add_curve_options(preview, settings)

    run = sub.add_parser("run", help="Run a real-time fade and show the level.")
    run.add_argument("--direction", choices=["in", "out"], default="out")
    run.add_argument("--start", type=float, default=None, help="Initial volume.")
    _add_curve_options(run, settings)

    sub.add_parser("doctor", help="Show resolved settings and log location.")
    return parser


def _preview(args: argparse.Namespace) -> int:
    envelope = fade_envelope(
        args.from_volume,
        args.to_volume,
        args.duration,
        args.velocity,
        args.rate,
    )
    every = max(1, args.every)
    table = Table(title=f"Fade {envelope[0]:.3f} -> {envelope[-1]:.3f}")
    table.add_column("write", justify="right")
    table.add_column("volume", justify="right")
    table.add_column("level")
    last = len(envelope) - 1
    for index, volume in enumerate(envelope):
        if index % every and index != last:
            continue
        table.add_row(str(index), f"{volume:.4f}", _level_bar(float(volume)))
    _CONSOLE.print(table)
    budget = total_steps(args.duration, args.rate)
    _CONSOLE.print(
        f"{len(envelope)} volume writes, {len(envelope) - 1} ticks (step budget {budget:g})"
    )
    return 0


def _run(args: argparse.Namespace, settings: FadeSettings) -> int:
    start = args.start
    if start is None:
        start = 0.0 if args.direction == "in" else 1.0
    settings = settings.with_overrides(volume_alterations_per_second=args.rate)

    progress = Progress(
        TextColumn(f"fade {args.direction}"),
        BarColumn(bar_width=_BAR_WIDTH),
        TextColumn("{task.fields[volume]:.3f}"),
        console=_CONSOLE,
    )
    with progress:
        task = progress.add_task("volume", total=1.0, completed=start, volume=start)
        sink = CallbackSink(
            lambda volume: progress.update(task, completed=volume, volume=volume),
            volume=start,
        )
        with FadeController(sink, sampler=ThreadSampler(), settings=settings) as controller:
            if args.direction == "in":
                result = controller.fade_in(args.duration, args.velocity)
            else:
                result = controller.fade_out(args.duration, args.velocity)
            finished = result.result(timeout=max(args.duration, 0.0) + 5.0)
    _CONSOLE.print(f"Fade {'finished' if finished else 'cancelled'} at volume {sink.volume:.3f}")
    return 0 if finished else 1


def _doctor_report(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line)


def _doctor(settings: FadeSettings) -> int:
    overrides = [f"- {key}={os.environ[key]}" for key in ENV_OVERRIDES if key in os.environ]
    report = [
        f"Fade duration: {settings.duration:g}s",
        f"Velocity: {settings.velocity:g}",
        f"Volume alterations per second: {settings.volume_alterations_per_second:g}",
        f"Log file: {get_log_path()}",
        "Environment overrides:" if overrides else "Environment overrides: none",
        *overrides,
    ]
    _doctor_report(report)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        settings = FadeSettings.from_env()
        parser = build_parser(settings)
        args = parser.parse_args(argv)

        if args.command == "preview":
            return _preview(args)
        if args.command == "run":
            return _run(args, settings)
        if args.command == "doctor":
            return _doctor(settings)

        parser.print_help()
        return 1
    except Exception as exc:
        debug = bool(os.environ.get(DEBUG_ENV))
        _LOGGER.warning("cephalopod CLI failed: %s", exc, exc_info=debug)
        log_exception("cephalopod CLI", exc)
        _render_error("cephalopod CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
