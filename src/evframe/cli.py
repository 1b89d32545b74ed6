"""CLI entry point: render an event file to a video of dense frames."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from .config import (
    load_config,
    representation_options,
    resolve_geometry,
    schedule_us,
)
from .errors import EvframeError
from .evlib_loader import load_evlib_provider
from .h5_reader import H5_SUFFIXES, H5EventReader
from .providers import BaseEventProvider
from .representations import representation_from_config
from .scheduler import FrameLoopStats, generate_frames
from .sink import VideoSink

console = Console()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render event camera data to a video of dense frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s recording.h5 --delta-t-ms 50 --duration-t-ms 100
  %(prog)s recording.h5 --width 640 --height 480 --downsample
  %(prog)s recording.raw --width 1280 --height 720 \\
      --representation stacked_histogram --bins 5 --exact
  %(prog)s recording.h5 --summary
        """
    )

    parser.add_argument('input', type=Path, help='Event file (.h5/.hdf5, or any format evlib reads)')
    parser.add_argument('--width', type=int, help='Sensor width (default: from file metadata)')
    parser.add_argument('--height', type=int, help='Sensor height (default: from file metadata)')
    parser.add_argument('--delta-t-ms', type=float, help='Window stride in ms (default: 100)')
    parser.add_argument('--duration-t-ms', type=float, help='Window length in ms (default: 100)')
    parser.add_argument(
        '--representation',
        choices=['event_frame', 'stacked_histogram'],
        help='Representation variant (default: event_frame)',
    )
    parser.add_argument('--bins', type=int, help='Temporal sub-bins (stacked_histogram only)')
    parser.add_argument('--count-cutoff', type=int, help='Max count per cell, clamped to 255 (stacked_histogram only)')
    parser.add_argument(
        '--exact',
        action='store_true',
        help='Exact sub-bin assignment instead of fastmode (stacked_histogram only)',
    )
    parser.add_argument('--downsample', action='store_true', help='Halve output resolution')
    parser.add_argument('--workers', type=int, metavar='N', help='Build frames on N threads (default: 1)')
    parser.add_argument('--config', type=Path, metavar='PATH', help='YAML config merged under the CLI options')
    parser.add_argument('--output', '-o', type=Path, help='Output video (default: event_video.mp4)')
    parser.add_argument('--summary', action='store_true', help='Print stream statistics and exit')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log skipped windows')

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict:
    """Only options given on the command line override the config file."""
    overrides: dict = {"stream": {}, "schedule": {}, "representation": {}}

    if args.width is not None:
        overrides["stream"]["width"] = args.width
    if args.height is not None:
        overrides["stream"]["height"] = args.height
    if args.delta_t_ms is not None:
        overrides["schedule"]["delta_t_ms"] = args.delta_t_ms
    if args.duration_t_ms is not None:
        overrides["schedule"]["duration_t_ms"] = args.duration_t_ms
    if args.workers is not None:
        overrides["schedule"]["workers"] = args.workers

    rep = overrides["representation"]
    if args.representation is not None:
        rep["variant"] = args.representation
    if args.bins is not None:
        rep["bins"] = args.bins
    if args.count_cutoff is not None:
        rep["count_cutoff"] = args.count_cutoff
    if args.exact:
        rep["fastmode"] = False
    if args.downsample:
        rep["downsample"] = True

    if args.output is not None:
        overrides["output"] = str(args.output)
    return overrides


def open_provider(path: Path) -> BaseEventProvider:
    """HDF5 files are read lazily; everything else is loaded through evlib."""
    if path.suffix.lower() in H5_SUFFIXES:
        return H5EventReader(path)
    if not path.exists():
        raise FileNotFoundError(f"{path} does not exist")
    return load_evlib_provider(str(path))


def print_summary(provider: BaseEventProvider) -> None:
    console.print(f"[bold]Events[/bold]    : {provider.num_events:,}")
    geometry = provider.geometry()
    if geometry is not None:
        console.print(f"[bold]Resolution[/bold]: {geometry.width}×{geometry.height}")
    if isinstance(provider, H5EventReader):
        for key, value in provider.event_summary().items():
            console.print(f"  {key:<12}: {value}")
        console.print("[bold]Stored dtypes[/bold]")
        for key, value in provider.original_dtypes().items():
            console.print(f"  {key}: {value}")


def render(args: argparse.Namespace) -> int:
    cfg = load_config(args.config, build_overrides(args))
    delta_t, duration_t = schedule_us(cfg)

    with open_provider(args.input) as provider:
        if args.summary:
            print_summary(provider)
            return 0

        geometry = resolve_geometry(cfg, provider.geometry())
        representation = representation_from_config(
            representation_options(cfg, geometry)
        )

        t = provider.sanitized_timestamps()
        if t.size == 0:
            console.print("[red]❌ No time data available.[/red]")
            return 1
        total_steps = int((t[-1] - t[0]) // delta_t) + 1

        _, out_h, out_w = representation.shape
        stats = FrameLoopStats()
        progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.1f}%",
            TimeElapsedColumn(),
            console=console,
        )
        with VideoSink(
            cfg.output,
            frame_size=(out_h, out_w),
            fps=VideoSink.fps_for_stride(delta_t),
        ) as sink, progress:
            task = progress.add_task(args.input.name, total=total_steps)
            for frame in generate_frames(
                provider,
                representation,
                delta_t,
                duration_t,
                num_workers=cfg.schedule.workers,
                max_retries=cfg.schedule.max_retries,
                stats=stats,
            ):
                sink.write(frame)
                progress.update(task, completed=frame.index + 1)
            progress.update(task, completed=total_steps)

    console.print(f"✅ Video saved to {cfg.output}")
    console.print(
        f"   Frames: {stats.emitted:,} written, {stats.empty:,} empty, "
        f"{stats.failed:,} unreadable"
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    try:
        return render(args)
    except (EvframeError, OSError, ImportError) as err:
        console.print("[red]❌ Rendering failed[/red]")
        console.print(f"Reason: {err}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
