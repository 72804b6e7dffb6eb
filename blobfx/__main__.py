"""
blobfx Command Line Interface

Usage:
    blobfx <command> [options]

Commands:
    preview     Play a video with live tracked overlays
    export      Render overlays frame by frame into a new video
    formats     Show which export formats this machine can encode
    config      Create an example configuration file

Examples:
    blobfx preview input.mp4 -c blobfx.json
    blobfx export input.mp4 -o tracked --fps 30
    blobfx export input.mp4 --overlays-only --threshold 180
    blobfx config --create blobfx.json
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from blobfx import __version__
from blobfx.core.config import COLOR_MODES, Config, apply_env_overrides, load_config


def _add_settings_args(parser: argparse.ArgumentParser) -> None:
    """Options that override TrackerSettings fields."""
    parser.add_argument('-c', '--config', help='Configuration file (JSON)')
    parser.add_argument('--threshold', type=int, help='Binary threshold, 0-255')
    parser.add_argument('--min-area', type=float, help='Minimum region area in pixels')
    parser.add_argument('--blur', type=int, dest='blur_size', help='Blur kernel size')
    parser.add_argument('--history', type=int, dest='history_length', help='Trail length, 0-50')
    parser.add_argument('--jitter', type=float, help='Marker jitter, 0-1')
    parser.add_argument('--drift', type=float, help='Marker lag, 0-1')
    parser.add_argument('--color-mode', choices=COLOR_MODES, help='Marker color mode')
    parser.add_argument('--color', dest='base_color', help='Base color as #rrggbb')
    parser.add_argument('--no-hud', action='store_true', help='Hide id/area labels')
    parser.add_argument('--no-trails', action='store_true', help='Hide history trails')
    parser.add_argument('--no-glow', action='store_true', help='Disable marker glow')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='blobfx',
        description='Tracked blob overlays for video',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        '-V', '--version',
        action='version',
        version=f'blobfx {__version__}',
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Preview command
    preview_parser = subparsers.add_parser(
        'preview',
        help='Play a video with live tracked overlays',
    )
    preview_parser.add_argument('input', help='Input video file')
    preview_parser.add_argument(
        '--max-dim',
        type=int,
        default=None,
        help='Largest processing dimension (default: 480)',
    )
    preview_parser.add_argument(
        '--no-loop',
        action='store_true',
        help='Stop at the end of the video',
    )
    _add_settings_args(preview_parser)

    # Export command
    export_parser = subparsers.add_parser(
        'export',
        help='Render overlays frame by frame into a new video',
    )
    export_parser.add_argument('input', help='Input video file')
    export_parser.add_argument(
        '-o', '--output',
        help='Output path without extension (default: <input>_blobs)',
    )
    export_parser.add_argument(
        '--fps',
        type=float,
        default=None,
        help='Export frame rate (default: 30)',
    )
    export_parser.add_argument(
        '--overlays-only',
        action='store_true',
        help='Render overlays on black instead of the source video',
    )
    export_parser.add_argument(
        '--free-running',
        action='store_true',
        help='Use a fixed-rate sampling encoder instead of paced frames',
    )
    export_parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Suppress progress output',
    )
    _add_settings_args(export_parser)

    # Formats command
    subparsers.add_parser(
        'formats',
        help='Show which export formats this machine can encode',
    )

    # Config command
    config_parser = subparsers.add_parser(
        'config',
        help='Create an example configuration file',
    )
    config_parser.add_argument(
        '--create',
        metavar='PATH',
        default='blobfx.json',
        help='Output path (default: blobfx.json)',
    )

    # Parse arguments
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    # Dispatch to appropriate command
    if args.command == 'preview':
        return run_preview(args)
    elif args.command == 'export':
        return run_export(args)
    elif args.command == 'formats':
        return run_formats(args)
    elif args.command == 'config':
        return run_config(args)
    else:
        parser.print_help()
        return 1


def build_config(args) -> Config:
    """Load the config file (if any), then apply environment and CLI overrides."""
    config = load_config(args.config) if args.config else Config()
    settings = apply_env_overrides(config.settings)

    overrides = {
        name: getattr(args, name)
        for name in (
            'threshold', 'min_area', 'blur_size', 'history_length',
            'jitter', 'drift', 'color_mode', 'base_color',
        )
        if getattr(args, name, None) is not None
    }
    if args.no_hud:
        overrides['show_hud'] = False
    if args.no_trails:
        overrides['show_trails'] = False
    if args.no_glow:
        overrides['glow'] = False

    config.settings = replace(settings, **overrides).coerced()
    return config


def _setup_logging(args) -> None:
    import logging
    from blobfx.utils.logger import setup_logger
    setup_logger(level=logging.DEBUG if args.verbose else logging.WARNING)


def run_preview(args):
    """Run the live preview."""
    from blobfx.core.video import VideoSource
    from blobfx.pipeline import FrameProcessor, PreviewLoop

    _setup_logging(args)
    config = build_config(args)
    if args.max_dim:
        config.preview.max_dimension = args.max_dim
    if args.no_loop:
        config.preview.loop = False

    with VideoSource(args.input) as source:
        loop = PreviewLoop(source, FrameProcessor(config.settings), config.preview)
        print(f"Previewing {args.input} (press q to quit)")
        loop.run()
    return 0


def run_export(args):
    """Run a frame-accurate export and write the result next to the input."""
    from blobfx.core.errors import BackendUnavailable
    from blobfx.core.video import VideoSource
    from blobfx.pipeline import ExportDriver, ExportState, FrameProcessor

    _setup_logging(args)
    config = build_config(args)
    if args.fps:
        config.export.fps = args.fps
    if args.overlays_only:
        config.export.overlays_only = True
    if args.free_running:
        config.export.free_running = True

    def progress(percent: int) -> None:
        if not args.quiet:
            sys.stdout.write(f"\rExporting -- {percent}% complete")
            sys.stdout.flush()

    with VideoSource(args.input) as source:
        driver = ExportDriver(
            source,
            FrameProcessor(config.settings),
            config.export,
            progress_callback=progress,
        )
        try:
            result = asyncio.run(driver.run())
        except BackendUnavailable as e:
            print(f"\nNot ready: {e}")
            return 1
        except KeyboardInterrupt:
            print("\n⚠ Export aborted")
            return 130

    if result.state != ExportState.COMPLETED:
        print(f"\n✗ Export {result.state.value}: {result.error or 'no output'}")
        return 1

    stem = args.output or f"{Path(args.input).stem}_blobs"
    output_path = Path(f"{stem}.{result.extension}")
    output_path.write_bytes(result.data)
    print(f"\n✓ {result.frames} frames written to {output_path} ({result.format_id})")
    if result.seek_timeouts:
        print(f"  {result.seek_timeouts} seek(s) timed out")
    return 0


def run_formats(args):
    """Print export format availability."""
    from blobfx.core.codecs import print_format_status
    print_format_status()
    return 0


def run_config(args):
    """Write an example configuration file."""
    from blobfx.core.config import create_example_config
    create_example_config(args.create)
    print(f"Created example configuration: {args.create}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
