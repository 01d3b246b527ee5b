#!/usr/bin/env python3
"""
Notification Composer CLI

Command-line interface for rendering phone notification mockups.

Commands:
  still     - Export the composition as a PNG
  animated  - Export a scrolling GIF of the notification stack
  skins     - List the available device skins

Usage:
  notification-composer still --config composition.json --output out.png
  notification-composer animated --config composition.json --duration 4000 --fps 20
  notification-composer skins
"""

import sys
import argparse
import logging
from pathlib import Path

from .commands.export import ExportCommand, list_skins
from .config.composer_config import ExportConfig
from .config.skin_catalog import SKINS
from .services.export_pipeline import ExportFormat


# Console colors
MAGENTA = '\033[0;35m'
YELLOW = '\033[1;33m'
NC = '\033[0m'


def _add_export_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config',
        type=Path,
        help='Composition JSON file (default: built-in composition)'
    )
    parser.add_argument(
        '--output',
        type=Path,
        help='Output file or directory (default: NOTIF_OUTPUT_DIR or current directory)'
    )
    parser.add_argument(
        '--scale',
        type=float,
        help='Pixel scale (default: NOTIF_PIXEL_SCALE or 2)'
    )
    parser.add_argument(
        '--skin',
        choices=list(SKINS.keys()),
        help='Override the device skin'
    )
    parser.add_argument(
        '--gradient-choice',
        type=int,
        choices=[1, 2, 3, 4, 5, 6],
        help='Built-in wallpaper: 1=Purple, 2=Blue, 3=Orange, 4=Green, 5=Dark, 6=Red'
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with subcommands"""
    parser = argparse.ArgumentParser(
        prog='notification-composer',
        description="Render phone notification mockups to PNG or GIF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  still     Export the composition as a PNG
  animated  Export a scrolling GIF of the notification stack
  skins     List the available device skins

Examples:
  %(prog)s still --config composition.json --output notificacao.png
  %(prog)s animated --config composition.json --duration 4000 --fps 20
  %(prog)s still --skin pixel-pro --gradient-choice 2
        """
    )

    # Global options
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Command to execute',
        required=True
    )

    # =====================================
    # STILL SUBCOMMAND
    # =====================================
    still_parser = subparsers.add_parser(
        'still',
        help='Export the composition as a PNG',
        description='Capture the phone mockup as a single PNG image'
    )
    _add_export_arguments(still_parser)

    # =====================================
    # ANIMATED SUBCOMMAND
    # =====================================
    animated_parser = subparsers.add_parser(
        'animated',
        help='Export a scrolling GIF',
        description='Scroll through the notification stack and encode a GIF'
    )
    _add_export_arguments(animated_parser)
    animated_parser.add_argument(
        '--duration',
        type=int,
        help=f'Animation length in ms (default: {ExportConfig.DEFAULT_DURATION_MS})'
    )
    animated_parser.add_argument(
        '--fps',
        type=int,
        help=f'Frames per second (default: {ExportConfig.DEFAULT_FRAME_RATE})'
    )

    # =====================================
    # SKINS SUBCOMMAND
    # =====================================
    subparsers.add_parser(
        'skins',
        help='List the available device skins'
    )

    return parser


def cmd_export(args: argparse.Namespace, export_format: ExportFormat) -> int:
    """Execute still/animated command"""
    command = ExportCommand(
        export_format=export_format,
        config_path=args.config,
        output=args.output,
        pixel_scale=args.scale,
        duration_ms=getattr(args, 'duration', None),
        frame_rate=getattr(args, 'fps', None),
        skin_id=args.skin,
        gradient_choice=args.gradient_choice
    )
    return command.run()


def main() -> int:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Route to appropriate command
    try:
        if args.command == 'still':
            return cmd_export(args, ExportFormat.STILL)
        elif args.command == 'animated':
            return cmd_export(args, ExportFormat.ANIMATED)
        elif args.command == 'skins':
            return list_skins()
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print()
        print(f"{YELLOW}⚠️  Operação cancelada pelo usuário{NC}")
        return 130
    except Exception as e:
        logging.exception("Unexpected error")
        print(f"{MAGENTA}❌ Erro inesperado: {e}{NC}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
