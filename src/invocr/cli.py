#!/usr/bin/env python3
"""
InvOcr CLI - on-device OCR from the terminal.

Usage:
    invocr-cli <command> [options]

Commands:
    recognize     Recognize the text in an image
    backends      Show which inference backends can run here
    set-backend   Persist the backend mode (auto, paddle, onnx, openocr)

Examples:
    invocr-cli recognize label.jpg
    invocr-cli recognize scan.png --backend onnx --json
    invocr-cli recognize photo.jpg --asset-dir ./models --cache-dir /tmp/invocr -v
    invocr-cli backends
    invocr-cli set-backend paddle
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from invocr.config import APP_VERSION, BACKEND_MODE_KEY, BACKEND_MODES, LOG_FORMAT

# ---------------------------------------------------------------------------
# Argument parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="invocr-cli",
        description="InvOcr - on-device OCR for inventory labels and documents.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging (DEBUG)")
    p.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    sub = p.add_subparsers(dest="command", help="Available commands")

    # --- recognize ---
    rec_p = sub.add_parser("recognize", help="Recognize the text in an image")
    rec_p.add_argument("input", type=Path, help="Input image file")
    rec_p.add_argument(
        "--backend",
        choices=BACKEND_MODES,
        default=None,
        help="Backend mode for this run (default: configured mode)",
    )
    rec_p.add_argument(
        "--json", action="store_true", help="Print the full pipeline output as JSON"
    )
    rec_p.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (0 = auto). Default: configured value.",
    )
    rec_p.add_argument("--asset-dir", type=Path, default=None, help="Model asset directory")
    rec_p.add_argument("--cache-dir", type=Path, default=None, help="Model staging directory")

    # --- backends ---
    sub.add_parser("backends", help="Show backend availability")

    # --- set-backend ---
    set_p = sub.add_parser("set-backend", help="Persist the backend mode")
    set_p.add_argument("mode", choices=BACKEND_MODES, help="Backend mode")

    return p


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _format_text(output) -> str:
    lines = [
        f"Scene: {output.scene.value}",
        f"Layout: {output.layout.value}",
        f"Image: {output.image.width}x{output.image.height}",
    ]
    if output.table is not None:
        for cell in output.table.cells:
            lines.append(
                f"[r{cell.row_index} c{cell.col_index}] {cell.text} ({cell.confidence:.2f})"
            )
    else:
        for group in output.result.groups:
            lines.append(f"{group.text}\t{group.confidence:.2f}")
    return "\n".join(lines)


def _cmd_recognize(args, logger) -> int:
    """Handle the 'recognize' command."""
    from invocr.services.ocr.config import OCRConfig
    from invocr.services.ocr.engine import OcrEngine
    from invocr.utils.config_manager import get_config_manager

    config_manager = get_config_manager()
    config = OCRConfig.from_config_manager(
        config_manager,
        backend_mode=args.backend,
        workers=args.workers,
        asset_dir=args.asset_dir,
        cache_dir=args.cache_dir,
    )
    logger.debug(f"Configuration: {config}")

    with OcrEngine(config, config_manager=config_manager) as engine:
        output = engine.recognize(args.input)

    if args.json:
        print(json.dumps(output.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(_format_text(output))

    if output.is_empty:
        logger.warning("No text recognized")
    return 0


def _cmd_backends(args, logger) -> int:
    """Handle the 'backends' command."""
    from invocr.services.ocr.caches import SessionCache
    from invocr.services.ocr.config import OCRConfig
    from invocr.services.ocr.factory import build_backends
    from invocr.utils.config_manager import get_config_manager

    config_manager = get_config_manager()
    config = OCRConfig.from_config_manager(config_manager)
    backends = build_backends(config, session_cache=SessionCache())

    print(f"Configured mode: {config.backend_mode}")
    for mode, backend in backends.items():
        status = "available" if backend.is_available() else "unavailable"
        print(f"  {mode:<8} {backend.name:<9} {status}")
    return 0


def _cmd_set_backend(args, logger) -> int:
    """Handle the 'set-backend' command."""
    from invocr.utils.config_manager import get_config_manager

    config_manager = get_config_manager()
    config_manager.set(BACKEND_MODE_KEY, args.mode)
    logger.info(f"Backend mode set to {args.mode}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    logger = logging.getLogger("invocr.cli")

    if getattr(args, "input", None) is not None and not args.input.exists():
        print(f"Error: {args.input} not found", file=sys.stderr)
        return 1

    handlers = {
        "recognize": _cmd_recognize,
        "backends": _cmd_backends,
        "set-backend": _cmd_set_backend,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args, logger)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
