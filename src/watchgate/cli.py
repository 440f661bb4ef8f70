#!/usr/bin/env python3
"""
Watch directories and print every qualifying batch of events.

Usage:
    watchgate /path/to/project
    watchgate src docs --include "*.py" --exclude "build/**"
    python -m watchgate.cli . --kinds create,remove --polling
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .config import WatchConfig
from .exceptions import PatternSyntaxError, WatchgateError, WatchRegistrationError
from .fs_watcher import WatchdogBackend
from .kinds import DEFAULT_ALLOWED_KINDS, parse_kinds
from .loop import WatchLoop
from .models import Disposition, EventBatch, RawEvent
from .pipeline import FilterPipeline

logger = logging.getLogger("watchgate.cli")


class GracefulShutdown:
    """Stop the watch loop on SIGINT/SIGTERM."""

    def __init__(self, loop: WatchLoop):
        self.loop = loop
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.loop.stop()


def format_event(event: RawEvent) -> str:
    """One-line description of an event."""
    tags = ", ".join(str(t) for t in event.kind_tags) or "-"
    return f"{event.path} [{tags}]"


def print_batch(batch: EventBatch) -> Disposition:
    """Default handler: print each event of the batch."""
    for event in batch:
        print(f"EVENT: {format_event(event)}")
    print(flush=True)
    return Disposition.CONTINUE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watchgate",
        description="Watch directories and print filtered change events",
    )
    parser.add_argument("roots", nargs="*", help="Directories to watch (default: current directory)")
    parser.add_argument("-i", "--include", action="append", default=[], metavar="GLOB",
                        help="Only pass paths matching this glob (repeatable)")
    parser.add_argument("-e", "--exclude", action="append", default=[], metavar="GLOB",
                        help="Drop paths matching this glob (repeatable)")
    parser.add_argument("--no-default-excludes", action="store_true",
                        help="Do not merge the built-in exclude list")
    parser.add_argument("--kinds", default=None,
                        help="Comma-separated event kinds to pass "
                             f"(default: {','.join(sorted(k.value for k in DEFAULT_ALLOWED_KINDS))})")
    parser.add_argument("--debounce", type=int, default=50, metavar="MS",
                        help="Debounce window in milliseconds (default: 50)")
    parser.add_argument("--polling", action="store_true", help="Use the polling observer")
    parser.add_argument("--allow-partial", action="store_true",
                        help="Keep going if some roots cannot be watched")
    parser.add_argument("--auto-resume", action="store_true",
                        help="Drop roots that fail while watching instead of exiting")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def build_config(args: argparse.Namespace) -> WatchConfig:
    """
    Turn parsed arguments into a WatchConfig.

    Raises:
        ValueError: If an event kind name or a numeric option is invalid
    """
    roots: List[Path] = [Path(r) for r in args.roots] or [Path.cwd()]
    allowed = parse_kinds(args.kinds) if args.kinds else DEFAULT_ALLOWED_KINDS
    return WatchConfig(
        roots=tuple(roots),
        include_patterns=tuple(args.include),
        exclude_patterns=tuple(args.exclude),
        use_default_excludes=not args.no_default_excludes,
        allowed_kinds=allowed,
        origin=Path.cwd(),
        debounce_ms=args.debounce,
        use_polling=args.polling,
        allow_partial_registration=args.allow_partial,
        auto_resume=args.auto_resume,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = build_config(args)
        pipeline = FilterPipeline.from_config(config)
    except PatternSyntaxError as e:
        logger.error(f"Invalid pattern: {e}")
        return 2
    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        return 2

    loop = WatchLoop(WatchdogBackend(config), pipeline, print_batch, config)
    GracefulShutdown(loop)

    for root in config.resolved_roots():
        logger.info(f"  - {root}")
    logger.info("Press Ctrl+C to stop")

    try:
        with loop:
            state = loop.run()
    except WatchRegistrationError as e:
        logger.error(f"Critical error: {e}")
        return 1
    except WatchgateError as e:
        logger.error(f"Error: {e}")
        return 1

    logger.info(f"Watcher {state.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
