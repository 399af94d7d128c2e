from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

from pettainers.lib.config_parser import ConfigError, load_config
from pettainers.lib.engine import ContainerEngine, EngineError
from pettainers.lib.orchestrator import LifecycleError, LifecycleOrchestrator, Terminated
from pettainers.lib.provisioning import UserSpec

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging
        quiet: Suppress info logging
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(name)s: %(levelname)s: %(message)s' if verbose else '%(message)s',
    )


class ToolboxArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on usage errors."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ToolboxArgumentParser(
        prog="toolbox",
        description="Start a long-lived toolbox container and attach a shell to it",
        epilog="Settings can be overridden in ~/.toolboxrc (YAML) or the file named by $TOOLBOXRC.",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '--root', '-r',
        action='store_true',
        help='Run the container engine through sudo'
    )
    parser.add_argument(
        '--user', '-u',
        action='store_true',
        help='Run as the current user inside the container (set up on first creation)'
    )
    parser.add_argument(
        '--tag', '-t',
        metavar='TAG',
        help='Append -TAG to the container name'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        metavar='PATH',
        help='Path to the override file (default: $TOOLBOXRC or ~/.toolboxrc)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose (debug) logging'
    )
    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress informational output'
    )
    parser.add_argument(
        'command',
        nargs=argparse.REMAINDER,
        help='Command to run in the container (default: the configured shell)'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code of the attached command, or 1 on failure
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    try:
        config = load_config(args.config)
        name = config.container_name(args.tag)
    except (ConfigError, ValueError) as e:
        logger.error(f"toolbox: {e}")
        return EXIT_FAILURE

    engine = ContainerEngine(config.engine, use_sudo=args.root)
    try:
        engine.check_available()
    except EngineError as e:
        logger.error(f"toolbox: {e}")
        return EXIT_FAILURE

    user = UserSpec.current(shell=config.toolbox_shell) if args.user else None
    orchestrator = LifecycleOrchestrator(engine, config, name, user=user)

    command = list(args.command)
    if command and command[0] == '--':
        command = command[1:]

    try:
        return orchestrator.run(command)
    except LifecycleError as e:
        logger.error(f"toolbox: {e}")
        if args.verbose:
            logger.exception("Full traceback:")
        return EXIT_FAILURE
    except (KeyboardInterrupt, Terminated):
        logger.warning("toolbox: interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
