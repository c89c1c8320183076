"""CLI entry point."""

import asyncio
import os
import sys
import uuid
from typing import Optional

from common.logging_config import setup_logging
from cli.commands import handle_upload
from cli.config import Config
from cli.constants import EXIT_OK, EXIT_USAGE, HELP_TEXT
from cli.models import HelpCommand
from cli.parser import ParseError, parse_args


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for CLI."""
    argv = sys.argv[1:] if argv is None else argv

    try:
        cmd = parse_args(argv)
    except ParseError as e:
        print(f"Error: {e}\n", file=sys.stderr)
        print(HELP_TEXT, file=sys.stderr)
        sys.exit(EXIT_USAGE)

    if isinstance(cmd, HelpCommand):
        print(HELP_TEXT)
        sys.exit(EXIT_OK)

    log_level = 'DEBUG' if cmd.debug else os.getenv('LOG_LEVEL', 'WARNING')
    run_id = uuid.uuid4().hex[:8]
    logger = setup_logging('cli', log_level=log_level, correlation_id=run_id, stream=sys.stderr)
    setup_logging('uploader', log_level=log_level, correlation_id=run_id, stream=sys.stderr)

    if cmd.debug:
        logger.info("Debug logging enabled")

    config = Config(cmd.config_path)

    logger.info("CLI starting...")
    try:
        exit_code = asyncio.run(handle_upload(cmd, config))
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
