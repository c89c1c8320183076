"""Command-line argument parser."""

from typing import Optional

from cli.models import CommandRequest, HelpCommand, UploadCommand


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


FLAGS_WITH_VALUE = ("--concurrency", "--config")
BOOLEAN_FLAGS = ("--debug", "--keep-going")


def parse_args(argv: list[str]) -> CommandRequest:
    """Parse command-line arguments into a CommandRequest object.

    Args:
        argv: Arguments without the program name

    Returns:
        UploadCommand, or HelpCommand for -h/--help

    Raises:
        ParseError: If the arguments are invalid
    """
    if any(arg in ("-h", "--help") for arg in argv):
        return HelpCommand()

    positional: list[str] = []
    options: dict[str, Optional[str]] = {}
    only_positional = False

    index = 0
    while index < len(argv):
        arg = argv[index]
        index += 1

        if only_positional or not arg.startswith("--"):
            positional.append(arg)
            continue

        if arg == "--":
            only_positional = True
            continue

        name, has_value, value = arg.partition("=")
        if name in BOOLEAN_FLAGS:
            if has_value:
                raise ParseError(f"{name} does not take a value")
            options[name] = None
        elif name in FLAGS_WITH_VALUE:
            if not has_value:
                if index >= len(argv):
                    raise ParseError(f"{name} requires a value")
                value = argv[index]
                index += 1
            options[name] = value
        else:
            raise ParseError(f"Unknown option: {name}")

    if len(positional) != 2:
        raise ParseError("upload requires exactly 2 arguments: <source> <destination>")

    source, destination = positional
    if not destination.strip("/\\"):
        raise ParseError("destination must name a folder")

    return UploadCommand(
        source=source,
        destination=destination.strip("/\\"),
        concurrency=_parse_concurrency(options.get("--concurrency")),
        keep_going="--keep-going" in options,
        debug="--debug" in options,
        config_path=options.get("--config"),
    )


def _parse_concurrency(value: Optional[str]) -> Optional[int]:
    """Parse '--concurrency N' (positive integer)."""
    if value is None:
        return None
    try:
        concurrency = int(value)
    except ValueError:
        raise ParseError(f"--concurrency must be an integer, got '{value}'")
    if concurrency < 1:
        raise ParseError("--concurrency must be at least 1")
    return concurrency
