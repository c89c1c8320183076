"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal, Optional


@dataclass(frozen=True)
class UploadCommand:
    """Upload a local directory tree to a remote destination."""

    source: str
    destination: str
    concurrency: Optional[int] = None
    keep_going: bool = False
    debug: bool = False
    config_path: Optional[str] = None
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class HelpCommand:
    """Show usage."""

    command: Literal["help"] = "help"


CommandRequest = UploadCommand | HelpCommand
