"""Shared data type definitions (FileRecord, RemoteAddress, UploadSessionHandle, etc.)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FileRecord:
    """
    One uploadable local file, produced by directory enumeration.
    """
    full_path: str
    length: int
    created_at: datetime
    modified_at: datetime
    accessed_at: datetime


@dataclass(frozen=True)
class RemoteAddress:
    """
    Escaped path-addressed locator for one remote item.

    Attributes:
        root: Locator of the resolved root item (e.g. '/me/drive/root')
        path: Escaped path relative to that root
    """
    root: str
    path: str

    @property
    def url(self) -> str:
        """Path-addressed item URL relative to the API base ('<root>:/<path>:')."""
        return f"{self.root}:/{self.path}:"


@dataclass(frozen=True)
class ByteRange:
    """
    Inclusive byte range. `end` of None means 'through the end of the file'.
    """
    start: int
    end: Optional[int] = None

    @property
    def length(self) -> int:
        if self.end is None:
            raise ValueError("open-ended range has no length")
        return self.end - self.start + 1

    @classmethod
    def parse(cls, text: str) -> 'ByteRange':
        """Parse a '<start>-[<end>]' range as reported by the upload service."""
        start, _, end = text.partition('-')
        return cls(int(start), int(end) if end else None)


@dataclass
class UploadSessionHandle:
    """
    Server-issued resumable session plus its outstanding byte ranges.

    Owned by exactly one ChunkedTransferSession for its lifetime.
    """
    upload_url: str
    next_expected_ranges: List[ByteRange] = field(default_factory=list)
    expiration: Optional[datetime] = None


@dataclass(frozen=True)
class ChunkResult:
    """Result of one chunk submission."""
    succeeded: bool
    item: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Credential:
    """
    Bearer credential issued by the authentication provider.

    Attributes:
        access_token: Token attached to every Graph request
        expires_on: UTC instant after which the token is invalid
        account: Provider identity used for silent re-authentication
    """
    access_token: str
    expires_on: datetime
    account: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ProgressEntry:
    """One level of a progress snapshot."""
    label: str
    completed: int
    total: int
    annotation: Optional[str] = None


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    Immutable view of the active path in the progress tree, root first.
    """
    entries: tuple[ProgressEntry, ...]

    @property
    def root(self) -> ProgressEntry:
        return self.entries[0]

    @property
    def leaf(self) -> ProgressEntry:
        return self.entries[-1]
