"""Recursive enumeration of uploadable local files."""

import os
import stat
from datetime import datetime, timezone
from typing import Iterator

from common.logging_config import get_logger
from common.types import FileRecord

logger = get_logger(__name__)

FILE_ATTRIBUTE_SYSTEM = getattr(stat, 'FILE_ATTRIBUTE_SYSTEM', 0x4)


def _utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _is_system_entry(st: os.stat_result) -> bool:
    return bool(getattr(st, 'st_file_attributes', 0) & FILE_ATTRIBUTE_SYSTEM)


def _log_walk_error(error: OSError) -> None:
    logger.warning(f"Skipping inaccessible entry [path={error.filename}]: {error.strerror}")


class FileEnumerator:
    """
    Restartable iterable of FileRecord under a root directory.

    Each iteration walks the tree again. Directories, zero-length files and
    system-attributed entries are excluded; entries that cannot be read are
    logged and skipped.
    """

    def __init__(self, root: str, token=None):
        self.root = os.path.abspath(root)
        self.token = token

    def __iter__(self) -> Iterator[FileRecord]:
        for directory, dirnames, filenames in os.walk(self.root, onerror=_log_walk_error):
            if self.token is not None:
                self.token.raise_if_cancelled()
            dirnames.sort()
            for name in sorted(filenames):
                full_path = os.path.join(directory, name)
                try:
                    st = os.stat(full_path)
                except OSError as e:
                    _log_walk_error(e)
                    continue

                if not stat.S_ISREG(st.st_mode) or st.st_size == 0 or _is_system_entry(st):
                    continue

                created = getattr(st, 'st_birthtime', st.st_ctime)
                yield FileRecord(
                    full_path=full_path,
                    length=st.st_size,
                    created_at=_utc(created),
                    modified_at=_utc(st.st_mtime),
                    accessed_at=_utc(st.st_atime),
                )
