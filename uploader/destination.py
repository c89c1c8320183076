"""Resolution of a user destination path into a remote locator factory."""

import asyncio
from dataclasses import dataclass
from typing import Optional

from common.constants import LOOKUP_LIMIT, OWN_ROOT_LOCATOR
from common.logging_config import get_logger
from common.types import RemoteAddress
from uploader import path_codec
from uploader.exceptions import AmbiguousDestinationError, UploadError
from uploader.graph_client import LookupScope
from uploader.schemas import DriveItem

logger = get_logger(__name__)

_SEPARATORS = ('/', '\\')


@dataclass(frozen=True)
class RemoteLocatorFactory:
    """
    Maps a relative child path to the remote address it uploads to.

    Attributes:
        root: Locator of the resolved root item
        prefix: Fixed path prepended to every child path (may be empty)
    """
    root: str
    prefix: Optional[str] = None

    def __call__(self, relative_path: str) -> RemoteAddress:
        return RemoteAddress(root=self.root, path=path_codec.join(self.prefix, relative_path))


def split_first_segment(path: str) -> tuple[str, Optional[str]]:
    """
    Split a path on its first separator.

    Returns:
        Tuple of (first_segment, rest); rest is None when there is no separator
    """
    indexes = [path.find(sep) for sep in _SEPARATORS if sep in path]
    if not indexes:
        return path, None
    index = min(indexes)
    return path[:index], path[index + 1:]


def _item_root(item: DriveItem) -> str:
    """Locator for the item a shared or root match actually points to."""
    if item.remote_item is not None:
        reference = item.remote_item.parent_reference
        if reference is None or not reference.drive_id:
            raise UploadError(f"Shared item '{item.name}' does not report its owning drive")
        return f"/drives/{reference.drive_id}/items/{item.remote_item.id}"

    reference = item.parent_reference
    if reference is not None and reference.drive_id:
        return f"/drives/{reference.drive_id}/items/{item.id}"
    return f"/me/drive/items/{item.id}"


class DestinationResolver:
    """Resolves a destination string against shared items and the caller's root."""

    def __init__(self, store):
        self.store = store

    async def resolve(self, destination: str) -> RemoteLocatorFactory:
        """
        Build the locator factory for a destination path.

        Args:
            destination: User-supplied destination (e.g. 'Shared Folder/backups')

        Returns:
            RemoteLocatorFactory rooted at the single matching shared or root
            item, or at the caller's own root when nothing matches

        Raises:
            AmbiguousDestinationError: If more than one candidate matches
        """
        first_segment, rest = split_first_segment(destination)

        shared, own = await asyncio.gather(
            self.store.lookup_by_name(LookupScope.SHARED_WITH_ME, first_segment, LOOKUP_LIMIT),
            self.store.lookup_by_name(LookupScope.ROOT_CHILDREN, first_segment, LOOKUP_LIMIT),
        )

        matches = list(shared) + list(own)
        if len(matches) > 1:
            logger.error(f"Ambiguous destination [first_segment={first_segment}, matches={len(matches)}]")
            raise AmbiguousDestinationError(first_segment)

        if matches:
            root = _item_root(matches[0])
            logger.info(f"Destination resolved to mounted item [root={root}, prefix={rest}]")
            return RemoteLocatorFactory(root=root, prefix=rest)

        logger.info(f"Destination resolved under own root [prefix={destination}]")
        return RemoteLocatorFactory(root=OWN_ROOT_LOCATOR, prefix=destination)
