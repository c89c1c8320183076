"""Composition of resolution, enumeration, scheduling and transfer for one run."""

import asyncio
import os
from dataclasses import dataclass
from functools import partial
from typing import List, Optional

from common.constants import DEFAULT_CONCURRENCY, MAX_SESSION_ATTEMPTS
from common.logging_config import get_logger
from common.types import FileRecord
from uploader.destination import DestinationResolver, RemoteLocatorFactory
from uploader.enumeration import FileEnumerator
from uploader.exceptions import OperationCancelled
from uploader.progress import ProgressNode, ProgressTree
from uploader.scheduler import BoundedWorkScheduler, CancellationToken
from uploader.transfer import ChunkedTransferSession, TransferResult

logger = get_logger(__name__)


@dataclass
class UploadSummary:
    """Outcome of one upload run."""
    total_files: int = 0
    total_bytes: int = 0
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0
    bytes_uploaded: int = 0
    error: Optional[BaseException] = None
    was_cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        """True when every file was uploaded or skipped as already present."""
        return self.error is None and not self.was_cancelled and self.failed == 0


class UploadOrchestrator:
    """Uploads a local directory tree to a remote destination."""

    def __init__(
        self,
        store,
        progress: ProgressTree,
        concurrency: int = DEFAULT_CONCURRENCY,
        fail_fast: bool = True,
        max_attempts: int = MAX_SESSION_ATTEMPTS,
    ):
        """
        Args:
            store: Remote store client
            progress: Progress tree the run reports into
            concurrency: Maximum number of files transferred at once
            fail_fast: Stop starting new files after the first failure
            max_attempts: Whole-session attempts per file on transient faults
        """
        self.store = store
        self.progress = progress
        self.concurrency = concurrency
        self.fail_fast = fail_fast
        self.max_attempts = max_attempts

    async def _enumerate(self, source: str, token: CancellationToken) -> List[FileRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, list, FileEnumerator(source, token))

    async def run(self, source: str, destination: str, token: CancellationToken) -> UploadSummary:
        """
        Upload every file under `source` to `destination`.

        Resolution and enumeration run concurrently; both must finish before
        any transfer starts. Per-file failures are recorded in the summary.

        Raises:
            AmbiguousDestinationError: If the destination cannot be resolved uniquely
            OperationCancelled: If cancelled before any transfer was scheduled
        """
        source = os.path.abspath(source)
        factory, files = await asyncio.gather(
            DestinationResolver(self.store).resolve(destination),
            self._enumerate(source, token),
        )
        token.raise_if_cancelled()

        summary = UploadSummary(
            total_files=len(files),
            total_bytes=sum(record.length for record in files),
        )
        logger.info(f"Scheduling {summary.total_files} file(s) [bytes={summary.total_bytes}, concurrency={self.concurrency}]")

        root = self.progress.start(f"Uploading to {destination}", summary.total_bytes)
        units = [
            partial(self._upload_file, factory, source, record, root, token, summary)
            for record in files
        ]

        try:
            await BoundedWorkScheduler(fail_fast=self.fail_fast).run(units, self.concurrency, token)
        except OperationCancelled:
            summary.was_cancelled = True
        except Exception as e:
            summary.error = e
        finally:
            root.complete()

        return summary

    async def _upload_file(
        self,
        factory: RemoteLocatorFactory,
        source: str,
        record: FileRecord,
        root: ProgressNode,
        token: CancellationToken,
        summary: UploadSummary,
    ) -> None:
        relative_path = os.path.relpath(record.full_path, source)
        node = root.create_child(record.length, label=relative_path)
        annotation = None
        try:
            transfer = ChunkedTransferSession(
                self.store,
                factory(relative_path),
                record,
                node,
                token,
                max_attempts=self.max_attempts,
            )
            result = await transfer.run()
            if result is TransferResult.SKIPPED:
                summary.skipped += 1
            else:
                summary.uploaded += 1
                summary.bytes_uploaded += transfer.length
        except OperationCancelled:
            summary.cancelled += 1
            annotation = "cancelled"
            raise
        except Exception:
            summary.failed += 1
            annotation = "failed"
            raise
        finally:
            node.complete(annotation)
