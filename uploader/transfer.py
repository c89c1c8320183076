"""Resumable chunked transfer of one file into a remote upload session."""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, BinaryIO, Optional

from common.constants import CONFLICT_POLICY_FAIL, MAX_SESSION_ATTEMPTS
from common.logging_config import get_logger
from common.types import ByteRange, FileRecord, RemoteAddress, UploadSessionHandle
from uploader.exceptions import (
    ItemConflictError,
    ResumabilityExhaustedError,
    TransientProviderError,
    UploadError,
)
from uploader.progress import ProgressNode
from uploader.scheduler import CancellationToken
from uploader.schemas import FileSystemInfo

logger = get_logger(__name__)

SKIPPED_ANNOTATION = "skipped: already exists"


class OutcomeKind(Enum):
    """Tagged result of a provider operation."""

    SUCCESS = auto()
    SKIPPED = auto()
    TRANSIENT_FAULT = auto()
    FATAL = auto()


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Any = None) -> 'Outcome':
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def skipped(cls, error: Optional[BaseException] = None) -> 'Outcome':
        return cls(OutcomeKind.SKIPPED, error=error)

    @classmethod
    def transient(cls, error: BaseException) -> 'Outcome':
        return cls(OutcomeKind.TRANSIENT_FAULT, error=error)

    @classmethod
    def fatal(cls, error: BaseException) -> 'Outcome':
        return cls(OutcomeKind.FATAL, error=error)


class TransferResult(Enum):
    """Terminal state of a file transfer that did not fail."""

    UPLOADED = auto()
    SKIPPED = auto()


def _classify(error: Exception) -> Outcome:
    if isinstance(error, ItemConflictError):
        return Outcome.skipped(error)
    if isinstance(error, TransientProviderError):
        return Outcome.transient(error)
    return Outcome.fatal(error)


def file_system_info(record: FileRecord) -> FileSystemInfo:
    return FileSystemInfo(
        created_date_time=record.created_at,
        last_modified_date_time=record.modified_at,
        last_accessed_date_time=record.accessed_at,
    )


class ChunkedTransferSession:
    """
    Drives one file through the resumable upload protocol.

    Each attempt creates a session, submits chunks strictly in byte order,
    polls the session status between chunk batches and deletes the session
    if it does not reach success. Whole attempts are retried only for
    transient provider faults, up to `max_attempts`. A failed attempt's
    session is deleted before the next attempt starts, so at most one
    session per file is live at any time.
    """

    def __init__(
        self,
        store,
        address: RemoteAddress,
        record: FileRecord,
        node: ProgressNode,
        token: CancellationToken,
        max_attempts: int = MAX_SESSION_ATTEMPTS,
    ):
        self.store = store
        self.address = address
        self.record = record
        self.node = node
        self.token = token
        self.max_attempts = max_attempts
        self.attempts = 0
        self.length = record.length
        self._expected = record.length
        self._reported = 0

    async def run(self) -> TransferResult:
        """
        Transfer the file.

        Returns:
            TransferResult.UPLOADED or TransferResult.SKIPPED

        Raises:
            OperationCancelled: If the run was cancelled mid-transfer
            UploadError: If the file could not be uploaded
        """
        self.token.raise_if_cancelled()
        handle, length = await self._open()
        with handle:
            self.length = length
            if length > self._expected:
                self.node.add_to_total(length - self._expected)
                self._expected = length

            for attempt in range(1, self.max_attempts + 1):
                self.token.raise_if_cancelled()
                self.attempts = attempt
                outcome = await self._attempt(handle, length)

                if outcome.kind is OutcomeKind.SUCCESS:
                    logger.info(f"Uploaded [path={self.address.path}, attempts={attempt}]")
                    return TransferResult.UPLOADED

                if outcome.kind is OutcomeKind.SKIPPED:
                    logger.info(f"Skipped existing item [path={self.address.path}]")
                    self.node.complete(SKIPPED_ANNOTATION)
                    return TransferResult.SKIPPED

                if outcome.kind is OutcomeKind.TRANSIENT_FAULT and attempt < self.max_attempts:
                    logger.warning(
                        f"Transient provider fault (attempt {attempt}/{self.max_attempts}), "
                        f"restarting session [path={self.address.path}]: {outcome.error}"
                    )
                    continue

                logger.error(
                    f"Upload failed [path={self.address.path}, attempt={attempt}]: {outcome.error}"
                )
                raise outcome.error

        raise UploadError(f"Upload of '{self.address.path}' made no attempts")

    async def _open(self) -> tuple[BinaryIO, int]:
        def open_file() -> tuple[BinaryIO, int]:
            handle = open(self.record.full_path, 'rb')
            return handle, os.fstat(handle.fileno()).st_size

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, open_file)

    async def _create_session(self) -> Outcome:
        try:
            session = await self.store.create_upload_session(
                self.address,
                file_system_info(self.record),
                CONFLICT_POLICY_FAIL,
            )
        except UploadError as e:
            return _classify(e)
        return Outcome.success(session)

    async def _submit(self, session: UploadSessionHandle, chunk: ByteRange, data: bytes, length: int) -> Outcome:
        try:
            result = await self.store.submit_chunk(session, chunk, data, length)
        except UploadError as e:
            return _classify(e)
        return Outcome.success(result.succeeded)

    async def _attempt(self, handle: BinaryIO, length: int) -> Outcome:
        created = await self._create_session()
        if created.kind is not OutcomeKind.SUCCESS:
            return created

        session: UploadSessionHandle = created.value
        finished = False
        try:
            outcome = await self._drive(session, handle, length)
            finished = outcome.kind is OutcomeKind.SUCCESS
            return outcome
        finally:
            if not finished:
                await self._discard(session)

    async def _drive(self, session: UploadSessionHandle, handle: BinaryIO, length: int) -> Outcome:
        while True:
            chunks = self.store.list_pending_chunks(session, length)
            if not chunks:
                return Outcome.fatal(ResumabilityExhaustedError(
                    f"Upload session for '{self.address.path}' reports no pending ranges but did not complete"
                ))
            self._account_for(chunks)

            for chunk in chunks:
                self.token.raise_if_cancelled()
                data = await self._read(handle, chunk)
                outcome = await self._submit(session, chunk, data, length)
                if outcome.kind is not OutcomeKind.SUCCESS:
                    return outcome
                self._reported += chunk.length
                self.node.advance(None, chunk.length)
                if outcome.value:
                    return Outcome.success()

            try:
                await self.store.refresh_session_status(session)
            except UploadError as e:
                return _classify(e)

    def _account_for(self, chunks) -> None:
        """Revise the expected size upward when the server asks for more bytes than estimated."""
        pending = sum(chunk.length for chunk in chunks)
        shortfall = self._reported + pending - self._expected
        if shortfall > 0:
            logger.debug(f"Growing expected size by {shortfall} bytes [path={self.address.path}]")
            self.node.add_to_total(shortfall)
            self._expected += shortfall

    async def _read(self, handle: BinaryIO, chunk: ByteRange) -> bytes:
        def read() -> bytes:
            handle.seek(chunk.start)
            return handle.read(chunk.length)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, read)

    async def _discard(self, session: UploadSessionHandle) -> None:
        """Best-effort delete of an unfinished session."""
        try:
            await self.store.delete_session(session)
            logger.debug(f"Deleted unfinished upload session [path={self.address.path}]")
        except UploadError as e:
            logger.warning(f"Failed to delete upload session [path={self.address.path}]: {e}")
