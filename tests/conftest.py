"""Shared pytest fixtures for all tests."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from cli.config import Config
from common.types import ByteRange, ChunkResult, Credential, FileRecord, UploadSessionHandle
from uploader.exceptions import ItemConflictError
from uploader.graph_client import GraphStoreClient, LookupScope

ChunkFault = Callable[[str, int, ByteRange], Optional[Exception]]


class FakeStore:
    """
    In-memory stand-in for GraphStoreClient.

    Items land in `uploaded` keyed by escaped remote path. Faults are injected
    through `create_fault(path, attempt)` and `submit_fault(path, attempt, chunk)`
    callables returning an exception to raise (or None).
    """

    list_pending_chunks = GraphStoreClient.list_pending_chunks

    def __init__(self, chunk_size: int = 4):
        self.chunk_size = chunk_size
        self.shared: dict = {}
        self.root_children: dict = {}
        self.existing: set = set()
        self.initial_ranges: Optional[list] = None
        self.create_fault: Optional[Callable[[str, int], Optional[Exception]]] = None
        self.submit_fault: Optional[ChunkFault] = None

        self.lookups: list = []
        self.created: list = []
        self.submitted: list = []
        self.deleted: list = []
        self.status_checks = 0
        self.uploaded: dict = {}
        self.closed = False
        self._sessions: dict = {}
        self._attempts: dict = {}

    async def lookup_by_name(self, scope, name, limit):
        self.lookups.append((scope, name, limit))
        source = self.shared if scope is LookupScope.SHARED_WITH_ME else self.root_children
        return list(source.get(name, []))[:limit]

    async def create_upload_session(self, address, metadata, conflict_policy):
        attempt = self._attempts.get(address.path, 0) + 1
        self._attempts[address.path] = attempt
        self.created.append((address, metadata, conflict_policy))

        if address.path in self.existing:
            raise ItemConflictError("Conflict", status_code=409, code='nameAlreadyExists')
        if self.create_fault is not None:
            fault = self.create_fault(address.path, attempt)
            if fault is not None:
                raise fault

        url = f"https://upload.test/session/{len(self.created)}"
        ranges = [ByteRange(0)] if self.initial_ranges is None else list(self.initial_ranges)
        self._sessions[url] = {'path': address.path, 'attempt': attempt, 'data': bytearray()}
        return UploadSessionHandle(upload_url=url, next_expected_ranges=ranges)

    async def submit_chunk(self, session, chunk, data, total_length):
        state = self._sessions[session.upload_url]
        self.submitted.append((state['path'], state['attempt'], chunk))
        if self.submit_fault is not None:
            fault = self.submit_fault(state['path'], state['attempt'], chunk)
            if fault is not None:
                raise fault

        state['data'].extend(data)
        if chunk.end >= total_length - 1:
            self.uploaded[state['path']] = bytes(state['data'])
            return ChunkResult(succeeded=True)
        session.next_expected_ranges = [ByteRange(chunk.end + 1)]
        return ChunkResult(succeeded=False)

    async def refresh_session_status(self, session):
        self.status_checks += 1

    async def delete_session(self, session):
        self.deleted.append(self._sessions[session.upload_url]['path'])

    async def close(self):
        self.closed = True


class FakeAuthProvider:
    """Issues numbered tokens; gates and errors can be set per flow."""

    def __init__(self, lifetime: float = 3600.0):
        self.lifetime = lifetime
        self.issued = 0
        self.interactive_calls = 0
        self.silent_calls = 0
        self.interactive_gate = None
        self.silent_gate = None
        self.silent_started = None
        self.interactive_error: Optional[Exception] = None
        self.silent_error: Optional[Exception] = None
        self.silent_returns_none = False

    def _issue(self) -> Credential:
        self.issued += 1
        return Credential(
            access_token=f"token-{self.issued}",
            expires_on=datetime.now(timezone.utc) + timedelta(seconds=self.lifetime),
            account={'home_account_id': 'user.tenant'},
        )

    async def acquire_interactively(self) -> Credential:
        self.interactive_calls += 1
        if self.interactive_gate is not None:
            await self.interactive_gate.wait()
        if self.interactive_error is not None:
            raise self.interactive_error
        return self._issue()

    async def acquire_silently(self, account) -> Optional[Credential]:
        self.silent_calls += 1
        if self.silent_started is not None:
            self.silent_started.set()
        if self.silent_gate is not None:
            await self.silent_gate.wait()
        if self.silent_error is not None:
            raise self.silent_error
        if self.silent_returns_none:
            return None
        return self._issue()


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .onedrive-upload directory
    """
    config_dir = tmp_path / '.onedrive-upload'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def fake_store():
    """In-memory remote store with a 4-byte chunk size."""
    return FakeStore(chunk_size=4)


@pytest.fixture
def fake_auth():
    """Authentication provider issuing long-lived tokens."""
    return FakeAuthProvider()


@pytest.fixture
def short_lived_auth():
    """Authentication provider whose tokens expire after 50 ms."""
    return FakeAuthProvider(lifetime=0.05)


@pytest.fixture
def make_record(tmp_path):
    """
    Factory writing a local file and returning its FileRecord.

    Returns:
        Callable (name, content) -> FileRecord
    """
    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    def factory(name: str, content: bytes) -> FileRecord:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return FileRecord(
            full_path=str(path),
            length=len(content),
            created_at=stamp,
            modified_at=stamp + timedelta(hours=1),
            accessed_at=stamp + timedelta(hours=2),
        )

    return factory


@pytest.fixture
def source_tree(tmp_path):
    """
    Local folder with two uploadable files and one empty file.

    Returns:
        Path to the folder (a.txt: 5 bytes, sub/b.txt: 9 bytes, empty.txt: 0 bytes)
    """
    root = tmp_path / 'src'
    (root / 'sub').mkdir(parents=True)
    (root / 'a.txt').write_bytes(b'hello')
    (root / 'sub' / 'b.txt').write_bytes(b'123456789')
    (root / 'empty.txt').write_bytes(b'')
    return root
