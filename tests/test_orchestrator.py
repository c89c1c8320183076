"""Tests for the end-to-end upload orchestration."""

import pytest

from uploader.exceptions import AmbiguousDestinationError, OperationCancelled, StoreRequestError
from uploader.orchestrator import UploadOrchestrator
from uploader.progress import ProgressTree
from uploader.scheduler import CancellationToken
from uploader.schemas import DriveItem


def folder(name, item_id):
    return DriveItem.model_validate({
        'id': item_id,
        'name': name,
        'parentReference': {'driveId': 'own-drive'},
    })


@pytest.mark.asyncio
async def test_uploads_every_non_empty_file(fake_store, source_tree):
    snapshots = []
    progress = ProgressTree(snapshots.append)

    summary = await UploadOrchestrator(fake_store, progress).run(
        str(source_tree), "Backups", CancellationToken()
    )

    assert summary.succeeded
    assert summary.total_files == 2
    assert summary.total_bytes == 14
    assert summary.uploaded == 2
    assert summary.bytes_uploaded == 14
    assert fake_store.uploaded == {
        'Backups/a.txt': b'hello',
        'Backups/sub/b.txt': b'123456789',
    }
    assert progress.root.finished
    assert progress.root.completed == progress.root.total == 14
    assert snapshots[-1].root.completed == 14


@pytest.mark.asyncio
async def test_every_file_gets_its_own_address(fake_store, source_tree):
    await UploadOrchestrator(fake_store, ProgressTree()).run(
        str(source_tree), "Backups", CancellationToken()
    )

    addresses = [address for address, _, _ in fake_store.created]
    assert len(addresses) == len(set(addresses)) == 2


@pytest.mark.asyncio
async def test_uploads_into_resolved_root_item(fake_store, source_tree):
    fake_store.root_children['Documents'] = [folder('Documents', 'docs-id')]

    await UploadOrchestrator(fake_store, ProgressTree()).run(
        str(source_tree), "Documents/2024", CancellationToken()
    )

    roots = {address.root for address, _, _ in fake_store.created}
    assert roots == {'/drives/own-drive/items/docs-id'}
    assert set(fake_store.uploaded) == {'2024/a.txt', '2024/sub/b.txt'}


@pytest.mark.asyncio
async def test_existing_items_are_skipped(fake_store, source_tree):
    fake_store.existing.add('Backups/a.txt')

    summary = await UploadOrchestrator(fake_store, ProgressTree()).run(
        str(source_tree), "Backups", CancellationToken()
    )

    assert summary.succeeded
    assert summary.skipped == 1
    assert summary.uploaded == 1


@pytest.mark.asyncio
async def test_fail_fast_stops_remaining_files(fake_store, source_tree):
    def fault(path, attempt, chunk):
        return StoreRequestError("Access forbidden", status_code=403) if path == 'Backups/a.txt' else None

    fake_store.submit_fault = fault
    progress = ProgressTree()

    summary = await UploadOrchestrator(fake_store, progress, concurrency=1).run(
        str(source_tree), "Backups", CancellationToken()
    )

    assert not summary.succeeded
    assert isinstance(summary.error, StoreRequestError)
    assert summary.failed == 1
    assert summary.uploaded == 0
    assert 'Backups/sub/b.txt' not in fake_store.uploaded
    assert progress.root.finished


@pytest.mark.asyncio
async def test_keep_going_uploads_remaining_files(fake_store, source_tree):
    def fault(path, attempt, chunk):
        return StoreRequestError("Access forbidden", status_code=403) if path == 'Backups/a.txt' else None

    fake_store.submit_fault = fault

    summary = await UploadOrchestrator(fake_store, ProgressTree(), concurrency=1, fail_fast=False).run(
        str(source_tree), "Backups", CancellationToken()
    )

    assert not summary.succeeded
    assert summary.failed == 1
    assert summary.uploaded == 1
    assert fake_store.uploaded == {'Backups/sub/b.txt': b'123456789'}


@pytest.mark.asyncio
async def test_ambiguous_destination_uploads_nothing(fake_store, source_tree):
    fake_store.root_children['Documents'] = [folder('Documents', 'one'), folder('Documents', 'two')]

    with pytest.raises(AmbiguousDestinationError):
        await UploadOrchestrator(fake_store, ProgressTree()).run(
            str(source_tree), "Documents", CancellationToken()
        )

    assert fake_store.created == []


@pytest.mark.asyncio
async def test_cancelled_before_scheduling(fake_store, source_tree):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        await UploadOrchestrator(fake_store, ProgressTree()).run(str(source_tree), "Backups", token)

    assert fake_store.created == []


@pytest.mark.asyncio
async def test_cancelled_mid_run_is_reported(fake_store, source_tree):
    token = CancellationToken()

    def fault(path, attempt, chunk):
        token.cancel("interrupted")
        return None

    fake_store.submit_fault = fault

    summary = await UploadOrchestrator(fake_store, ProgressTree(), concurrency=1).run(
        str(source_tree), "Backups", token
    )

    assert summary.was_cancelled
    assert not summary.succeeded
    assert summary.cancelled == 1
    assert len(fake_store.deleted) == 1


class GrowingFileOrchestrator(UploadOrchestrator):
    """Appends to the first file after enumeration, before it is uploaded."""

    async def _enumerate(self, source, token):
        files = await super()._enumerate(source, token)
        with open(files[0].full_path, 'ab') as f:
            f.write(b'!!')
        return files


@pytest.mark.asyncio
async def test_summary_counts_bytes_actually_uploaded(fake_store, source_tree):
    progress = ProgressTree()

    summary = await GrowingFileOrchestrator(fake_store, progress).run(
        str(source_tree), "Backups", CancellationToken()
    )

    assert fake_store.uploaded['Backups/a.txt'] == b'hello!!'
    assert summary.total_bytes == 14
    assert summary.bytes_uploaded == 16
    assert progress.root.completed == progress.root.total == 16
