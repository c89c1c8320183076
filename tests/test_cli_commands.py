"""Unit tests for the CLI upload handler and rendering."""

import io
from unittest.mock import Mock

import pytest

from cli.commands import handle_upload
from cli.constants import EXIT_CANCELLED, EXIT_FAILED, EXIT_OK, EXIT_USAGE
from cli.models import UploadCommand
from cli.renderer import ProgressRenderer
from cli.utils import format_entry, format_file_size, format_snapshot
from common.types import ProgressEntry, ProgressSnapshot
from uploader.exceptions import StoreRequestError
from uploader.scheduler import CancellationToken
from uploader.schemas import DriveItem


@pytest.fixture
def summary_printer(monkeypatch):
    printer = Mock()
    monkeypatch.setattr('cli.commands.print_summary', printer)
    return printer


async def run_upload(cmd, config, fake_auth, fake_store, token=None):
    return await handle_upload(
        cmd,
        config,
        provider=fake_auth,
        store=fake_store,
        renderer=ProgressRenderer(stream=io.StringIO()),
        token=token or CancellationToken(),
    )


@pytest.mark.asyncio
async def test_handle_upload_success(source_tree, temp_config, fake_auth, fake_store, summary_printer):
    cmd = UploadCommand(source=str(source_tree), destination='Backups')

    result = await run_upload(cmd, temp_config, fake_auth, fake_store)

    assert result == EXIT_OK
    summary = summary_printer.call_args.args[0]
    assert summary.uploaded == 2
    assert fake_store.closed


@pytest.mark.asyncio
async def test_handle_upload_missing_source(tmp_path, temp_config, fake_auth, fake_store, summary_printer):
    cmd = UploadCommand(source=str(tmp_path / 'missing'), destination='Backups')

    result = await run_upload(cmd, temp_config, fake_auth, fake_store)

    assert result == EXIT_USAGE
    assert fake_store.created == []
    summary_printer.assert_not_called()


@pytest.mark.asyncio
async def test_handle_upload_ambiguous_destination(source_tree, temp_config, fake_auth, fake_store,
                                                   summary_printer, capsys):
    item = DriveItem.model_validate({'id': 'x', 'name': 'Documents', 'parentReference': {'driveId': 'd'}})
    fake_store.root_children['Documents'] = [item, item]
    cmd = UploadCommand(source=str(source_tree), destination='Documents')

    result = await run_upload(cmd, temp_config, fake_auth, fake_store)

    assert result == EXIT_FAILED
    assert "more specific destination" in capsys.readouterr().err
    assert fake_store.closed


@pytest.mark.asyncio
async def test_handle_upload_failure_exit_code(source_tree, temp_config, fake_auth, fake_store, summary_printer):
    fake_store.submit_fault = lambda path, attempt, chunk: StoreRequestError("Access forbidden", status_code=403)
    cmd = UploadCommand(source=str(source_tree), destination='Backups', keep_going=True)

    result = await run_upload(cmd, temp_config, fake_auth, fake_store)

    assert result == EXIT_FAILED
    assert summary_printer.call_args.args[0].failed == 2


@pytest.mark.asyncio
async def test_handle_upload_cancelled(source_tree, temp_config, fake_auth, fake_store, summary_printer):
    token = CancellationToken()
    token.cancel()
    cmd = UploadCommand(source=str(source_tree), destination='Backups')

    result = await run_upload(cmd, temp_config, fake_auth, fake_store, token)

    assert result == EXIT_CANCELLED
    assert fake_store.created == []


def test_format_file_size():
    assert format_file_size(512) == "512 B"
    assert format_file_size(1536) == "1.50 KiB"
    assert format_file_size(5 * 1024 * 1024) == "5.00 MiB"


def test_format_entry_with_annotation():
    entry = ProgressEntry(label='a.txt', completed=5, total=5, annotation='skipped: already exists')

    assert format_entry(entry, color=False) == "a.txt: 5 B / 5 B (100.0%) [skipped: already exists]"


def test_format_snapshot_shows_root_and_leaf():
    snapshot = ProgressSnapshot(entries=(
        ProgressEntry(label='Uploading to Backups', completed=0, total=10),
        ProgressEntry(label='a.txt', completed=0, total=4),
    ))

    line = format_snapshot(snapshot, color=False)

    assert line.startswith("Uploading to Backups: 0 B / 10 B (0.0%)")
    assert line.endswith("a.txt: 0 B / 4 B (0.0%)")


def test_renderer_coalesces_pending_snapshots():
    stream = io.StringIO()
    renderer = ProgressRenderer(stream=stream)
    entry = ProgressEntry(label='root', completed=1, total=2)

    renderer.push(ProgressSnapshot(entries=(entry,)))
    renderer.push(ProgressSnapshot(entries=(entry,)))

    assert renderer.render_pending() is True
    assert renderer.render_pending() is False
    assert renderer.rendered == 1
    assert stream.getvalue() == ''
