"""Command handler for the upload CLI."""

import asyncio
import os
import signal
import sys
from typing import Optional

from cli.config import Config
from cli.constants import EXIT_CANCELLED, EXIT_FAILED, EXIT_OK, EXIT_USAGE
from cli.models import UploadCommand
from cli.renderer import ProgressRenderer, print_summary
from common.logging_config import get_logger
from uploader.auth_provider import MsalAuthProvider
from uploader.credentials import CredentialLease
from uploader.exceptions import AmbiguousDestinationError, OperationCancelled, UploadError
from uploader.graph_client import GraphStoreClient
from uploader.orchestrator import UploadOrchestrator
from uploader.progress import ProgressTree
from uploader.scheduler import CancellationToken

logger = get_logger(__name__)


def _install_signal_handlers(token: CancellationToken) -> None:
    """Turn SIGINT/SIGTERM into a cooperative cancellation of the run."""
    if sys.platform == 'win32':
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")


def _build_store(config: Config, lease: CredentialLease) -> GraphStoreClient:
    retry = config.get_retry_config()
    return GraphStoreClient(
        base_url=config.get_base_url(),
        timeout=config.get_timeout(),
        max_retries=retry['max_retries'],
        retry_backoff_multiplier=retry['retry_backoff_multiplier'],
        chunk_size=config.get_chunk_size(),
        authenticate=lease.attach,
    )


async def handle_upload(
    cmd: UploadCommand,
    config: Config,
    provider=None,
    store=None,
    renderer: Optional[ProgressRenderer] = None,
    token: Optional[CancellationToken] = None,
) -> int:
    """
    Handle the upload command.

    Args:
        cmd: Parsed UploadCommand
        config: Loaded configuration
        provider: Optional authentication provider (dependency injection for testing)
        store: Optional remote store client (dependency injection for testing)
        renderer: Optional progress renderer
        token: Optional cancellation token; signal handlers are installed when omitted

    Returns:
        Process exit code
    """
    if not os.path.isdir(cmd.source):
        print(f"Error: source folder not found: {cmd.source}", file=sys.stderr)
        return EXIT_USAGE

    if token is None:
        token = CancellationToken()
        _install_signal_handlers(token)

    auth = config.get_auth_config()
    if provider is None:
        provider = MsalAuthProvider(auth['client_id'], auth['authority'], auth['scopes'])
    lease = CredentialLease(provider, safety_margin=auth['refresh_margin_seconds'])
    if store is None:
        store = _build_store(config, lease)

    renderer = renderer or ProgressRenderer()
    orchestrator = UploadOrchestrator(
        store,
        ProgressTree(renderer.push),
        concurrency=cmd.concurrency or config.get_concurrency(),
        fail_fast=not cmd.keep_going,
    )

    logger.info(f"Upload starting [source={cmd.source}, destination={cmd.destination}]")
    renderer.start()
    try:
        summary = await orchestrator.run(cmd.source, cmd.destination, token)
    except AmbiguousDestinationError as e:
        print(f"Error: {e} Please use a more specific destination.", file=sys.stderr)
        return EXIT_FAILED
    except OperationCancelled:
        print("Upload cancelled.", file=sys.stderr)
        return EXIT_CANCELLED
    except UploadError as e:
        logger.error(f"Upload failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        await renderer.stop()
        await lease.dispose()
        await store.close()

    print_summary(summary)
    if summary.was_cancelled:
        return EXIT_CANCELLED
    return EXIT_OK if summary.succeeded else EXIT_FAILED
