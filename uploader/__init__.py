"""Upload orchestration engine: path resolution, credentials, chunked transfer and scheduling."""

from uploader.credentials import CredentialLease
from uploader.destination import DestinationResolver, RemoteLocatorFactory
from uploader.orchestrator import UploadOrchestrator, UploadSummary
from uploader.progress import ProgressNode, ProgressTree
from uploader.scheduler import BoundedWorkScheduler, CancellationToken
from uploader.transfer import ChunkedTransferSession, TransferResult

__all__ = [
    "BoundedWorkScheduler",
    "CancellationToken",
    "ChunkedTransferSession",
    "CredentialLease",
    "DestinationResolver",
    "ProgressNode",
    "ProgressTree",
    "RemoteLocatorFactory",
    "TransferResult",
    "UploadOrchestrator",
    "UploadSummary",
]
