"""HTTP client for the Graph drive API and resumable upload sessions."""

import asyncio
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
import httpx
from pydantic import ValidationError

from common.constants import CHUNK_SIZE_BYTES, GRAPH_BASE_URL
from common.logging_config import get_logger
from common.types import ByteRange, ChunkResult, RemoteAddress, UploadSessionHandle
from uploader.exceptions import (
    ItemConflictError,
    StoreRequestError,
    UploadSessionStateError,
)
from uploader.schemas import (
    DriveItem,
    DriveItemCollection,
    FileSystemInfo,
    ServiceErrorResponse,
    UploadSessionResponse,
)

logger = get_logger(__name__)

RequestHook = Callable[[httpx.Request], Awaitable[None]]


class LookupScope(Enum):
    """Collections searched when resolving the first destination segment."""

    SHARED_WITH_ME = '/me/drive/sharedWithMe'
    ROOT_CHILDREN = '/me/drive/root/children'


ERROR_MESSAGES = {
    'nameAlreadyExists': 'An item with this name already exists at the destination.',
    'itemNotFound': 'The destination item was not found.',
    'accessDenied': 'You do not have permission to write to this destination.',
    'quotaLimitReached': 'Storage quota exceeded on the destination drive.',
    'unauthenticated': 'Not authenticated. The access token was rejected.',
    'activityLimitReached': 'Request throttled by the service. Please try again later.',
    'invalidRange': 'The server rejected the uploaded byte range.',
}

STATUS_MESSAGES = {
    400: 'Bad request',
    401: 'Not authenticated',
    403: 'Access forbidden',
    404: 'Not found',
    409: 'Conflict',
    413: 'File too large',
    416: 'Requested range not satisfiable',
    429: 'Too many requests',
    500: 'Server error',
    503: 'Service unavailable',
    507: 'Insufficient storage',
}


def format_error(status_code: int, body: Any) -> tuple[str, str]:
    """
    Map an error response to a user-friendly message.

    Args:
        status_code: HTTP status code
        body: Decoded JSON body, or None

    Returns:
        Tuple of (message, error_code)
    """
    code = 'UNKNOWN'
    detail = ''
    if isinstance(body, dict):
        try:
            error = ServiceErrorResponse.model_validate(body).error
            code, detail = error.code, error.message
        except ValidationError:
            pass

    if code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code], code

    message = STATUS_MESSAGES.get(status_code, detail or 'Unknown error')
    return (f"{message} (Code: {code})" if code != 'UNKNOWN' else message), code


def _raise_for_status(status_code: int, body: Any, operation: str) -> None:
    if status_code < 400:
        return
    message, code = format_error(status_code, body)
    if status_code == 409:
        raise ItemConflictError(f"{operation}: {message}", status_code=status_code, code=code)
    raise StoreRequestError(f"{operation}: {message}", status_code=status_code, code=code)


def _parse_ranges(ranges: List[str]) -> List[ByteRange]:
    return sorted((ByteRange.parse(r) for r in ranges), key=lambda r: r.start)


class GraphStoreClient:
    """Async Graph client with retry logic, plus the upload-session data path."""

    def __init__(
        self,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = 30,
        max_retries: int = 3,
        retry_backoff_multiplier: float = 2,
        chunk_size: int = CHUNK_SIZE_BYTES,
        authenticate: Optional[RequestHook] = None,
    ):
        """
        Initialize the store client.

        Args:
            base_url: Graph API root
            timeout: Request timeout in seconds
            max_retries: Retries on 5xx and network errors for metadata calls
            retry_backoff_multiplier: Exponential backoff base in seconds
            chunk_size: Maximum bytes per chunk submission
            authenticate: Request hook that attaches the bearer credential
        """
        self.base_url = base_url.rstrip('/') + '/'
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.chunk_size = chunk_size
        hooks = {'request': [authenticate]} if authenticate else {}
        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            event_hooks=hooks,
        )
        self._transfer_http: Optional[aiohttp.ClientSession] = None
        logger.info(f"Initialized GraphStoreClient [base_url={self.base_url}]")

    def _ensure_transfer_http(self) -> aiohttp.ClientSession:
        """Upload URLs are pre-authenticated and must not carry the bearer header."""
        if self._transfer_http is None or self._transfer_http.closed:
            self._transfer_http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_read=self.timeout)
            )
        return self._transfer_http

    async def close(self) -> None:
        """Close both HTTP sessions."""
        await self.session.aclose()
        if self._transfer_http is not None:
            await self._transfer_http.close()
            self._transfer_http = None

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Make an API request, retrying on 5xx errors and network failures.

        Args:
            method: HTTP method
            endpoint: Path relative to the API root
            max_retries: Max retry attempts (uses client default if None)
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            StoreRequestError: If max retries exceeded or connection fails
        """
        max_retries = self.max_retries if max_retries is None else max_retries
        request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['client-request-id'] = request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={request_id}]")

        last_exception: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            try:
                response = await self.session.request(method, endpoint, **kwargs)

                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={request_id}]"
                )

                if response.status_code >= 500 and attempt < max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s [request_id={request_id}]"
                    )
                    await asyncio.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={request_id}]"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={request_id}]"
                )

        if isinstance(last_exception, httpx.TimeoutException):
            raise StoreRequestError("Request timed out. The service may be overloaded.") from last_exception
        raise StoreRequestError("Cannot connect to the remote store.") from last_exception

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def lookup_by_name(self, scope: LookupScope, name: str, limit: int) -> List[DriveItem]:
        """
        List items in a scope whose name equals `name`.

        Args:
            scope: Collection to search
            name: Exact item name
            limit: Maximum number of items to return

        Returns:
            Matching drive items (at most `limit`)
        """
        params = {
            '$filter': "name eq '" + name.replace("'", "''") + "'",
            '$top': str(limit),
        }
        response = await self._request_with_retry('GET', scope.value, params=params)
        body = self._json(response)
        _raise_for_status(response.status_code, body, f"Lookup of '{name}'")

        try:
            items = DriveItemCollection.model_validate(body or {}).value
        except ValidationError as e:
            raise StoreRequestError(f"Lookup of '{name}': malformed response") from e
        return items[:limit]

    async def create_upload_session(
        self,
        address: RemoteAddress,
        metadata: FileSystemInfo,
        conflict_policy: str
    ) -> UploadSessionHandle:
        """
        Create a resumable upload session at a path-addressed location.

        Raises:
            ItemConflictError: If an item already exists and the policy is 'fail'
            UploadSessionStateError: If the response carries no upload URL
            StoreRequestError: On any other failure
        """
        payload = {
            'item': {
                '@microsoft.graph.conflictBehavior': conflict_policy,
                'fileSystemInfo': metadata.model_dump(by_alias=True, mode='json'),
            }
        }
        # No request-level retry: a retried POST could leave a second live session.
        response = await self._request_with_retry(
            'POST', f"{address.url}/createUploadSession", max_retries=0, json=payload
        )
        body = self._json(response)
        _raise_for_status(response.status_code, body, f"Create upload session for '{address.path}'")

        session = UploadSessionResponse.model_validate(body or {})
        if not session.upload_url:
            raise UploadSessionStateError(f"Upload session for '{address.path}' was created without an upload URL")

        return UploadSessionHandle(
            upload_url=session.upload_url,
            next_expected_ranges=_parse_ranges(session.next_expected_ranges or ['0-']),
            expiration=session.expiration_date_time,
        )

    def list_pending_chunks(self, session: UploadSessionHandle, total_length: int) -> List[ByteRange]:
        """
        Split the session's outstanding ranges into chunk-sized ranges.

        Args:
            session: Upload session with its current expected ranges
            total_length: Length of the file being uploaded

        Returns:
            Chunk ranges in increasing byte order
        """
        chunks: List[ByteRange] = []
        last_byte = total_length - 1
        for expected in session.next_expected_ranges:
            end = last_byte if expected.end is None else min(expected.end, last_byte)
            start = expected.start
            while start <= end:
                stop = min(start + self.chunk_size - 1, end)
                chunks.append(ByteRange(start, stop))
                start = stop + 1
        return chunks

    def _interpret_chunk_response(
        self,
        session: UploadSessionHandle,
        status: int,
        body: Any
    ) -> ChunkResult:
        """Translate a chunk PUT response, updating the session's pending ranges."""
        if status in (200, 201):
            return ChunkResult(succeeded=True, item=body if isinstance(body, dict) else None)

        _raise_for_status(status, body, "Chunk upload")

        state = UploadSessionResponse.model_validate(body if isinstance(body, dict) else {})
        if state.next_expected_ranges is None:
            raise UploadSessionStateError("Accepted chunk response did not report the next expected ranges")
        session.next_expected_ranges = _parse_ranges(state.next_expected_ranges)
        return ChunkResult(succeeded=False)

    async def _send_to_upload_url(
        self,
        method: str,
        session: UploadSessionHandle,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> tuple[int, Any]:
        http = self._ensure_transfer_http()
        try:
            async with http.request(method, session.upload_url, data=data, headers=headers) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                return resp.status, body
        except asyncio.TimeoutError as e:
            raise StoreRequestError(f"{method} to upload session timed out") from e
        except aiohttp.ClientError as e:
            raise StoreRequestError(f"{method} to upload session failed: {e}") from e

    async def submit_chunk(
        self,
        session: UploadSessionHandle,
        chunk: ByteRange,
        data: bytes,
        total_length: int
    ) -> ChunkResult:
        """
        Upload one byte range of the file.

        Returns:
            ChunkResult with succeeded=True once the whole file is committed
        """
        headers = {
            'Content-Length': str(len(data)),
            'Content-Range': f"bytes {chunk.start}-{chunk.end}/{total_length}",
        }
        status, body = await self._send_to_upload_url('PUT', session, data=data, headers=headers)
        logger.debug(f"Chunk {chunk.start}-{chunk.end}/{total_length} status={status}")
        return self._interpret_chunk_response(session, status, body)

    async def refresh_session_status(self, session: UploadSessionHandle) -> None:
        """Reconcile the session's pending ranges with the server."""
        status, body = await self._send_to_upload_url('GET', session)
        _raise_for_status(status, body, "Upload session status")

        state = UploadSessionResponse.model_validate(body if isinstance(body, dict) else {})
        if state.next_expected_ranges is None:
            raise UploadSessionStateError("Upload session status did not report the next expected ranges")
        session.next_expected_ranges = _parse_ranges(state.next_expected_ranges)

    async def delete_session(self, session: UploadSessionHandle) -> None:
        """Cancel the session server-side and release its resources."""
        status, body = await self._send_to_upload_url('DELETE', session)
        if status != 404:
            _raise_for_status(status, body, "Delete upload session")
