"""Project-wide constants (chunk sizing, retry bounds, Graph defaults)."""

CHUNK_UNIT_BYTES: int = 320 * 1024  # Graph requires chunk sizes in multiples of 320 KiB
CHUNK_SIZE_BYTES: int = 16 * CHUNK_UNIT_BYTES  # 5 MiB default chunk size

MAX_SESSION_ATTEMPTS: int = 5
DEFAULT_CONCURRENCY: int = 10
LOOKUP_LIMIT: int = 2

CONFLICT_POLICY_FAIL: str = "fail"

REFRESH_SAFETY_MARGIN_SECONDS: float = 4.0
REFRESH_RETRY_DELAY_SECONDS: float = 5.0

GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
DEFAULT_AUTHORITY: str = "https://login.microsoftonline.com/common"
DEFAULT_CLIENT_ID: str = "f398db46-8115-42ae-a5e3-09e3b691d1cf"
DEFAULT_SCOPES: tuple[str, ...] = ("Files.ReadWrite.All",)

OWN_ROOT_LOCATOR: str = "/me/drive/root"
