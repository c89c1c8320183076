"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

STYLE = Style.from_dict(
    {
        "ok": "#44bb44 bold",
        "skipped": "#ccaa00",
        "error": "#F45935 bold",
    }
)

GREEN = "\033[32m"
RESET = "\033[0m"
CLEAR_LINE = "\r\033[K"

RENDER_INTERVAL_SECONDS = 0.1

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130

HELP_TEXT = """Usage: onedrive-upload [options] <source> <destination>

Uploads all files in the local <source> folder to the OneDrive folder <destination>.
Files that already exist at the destination are skipped.

Arguments:
  source                 Path to the local folder
  destination            Path to the OneDrive destination folder. If its first
                         segment names a folder shared with you, files go there.

Options:
  --concurrency N        Number of files uploaded at once (default from config, 10)
  --keep-going           Keep uploading other files after a file fails
  --config PATH          Config file (default ~/.onedrive-upload/config.json)
  --debug                Enable debug logging
  -h, --help             Show this help

Examples:
  onedrive-upload ./photos "Pictures/2024"
  onedrive-upload --concurrency 4 D:\\Backups "Team Share/backups"
"""
