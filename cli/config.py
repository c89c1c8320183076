"""Configuration management for the upload CLI."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from common.constants import (
    CHUNK_SIZE_BYTES,
    CHUNK_UNIT_BYTES,
    DEFAULT_AUTHORITY,
    DEFAULT_CLIENT_ID,
    DEFAULT_CONCURRENCY,
    DEFAULT_SCOPES,
    GRAPH_BASE_URL,
    REFRESH_SAFETY_MARGIN_SECONDS,
)
from common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.onedrive-upload' / 'config.json'


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "client_id": os.environ.get("ONEDRIVE_UPLOAD_CLIENT_ID", DEFAULT_CLIENT_ID),
        "authority": DEFAULT_AUTHORITY,
        "scopes": list(DEFAULT_SCOPES),
        "graph_base_url": GRAPH_BASE_URL,
        "concurrency": DEFAULT_CONCURRENCY,
        "chunk_size": CHUNK_SIZE_BYTES,
        "timeout": 30,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
        "refresh_margin_seconds": REFRESH_SAFETY_MARGIN_SECONDS,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.onedrive-upload/config.json)
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.onedrive-upload' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Config file unreadable, using defaults [path={self.config_path}]: {e}")
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError:
                    logger.warning(f"Could not back up config file [path={backup_path}]")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError:
                logger.debug(f"Could not write default config [path={self.config_path}]")
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config [path={self.config_path}]: {e}")

    def get_base_url(self) -> str:
        """
        Get Graph API base URL.

        Returns:
            Base URL string (e.g., "https://graph.microsoft.com/v1.0")
        """
        return self.data.get('graph_base_url', GRAPH_BASE_URL)

    def get_timeout(self) -> int:
        """
        Get request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', 30)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }

    def get_concurrency(self) -> int:
        """Maximum number of files uploaded at once (at least 1)."""
        return max(1, int(self.data.get('concurrency', DEFAULT_CONCURRENCY)))

    def get_chunk_size(self) -> int:
        """
        Get chunk size rounded down to a 320 KiB multiple.

        Returns:
            Chunk size in bytes, never less than one 320 KiB unit
        """
        size = int(self.data.get('chunk_size', CHUNK_SIZE_BYTES))
        return max(CHUNK_UNIT_BYTES, size - size % CHUNK_UNIT_BYTES)

    def get_auth_config(self) -> dict:
        """
        Get OAuth settings.

        Returns:
            Dictionary with 'client_id', 'authority', 'scopes' and 'refresh_margin_seconds'
        """
        return {
            'client_id': self.data.get('client_id', DEFAULT_CLIENT_ID),
            'authority': self.data.get('authority', DEFAULT_AUTHORITY),
            'scopes': list(self.data.get('scopes', DEFAULT_SCOPES)),
            'refresh_margin_seconds': float(
                self.data.get('refresh_margin_seconds', REFRESH_SAFETY_MARGIN_SECONDS)
            ),
        }
