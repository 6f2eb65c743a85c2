"""Runtime configuration: env-driven via pydantic-settings.

Reads from a .env file and BCDEV_* environment variables. The cache root
defaults to the per-user cache location reported by platformdirs.
"""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CDN_BASE_URL = "https://bcartifacts-exdbf9fwegejdqak.b02.azurefd.net"
DEFAULT_MS_SYMBOLS_FEED = (
    "https://dynamicssmb2.pkgs.visualstudio.com/571e802d-b44b-45fc-bd41-4cfddec73b44"
    "/_packaging/b656b10c-3de0-440c-900c-bc2e4e86d84c/nuget/v3/flat2"
)
DEFAULT_PARTNER_SYMBOLS_FEED = (
    "https://dynamicssmb2.pkgs.visualstudio.com/571e802d-b44b-45fc-bd41-4cfddec73b44"
    "/_packaging/3f253fc9-be40-4eb5-b0e5-1a277ee0ed60/nuget/v3/flat2"
)


class BcdevConfig(BaseSettings):
    """Tool configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BCDEV_LOG_LEVEL=DEBUG
        export BCDEV_CACHE_DIR=/ci/cache/bcdev
        export BCDEV_OPERATION_TIMEOUT_SECONDS=1800

    Or via .env file::

        BCDEV_ARTIFACT_CHANNEL=onprem
        BCDEV_SYMBOL_WORKERS=4
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BCDEV_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Artifact cache
    cache_dir: Path | None = None
    cdn_base_url: str = DEFAULT_CDN_BASE_URL
    artifact_channel: str = "sandbox"

    # Symbol feeds, tried in this order
    ms_symbols_feed: str = DEFAULT_MS_SYMBOLS_FEED
    partner_symbols_feed: str = DEFAULT_PARTNER_SYMBOLS_FEED
    default_country: str = "w1"
    symbol_workers: int = 1

    # Network and locking
    http_timeout_seconds: float = 300.0
    operation_timeout_seconds: float | None = None
    lock_timeout_seconds: float = 1800.0

    @property
    def cache_root(self) -> Path:
        """Effective cache root: ``cache_dir`` or the platform user cache."""
        if self.cache_dir is not None:
            return Path(self.cache_dir).expanduser()
        dirs = PlatformDirs(appname="bcdev", appauthor=False)
        return Path(dirs.user_cache_path) / "cache"

    @property
    def feeds(self) -> list[str]:
        """Symbol feeds in query order (Microsoft first, then partners)."""
        return [self.ms_symbols_feed, self.partner_symbols_feed]


# Module-level singleton: import as `from bcdev.config import config`
config = BcdevConfig()
