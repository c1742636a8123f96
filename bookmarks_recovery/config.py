"""Configuration for the bookmarks recovery tools."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_OUTPUT_FORMAT = "bookmarks.{input.basename}-{match.offset}.{bookmarks.checksum}.json"


@dataclass
class CarveConfig:
    """Configuration for the carving scanner."""
    buffer_size: int = 8192  # Read-ahead for the prefix scan
    window_size: int = 20 * 1024 * 1024  # Largest candidate accepted after its prefix
    lookahead_size: int = 1024  # Bytes checked for the roots marker

    @classmethod
    def from_env(cls) -> "CarveConfig":
        """Create config from environment variables."""
        return cls(
            buffer_size=int(os.environ.get("BOOKMARKS_CARVE_BUFFER", "8192")),
            window_size=int(os.environ.get("BOOKMARKS_CARVE_WINDOW", str(20 * 1024 * 1024))),
            lookahead_size=int(os.environ.get("BOOKMARKS_CARVE_LOOKAHEAD", "1024")),
        )


@dataclass
class FaviconConfig:
    """Configuration for favicon fetching during HTML export."""
    max_concurrent_requests: int = 5
    request_timeout: float = 10.0  # Seconds
    max_icon_bytes: int = 256 * 1024

    @classmethod
    def from_env(cls) -> "FaviconConfig":
        """Create config from environment variables."""
        return cls(
            max_concurrent_requests=int(os.environ.get("BOOKMARKS_FAVICON_CONCURRENCY", "5")),
            request_timeout=float(os.environ.get("BOOKMARKS_FAVICON_TIMEOUT", "10.0")),
            max_icon_bytes=int(os.environ.get("BOOKMARKS_FAVICON_MAX_BYTES", str(256 * 1024))),
        )


@dataclass
class Config:
    """Main configuration for the bookmarks recovery tools."""
    carve: CarveConfig = field(default_factory=CarveConfig.from_env)
    favicons: FaviconConfig = field(default_factory=FaviconConfig.from_env)
    catalog_db_path: Optional[Path] = None  # None = use default
    chrome_profile: str = "Default"  # Chrome profile name
    output_format: str = DEFAULT_OUTPUT_FORMAT  # File name template for carved files

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        db_path_str = os.environ.get("BOOKMARKS_CATALOG_DB")
        db_path = Path(db_path_str) if db_path_str else None

        return cls(
            carve=CarveConfig.from_env(),
            favicons=FaviconConfig.from_env(),
            catalog_db_path=db_path,
            chrome_profile=os.environ.get("BOOKMARKS_CHROME_PROFILE", "Default"),
            output_format=os.environ.get("BOOKMARKS_OUTPUT_FORMAT", DEFAULT_OUTPUT_FORMAT),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
