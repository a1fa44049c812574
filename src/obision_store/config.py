"""
Runtime configuration.

Settings are resolved from environment variables with sensible defaults for a
Debian desktop; the CLI overrides individual fields from its options.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

APP_NAME = "obision-store"

DEFAULT_APPSTREAM_DIR = Path("/var/lib/app-info/yaml")

# AppStream icon roots searched for "<package>_<icon>.png", in priority order
DEFAULT_ICON_DIRS = (
    Path("/var/lib/app-info/icons/debian-trixie-main/64x64"),
    Path("/var/lib/app-info/icons/debian-trixie-contrib/64x64"),
    Path("/var/lib/app-info/icons/debian-trixie-non-free/64x64"),
    Path("/var/lib/app-info/icons/debian-trixie-main/128x128"),
)

FLATHUB_URL = "https://flathub.org"
FLATHUB_MEDIA_URL = "https://dl.flathub.org/media"


def default_cache_dir() -> Path:
    """Per-user cache directory for the store ($XDG_CACHE_HOME/obision-store)."""
    base = os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(base) / APP_NAME


@dataclass
class Settings:
    """Paths, endpoints and limits shared by every store component."""

    cache_dir: Path = field(default_factory=default_cache_dir)
    appstream_dir: Path = DEFAULT_APPSTREAM_DIR
    icon_dirs: tuple[Path, ...] = DEFAULT_ICON_DIRS
    flathub_url: str = FLATHUB_URL
    command_timeout: float = 60.0
    http_timeout: float = 30.0
    search_limit: int = 50
    cache_max_age: float | None = None  # seconds; None means entries never expire

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / "packages-cache.json"

    @property
    def icon_index_file(self) -> Path:
        return self.cache_dir / "appstream-icons.json"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from OBISION_STORE_* environment variables."""
        env = os.environ
        values: dict = {}
        if env.get("OBISION_STORE_CACHE_DIR"):
            values["cache_dir"] = Path(env["OBISION_STORE_CACHE_DIR"])
        if env.get("OBISION_STORE_APPSTREAM_DIR"):
            values["appstream_dir"] = Path(env["OBISION_STORE_APPSTREAM_DIR"])
        if env.get("OBISION_STORE_FLATHUB_URL"):
            values["flathub_url"] = env["OBISION_STORE_FLATHUB_URL"].rstrip("/")
        if env.get("OBISION_STORE_COMMAND_TIMEOUT"):
            values["command_timeout"] = float(env["OBISION_STORE_COMMAND_TIMEOUT"])

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
