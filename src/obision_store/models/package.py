"""
Package Model — normalized, source-agnostic package records.

A PackageRecord is the unit stored in the package cache and surfaced to the
store front end, whatever source (Debian archive or Flathub) it came from.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum


class PackageSource(str, Enum):
    """Where a package record was resolved from."""

    DEBIAN = "debian"
    FLATPAK = "flatpak"


@dataclass(frozen=True)
class PackageRecord:
    """
    Normalized package metadata.

    Records are immutable so that lists handed out by the cache never alias
    its stored entries. ``size`` is always in bytes, and ``installed`` is a
    point-in-time check that may go stale once cached.
    """

    id: str  # "deb:<name>" or "flatpak:<app-id>"
    name: str
    source: PackageSource
    summary: str = ""
    description: str = ""
    icon: str = ""
    version: str = ""
    size: int = 0
    category: str | None = None
    developer: str = "Unknown"
    license: str = "Unknown"
    homepage: str = ""
    screenshots: tuple[str, ...] = field(default_factory=tuple)
    installed: bool = False
    rating: float = 0

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dictionary."""
        data = asdict(self)
        data["source"] = self.source.value
        data["screenshots"] = list(self.screenshots)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PackageRecord":
        """Deserialize from dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            source=PackageSource(data["source"]),
            summary=data.get("summary", ""),
            description=data.get("description", ""),
            icon=data.get("icon", ""),
            version=data.get("version", ""),
            size=int(data.get("size") or 0),
            category=data.get("category"),
            developer=data.get("developer", "Unknown"),
            license=data.get("license", "Unknown"),
            homepage=data.get("homepage", ""),
            screenshots=tuple(data.get("screenshots") or ()),
            installed=bool(data.get("installed", False)),
            rating=data.get("rating", 0),
        )


@dataclass(frozen=True)
class CacheStats:
    """Aggregate counters for the package cache."""

    entry_count: int
    total_record_count: int
