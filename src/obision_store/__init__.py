"""
Obision Store - package metadata cache and icon resolution for a software center.

Resolves Debian (APT) and Flatpak (Flathub) packages into normalized records,
caches search results on disk with change notification, and maps packages to
icons through an AppStream-derived index.
"""

__version__ = "1.0.0"


def __getattr__(name: str):
    """Lazy import for heavy dependencies."""
    if name in ("PackageService", "build_service"):
        from obision_store.core import service

        return getattr(service, name)
    if name == "PackageRecord":
        from obision_store.models.package import PackageRecord

        return PackageRecord
    if name == "Settings":
        from obision_store.config import Settings

        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["PackageService", "PackageRecord", "Settings", "build_service", "__version__"]
