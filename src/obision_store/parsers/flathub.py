"""
Flathub API Utilities.

Builds Flathub v2 API URLs and normalizes its JSON documents (search hits and
appstream details) into PackageRecords.
"""

from urllib.parse import quote

from obision_store.config import FLATHUB_MEDIA_URL, FLATHUB_URL
from obision_store.models.package import PackageRecord, PackageSource

FLATHUB_REMOTE = "flathub"

# Freedesktop main categories -> store categories
CATEGORY_MAP = {
    "AudioVideo": "Multimedia",
    "Development": "Development",
    "Education": "Education",
    "Game": "Games",
    "Graphics": "Graphics",
    "Network": "Internet",
    "Office": "Office",
    "Science": "Education",
    "Settings": "System",
    "System": "System",
    "Utility": "Utilities",
}


def get_search_url(query: str, base_url: str = FLATHUB_URL) -> str:
    """
    Search endpoint for a free-text query.

    Args:
        query: User query; URI-encoded in full (slashes included).
        base_url: Flathub host.
    """
    return f"{base_url}/api/v2/search/{quote(query, safe='')}"


def get_appstream_url(app_id: str, base_url: str = FLATHUB_URL) -> str:
    """Appstream detail endpoint for an application ID."""
    return f"{base_url}/api/v2/appstream/{app_id}"


def get_icon_url(app_id: str) -> str:
    return f"{FLATHUB_MEDIA_URL}/{app_id}.png"


def map_category(category: str) -> str:
    return CATEGORY_MAP.get(category, "Other")


def _first_category(data: dict) -> str:
    categories = data.get("categories") or []
    return categories[0] if categories else ""


def _homepage(data: dict) -> str:
    urls = data.get("urls") or {}
    return urls.get("homepage") or ""


def parse_search_hits(data: dict, installed: set[str], limit: int = 50) -> list[PackageRecord]:
    """Convert the ``hits`` array of a search response."""
    return [parse_hit(hit, installed) for hit in (data.get("hits") or [])[:limit]]


def parse_hit(data: dict, installed: set[str]) -> PackageRecord:
    """Convert one search hit."""
    app_id = data.get("app_id") or data.get("id") or ""
    screenshots = [s.get("url") or "" for s in data.get("screenshots") or [] if isinstance(s, dict)]

    return PackageRecord(
        id=f"flatpak:{app_id}",
        name=data.get("name") or app_id,
        source=PackageSource.FLATPAK,
        summary=data.get("summary") or "",
        description=data.get("description") or data.get("summary") or "",
        icon=get_icon_url(app_id),
        version=data.get("version") or "",
        size=int(data.get("download_size") or 0),
        category=map_category(_first_category(data)),
        developer=data.get("developer_name") or data.get("project_group") or "Unknown",
        license=data.get("project_license") or "Unknown",
        homepage=_homepage(data),
        screenshots=tuple(screenshots),
        installed=app_id in installed,
    )


def parse_appstream(data: dict, installed: set[str]) -> PackageRecord:
    """Convert an appstream detail document."""
    app_id = data.get("id") or ""
    versions = data.get("versions") or []
    version = ""
    if versions and isinstance(versions[0], dict):
        version = versions[0].get("version") or ""

    screenshots = []
    for shot in data.get("screenshots") or []:
        url = shot if isinstance(shot, str) else (shot or {}).get("url") or ""
        if url:
            screenshots.append(url)

    return PackageRecord(
        id=f"flatpak:{app_id}",
        name=data.get("name") or app_id,
        source=PackageSource.FLATPAK,
        summary=data.get("summary") or "",
        description=data.get("description") or data.get("summary") or "",
        icon=get_icon_url(app_id),
        version=version,
        size=int(data.get("download_size") or 0),
        category=map_category(_first_category(data)),
        developer=data.get("developer_name") or "Unknown",
        license=data.get("project_license") or "Unknown",
        homepage=_homepage(data),
        screenshots=tuple(screenshots),
        installed=app_id in installed,
    )


def parse_installed_apps(content: str) -> set[str]:
    """Parse ``flatpak list --app --columns=application`` output."""
    return {line.strip() for line in content.splitlines() if line.strip()}
