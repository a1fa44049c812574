"""
Package Service — the single entry point front ends talk to.

Routes searches, installs and browsing to the Debian and Flatpak resolvers and
exposes cache maintenance. It owns no state beyond references to the
components built by ``build_service``.
"""

import logging

from obision_store.config import Settings
from obision_store.core.cache import CacheCallback, PackageCache, get_cache_key
from obision_store.core.commands import CommandRunner
from obision_store.core.icons import AppStreamIconIndex
from obision_store.models.package import CacheStats, PackageRecord, PackageSource
from obision_store.resolvers import DebianResolver, FlatpakResolver, Resolver, parse_source

logger = logging.getLogger(__name__)


class PackageService:
    """Facade over the package cache, icon index and resolvers."""

    def __init__(
        self,
        cache: PackageCache,
        icons: AppStreamIconIndex,
        debian: DebianResolver,
        flatpak: FlatpakResolver,
    ):
        self.cache = cache
        self.icons = icons
        self.debian = debian
        self.flatpak = flatpak

    async def start(self) -> None:
        """Load (or build) the icon index before the first Debian lookup."""
        await self.icons.load()

    async def aclose(self) -> None:
        """Flush pending cache writes and release the HTTP client."""
        await self.cache.flush()
        await self.flatpak.aclose()

    def resolver(self, source: PackageSource | str) -> Resolver:
        match parse_source(source):
            case PackageSource.DEBIAN:
                return self.debian
            case PackageSource.FLATPAK:
                return self.flatpak

    # ──────────────────────────────────────────────
    # Generic dispatch
    # ──────────────────────────────────────────────

    async def search(self, source: PackageSource | str, query: str) -> list[PackageRecord]:
        return await self.resolver(source).search(query)

    async def refresh(self, source: PackageSource | str, query: str) -> list[PackageRecord]:
        return await self.resolver(source).refresh(query)

    async def get_details(self, source: PackageSource | str, name: str) -> PackageRecord | None:
        return await self.resolver(source).get_details(name)

    async def install(self, source: PackageSource | str, name: str) -> bool:
        return await self.resolver(source).install(name)

    async def remove(self, source: PackageSource | str, name: str) -> bool:
        return await self.resolver(source).remove(name)

    # ──────────────────────────────────────────────
    # Debian
    # ──────────────────────────────────────────────

    async def search_debian(self, query: str) -> list[PackageRecord]:
        return await self.debian.search(query)

    async def refresh_debian(self, query: str) -> list[PackageRecord]:
        return await self.debian.refresh(query)

    async def get_debian_details(self, name: str) -> PackageRecord | None:
        return await self.debian.get_details(name)

    async def install_debian(self, name: str) -> bool:
        return await self.debian.install(name)

    async def remove_debian(self, name: str) -> bool:
        return await self.debian.remove(name)

    async def get_available_sections(self) -> list[str]:
        return await self.debian.get_available_sections()

    async def get_available_categories(self) -> list[str]:
        return await self.debian.get_available_categories()

    async def get_packages_by_section(self, section: str, limit: int = 20) -> list[PackageRecord]:
        return await self.debian.get_packages_by_section(section, limit)

    async def get_packages_by_category(self, category: str, limit: int = 20) -> list[PackageRecord]:
        return await self.debian.get_packages_by_category(category, limit)

    # ──────────────────────────────────────────────
    # Flatpak
    # ──────────────────────────────────────────────

    async def search_flatpak(self, query: str) -> list[PackageRecord]:
        return await self.flatpak.search(query)

    async def refresh_flatpak(self, query: str) -> list[PackageRecord]:
        return await self.flatpak.refresh(query)

    async def get_flatpak_details(self, app_id: str) -> PackageRecord | None:
        return await self.flatpak.get_details(app_id)

    async def install_flatpak(self, app_id: str) -> bool:
        return await self.flatpak.install(app_id)

    async def remove_flatpak(self, app_id: str) -> bool:
        return await self.flatpak.remove(app_id)

    # ──────────────────────────────────────────────
    # Cache
    # ──────────────────────────────────────────────

    def subscribe(self, source: PackageSource | str, query: str, callback: CacheCallback) -> str:
        """Watch a query's cache entry. Returns the key to unsubscribe with."""
        key = get_cache_key(parse_source(source), query)
        self.cache.subscribe(key, callback)
        return key

    def unsubscribe(self, source: PackageSource | str, query: str, callback: CacheCallback) -> None:
        self.cache.unsubscribe(get_cache_key(parse_source(source), query), callback)

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()


def build_service(settings: Settings | None = None) -> PackageService:
    """Construct every store component once and wire them together."""
    settings = settings or Settings.from_env()
    runner = CommandRunner(timeout=settings.command_timeout)
    cache = PackageCache(settings.cache_file, max_age=settings.cache_max_age)
    icons = AppStreamIconIndex(
        settings.icon_index_file,
        appstream_dir=settings.appstream_dir,
        icon_dirs=settings.icon_dirs,
    )
    debian = DebianResolver(runner, cache, icons, limit=settings.search_limit)
    flatpak = FlatpakResolver(
        runner,
        cache,
        base_url=settings.flathub_url,
        limit=settings.search_limit,
        http_timeout=settings.http_timeout,
    )
    logger.debug(f"Package service using cache dir {settings.cache_dir}")
    return PackageService(cache, icons, debian, flatpak)
