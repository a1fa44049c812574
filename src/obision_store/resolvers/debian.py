"""
Debian Resolver — package records from the local APT database.

Searches go through ``apt-cache search --names-only``; each candidate is then
detailed with ``apt-cache show`` and checked with ``dpkg-query``. Results are
cached per query in the package cache and reused verbatim until refreshed.
"""

import asyncio
import logging
from collections.abc import Callable

from obision_store.core.cache import PackageCache, get_cache_key
from obision_store.core.commands import CommandError, CommandRunner
from obision_store.core.icons import AppStreamIconIndex
from obision_store.models.package import PackageRecord, PackageSource
from obision_store.parsers.debian import (
    DEFAULT_CATEGORIES,
    DEFAULT_SECTIONS,
    is_installed,
    map_section,
    parse_control_fields,
    parse_control_stanzas,
    parse_installed_size,
    parse_search_output,
)

logger = logging.getLogger(__name__)

SECTIONS_PIPELINE = "apt-cache dumpavail | grep '^Section:' | cut -d' ' -f2 | sort -u"


class DebianResolver:
    """Resolves Debian packages into PackageRecords."""

    source = PackageSource.DEBIAN

    def __init__(
        self,
        runner: CommandRunner,
        cache: PackageCache,
        icons: AppStreamIconIndex,
        limit: int = 50,
        concurrency: int = 8,
        mutation_timeout: float = 1800.0,
    ):
        self.runner = runner
        self.cache = cache
        self.icons = icons
        self.limit = limit
        self.concurrency = concurrency
        self.mutation_timeout = mutation_timeout

    # ──────────────────────────────────────────────
    # Search
    # ──────────────────────────────────────────────

    async def search(self, query: str) -> list[PackageRecord]:
        """Search package names, serving repeated queries from the cache."""
        cache_key = get_cache_key(self.source, query)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        return await self._search_and_store(query, cache_key)

    async def refresh(self, query: str) -> list[PackageRecord]:
        """Search without consulting the cache; subscribers see the new entry."""
        return await self._search_and_store(query, get_cache_key(self.source, query))

    async def _search_and_store(self, query: str, cache_key: str) -> list[PackageRecord]:
        try:
            result = await self.runner.run_async("apt-cache", ["search", "--names-only", query.lower()])
        except CommandError as e:
            logger.error(f"Error searching Debian packages: {e}")
            return []

        if not result.ok:
            logger.error(f"apt-cache search failed for {query!r}: {result.stderr.strip()}")
            return []

        # Multi-arch output can list a name more than once
        candidates = list(dict.fromkeys(name for name, _ in parse_search_output(result.stdout)))
        wanted = query.lower()

        # Exact match first, then the rest, capped at self.limit overall
        names = [name for name in candidates if name.lower() == wanted][:1]
        names += [name for name in candidates if name.lower() != wanted]
        names = names[: self.limit]

        records = await self._resolve_all(names, self.get_details)
        self.cache.set(cache_key, records, query)
        return records

    async def _resolve_all(self, names: list[str], resolve: Callable) -> list[PackageRecord]:
        """Resolve names concurrently, keeping input order and dropping failures."""
        sem = asyncio.Semaphore(self.concurrency)

        async def resolve_one(name: str) -> PackageRecord | None:
            async with sem:
                return await resolve(name)

        results = await asyncio.gather(*(resolve_one(name) for name in names))
        return [record for record in results if record is not None]

    # ──────────────────────────────────────────────
    # Details
    # ──────────────────────────────────────────────

    async def get_details(self, name: str) -> PackageRecord | None:
        """Resolve one package via ``apt-cache show``; None if it can't be read."""
        await self.icons.ensure_loaded()
        try:
            show = await self.runner.run_async("apt-cache", ["show", name])
            if not show.stdout.strip():
                return None
            fields = parse_control_fields(show.stdout)
            installed = await self._is_installed(name)
        except CommandError as e:
            logger.error(f"Error getting info for {name}: {e}")
            return None

        return self._build_record(name, fields, installed)

    async def _is_installed(self, name: str) -> bool:
        result = await self.runner.run_async("dpkg-query", ["-W", "-f=${Status}", name])
        return is_installed(result.stdout)

    def _build_record(self, name: str, fields: dict[str, str], installed: bool) -> PackageRecord:
        section = fields.get("Section", "")
        description = fields.get("Description") or fields.get("Description-en", "")

        return PackageRecord(
            id=f"deb:{name}",
            name=fields.get("Package") or name,
            source=self.source,
            summary=description.split("\n")[0],
            description=description,
            icon=self.icons.resolve_icon(name, section),
            version=fields.get("Version", ""),
            size=parse_installed_size(fields.get("Installed-Size", "0")),
            category=map_section(section),
            developer=fields.get("Maintainer") or "Unknown",
            license=fields.get("License") or "Unknown",
            homepage=fields.get("Homepage", ""),
            installed=installed,
        )

    # ──────────────────────────────────────────────
    # Sections & Categories
    # ──────────────────────────────────────────────

    async def get_available_sections(self) -> list[str]:
        """Unique sections in the APT database, or a default list."""
        try:
            result = await self.runner.run_async("sh", ["-c", SECTIONS_PIPELINE])
        except CommandError as e:
            logger.error(f"Error getting available sections: {e}")
            return list(DEFAULT_SECTIONS)

        sections = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not sections:
            logger.info("No sections found, returning defaults")
            return list(DEFAULT_SECTIONS)

        logger.info(f"Found {len(sections)} sections from apt")
        return sections

    async def get_available_categories(self) -> list[str]:
        """Desktop categories covered by the available sections, sorted."""
        sections = await self.get_available_sections()
        categories = set()
        for section in sections:
            category = map_section(section)
            if category:
                categories.add(category)

        if not categories:
            logger.info("No desktop categories found, returning defaults")
            return list(DEFAULT_CATEGORIES)

        logger.info(f"Mapped {len(sections)} sections to {len(categories)} desktop categories")
        return sorted(categories)

    async def get_packages_by_section(self, section: str, limit: int = 20) -> list[PackageRecord]:
        """Packages whose Section starts with ``section`` (e.g. 'games')."""
        return await self._browse(lambda s: s.startswith(section), limit)

    async def get_packages_by_category(self, category: str, limit: int = 20) -> list[PackageRecord]:
        """
        Packages in a desktop category.

        Packages from sections that map to no category never appear here,
        even though they show up in name searches.
        """
        return await self._browse(lambda s: map_section(s) == category, limit)

    async def _browse(self, matches: Callable[[str], bool], limit: int) -> list[PackageRecord]:
        try:
            result = await self.runner.run_async("apt-cache", ["dumpavail"])
        except CommandError as e:
            logger.error(f"Error reading available packages: {e}")
            return []

        selected: dict[str, dict[str, str]] = {}
        for stanza in parse_control_stanzas(result.stdout):
            name = stanza.get("Package")
            if name and name not in selected and matches(stanza.get("Section", "")):
                selected[name] = stanza
                if len(selected) >= limit:
                    break

        await self.icons.ensure_loaded()

        async def resolve(name: str) -> PackageRecord | None:
            try:
                installed = await self._is_installed(name)
            except CommandError as e:
                logger.warning(f"Installed check failed for {name}: {e}")
                installed = False
            return self._build_record(name, selected[name], installed)

        return await self._resolve_all(list(selected), resolve)

    # ──────────────────────────────────────────────
    # Install / Remove
    # ──────────────────────────────────────────────

    async def install(self, name: str) -> bool:
        return await self._apt_get("install", name)

    async def remove(self, name: str) -> bool:
        return await self._apt_get("remove", name)

    async def _apt_get(self, action: str, name: str) -> bool:
        try:
            result = await self.runner.run_async(
                "pkexec", ["apt-get", action, "-y", name], timeout=self.mutation_timeout
            )
        except CommandError as e:
            logger.error(f"Error running apt-get {action} {name}: {e}")
            return False

        if not result.ok:
            logger.error(f"apt-get {action} {name} failed ({result.returncode}): {result.stderr.strip()}")
        return result.ok
