"""
AppStream Icon Index — package name -> icon lookup backed by system AppStream data.

Building the index means decompressing and scanning every DEP-11 file under
/var/lib/app-info/yaml, which is slow, so the result is persisted as a flat
JSON document and reloaded on later starts. A loaded index is trusted for
the whole process lifetime; it is only rebuilt when the document is missing,
empty or explicitly rebuilt.

Lifecycle: UNBUILT -> LOADING -> READY. READY is reached even if the build
fails, so nothing waiting on the index can hang.
"""

import asyncio
import json
import logging
import zlib
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os

from obision_store.config import DEFAULT_APPSTREAM_DIR, DEFAULT_ICON_DIRS
from obision_store.parsers.appstream import base_name, name_variants, read_appstream_file
from obision_store.parsers.debian import section_icon

logger = logging.getLogger(__name__)

URI_PREFIXES = ("file://", "/", "http://", "https://")


class IndexState(Enum):
    """Load state of the icon index."""

    UNBUILT = "unbuilt"
    LOADING = "loading"
    READY = "ready"


class AppStreamIconIndex:
    """
    In-memory icon index with a persisted JSON copy.

    Each package is registered under its literal name, its base name
    ('firefox-esr' -> 'firefox') and the last segment of a reverse-DNS id
    ('org.gnome.gedit' -> 'gedit'). The first mapping seen for a name wins.
    """

    def __init__(
        self,
        index_file: Path,
        appstream_dir: Path = DEFAULT_APPSTREAM_DIR,
        icon_dirs: tuple[Path, ...] = DEFAULT_ICON_DIRS,
    ):
        self.index_file = index_file
        self.appstream_dir = appstream_dir
        self.icon_dirs = icon_dirs
        self.state = IndexState.UNBUILT
        self._icons: dict[str, str] = {}
        self._ready = asyncio.Event()
        self._load_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._icons)

    def __contains__(self, name: str) -> bool:
        return name in self._icons

    def get(self, name: str) -> str | None:
        return self._icons.get(name)

    # ──────────────────────────────────────────────
    # Readiness
    # ──────────────────────────────────────────────

    def is_ready(self) -> bool:
        return self.state is IndexState.READY

    async def wait_ready(self, timeout: float | None = None) -> None:
        """
        Wait until the index is READY, starting the load if nobody has yet.

        Raises TimeoutError after ``timeout``; the load keeps running.
        """
        if self.is_ready():
            return
        self._start_load()
        await asyncio.wait_for(self._ready.wait(), timeout)

    async def ensure_loaded(self) -> None:
        """Start loading if nobody has yet, otherwise wait for the running load."""
        await self.wait_ready()

    def _mark_ready(self) -> None:
        self.state = IndexState.READY
        self._ready.set()

    # ──────────────────────────────────────────────
    # Load / Build
    # ──────────────────────────────────────────────

    async def load(self) -> None:
        """Load the persisted index, building it first if it is missing or empty."""
        if self.is_ready():
            return
        await self._start_load()

    def _start_load(self) -> asyncio.Task:
        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load())
        return self._load_task

    async def _load(self) -> None:
        self.state = IndexState.LOADING
        try:
            icons = await self._read_index()
            if icons:
                self._icons = icons
                logger.info(f"AppStream icon index loaded from disk: {len(icons)} entries")
                return

            logger.info("AppStream icon index missing, building...")
            await self.build()
            await self._write_index()
        finally:
            self._mark_ready()

    async def rebuild(self) -> None:
        """Discard the persisted index and build it again."""
        # An in-flight load must finish before the state is reset
        if self._load_task is not None and not self._load_task.done():
            await self._load_task

        try:
            await aiofiles.os.remove(self.index_file)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove icon index {self.index_file}: {e}")

        self._icons = {}
        self.state = IndexState.UNBUILT
        self._ready = asyncio.Event()
        self._load_task = None
        await self.load()

    async def build(self) -> None:
        """Scan every ``*.yml.gz`` AppStream file into the in-memory index."""
        files = sorted(self.appstream_dir.glob("*.yml.gz"))
        if not files:
            logger.info(f"No AppStream YAML files found in {self.appstream_dir}")
            return

        logger.info(f"Processing {len(files)} AppStream YAML files...")
        for path in files:
            try:
                pairs = await asyncio.to_thread(read_appstream_file, path)
            except (OSError, EOFError, zlib.error) as e:
                logger.debug(f"Error processing {path}: {e}")
                continue

            for package, icon in pairs:
                self.register(package, icon)

        logger.info(f"AppStream icon index built: {len(self._icons)} entries")

    def register(self, package_name: str, icon: str) -> None:
        """Index ``icon`` under every name variant not already mapped."""
        for variant in name_variants(package_name):
            if variant and variant not in self._icons:
                self._icons[variant] = icon

    async def _read_index(self) -> dict[str, str]:
        if not self.index_file.exists():
            return {}

        try:
            async with aiofiles.open(self.index_file, encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Error loading icon index {self.index_file}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed icon index {self.index_file}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    async def _write_index(self) -> None:
        try:
            self.index_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.index_file.with_name(self.index_file.name + ".tmp")
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(self._icons, indent=2))
            await aiofiles.os.replace(tmp, self.index_file)
            logger.info(f"AppStream icon index saved: {len(self._icons)} entries")
        except OSError as e:
            logger.error(f"Error saving icon index: {e}")

    # ──────────────────────────────────────────────
    # Resolution
    # ──────────────────────────────────────────────

    def resolve_icon(self, package_name: str, section: str = "") -> str:
        """
        Resolve the icon for a package.

        Returns a ``file://`` URI when a cached AppStream PNG exists, the
        stored value when it is already a URI or path, a themed icon name
        from the index otherwise, and finally a generic icon for the Debian
        section.
        """
        for name in (package_name, base_name(package_name)):
            icon = self._icons.get(name)
            if icon is not None:
                return self._locate(name, icon)

        return section_icon(section)

    def _locate(self, name: str, icon: str) -> str:
        if icon.startswith(URI_PREFIXES):
            return icon

        for icon_dir in self.icon_dirs:
            path = icon_dir / f"{name}_{icon}.png"
            if path.exists():
                return f"file://{path}"
        return icon
