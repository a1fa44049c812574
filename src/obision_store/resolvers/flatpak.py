"""
Flatpak Resolver — package records from the Flathub catalog API.

Catalog data comes from the Flathub v2 web API; installed state and
install/remove go through the local ``flatpak`` command.
"""

import asyncio
import logging

import httpx

from obision_store.config import FLATHUB_URL
from obision_store.core.cache import PackageCache, get_cache_key
from obision_store.core.commands import CommandError, CommandRunner
from obision_store.core.resilience import Backoff, CircuitBreaker
from obision_store.models.package import PackageRecord, PackageSource
from obision_store.parsers.flathub import (
    FLATHUB_REMOTE,
    get_appstream_url,
    get_search_url,
    parse_appstream,
    parse_installed_apps,
    parse_search_hits,
)

logger = logging.getLogger(__name__)


class FlatpakResolver:
    """Resolves Flathub applications into PackageRecords."""

    source = PackageSource.FLATPAK

    def __init__(
        self,
        runner: CommandRunner,
        cache: PackageCache,
        client: httpx.AsyncClient | None = None,
        base_url: str = FLATHUB_URL,
        limit: int = 50,
        http_timeout: float = 30.0,
        backoff: Backoff | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        mutation_timeout: float = 1800.0,
    ):
        self.runner = runner
        self.cache = cache
        self.base_url = base_url
        self.limit = limit
        self.http_timeout = http_timeout
        self.backoff = backoff or Backoff()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.mutation_timeout = mutation_timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.http_timeout, connect=10.0),
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ──────────────────────────────────────────────
    # HTTP Layer
    # ──────────────────────────────────────────────

    async def _request(self, url: str, endpoint: str, attempt: int = 0) -> httpx.Response | None:
        """GET with retries on timeouts, connection errors and 429s."""
        if not self.circuit_breaker.allow(endpoint):
            logger.warning(f"Skipping Flathub {endpoint} request, circuit open")
            return None

        try:
            resp = await self.client.get(url)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            if self.backoff.should_retry(attempt):
                delay = self.backoff.delay(attempt)
                logger.debug(f"Request failed ({type(e).__name__}), retry {attempt + 1} after {delay:.1f}s")
                await asyncio.sleep(delay)
                return await self._request(url, endpoint, attempt + 1)
            self.circuit_breaker.record_failure(endpoint)
            logger.error(f"Flathub request failed after {attempt + 1} attempts: {url}")
            return None
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure(endpoint)
            logger.error(f"Flathub request error for {url}: {e}")
            return None

        if resp.status_code == 429:
            if self.backoff.should_retry(attempt):
                delay = self.backoff.retry_after(resp.headers.get("Retry-After"), attempt)
                logger.warning(f"Rate limited by Flathub. Waiting {delay:.1f}s...")
                await asyncio.sleep(delay)
                return await self._request(url, endpoint, attempt + 1)
            self.circuit_breaker.record_failure(endpoint)
        elif resp.status_code >= 500:
            self.circuit_breaker.record_failure(endpoint)
        else:
            self.circuit_breaker.record_success(endpoint)

        return resp

    async def _get_json(self, url: str, endpoint: str) -> dict | None:
        resp = await self._request(url, endpoint)
        if resp is None:
            return None
        if not resp.is_success:
            logger.error(f"Flathub returned {resp.status_code} for {url}")
            return None

        try:
            data = resp.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {url}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Unexpected JSON document from {url}")
            return None
        return data

    # ──────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────

    async def search(self, query: str) -> list[PackageRecord]:
        """Search Flathub, serving repeated queries from the cache."""
        cache_key = get_cache_key(self.source, query)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        return await self._search_and_store(query, cache_key)

    async def refresh(self, query: str) -> list[PackageRecord]:
        """Search without consulting the cache; subscribers see the new entry."""
        return await self._search_and_store(query, get_cache_key(self.source, query))

    async def _search_and_store(self, query: str, cache_key: str) -> list[PackageRecord]:
        data = await self._get_json(get_search_url(query, self.base_url), "search")
        if data is None:
            return []

        installed = await self.get_installed_apps()
        try:
            records = parse_search_hits(data, installed, self.limit)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Error parsing Flathub search results: {e}")
            return []

        self.cache.set(cache_key, records, query)
        return records

    async def get_details(self, name: str) -> PackageRecord | None:
        """Fetch the appstream document for an application ID."""
        data = await self._get_json(get_appstream_url(name, self.base_url), "appstream")
        if data is None:
            return None

        installed = await self.get_installed_apps()
        try:
            return parse_appstream(data, installed)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Error parsing Flathub details for {name}: {e}")
            return None

    async def get_installed_apps(self) -> set[str]:
        """Application IDs of locally installed Flatpak apps."""
        try:
            result = await self.runner.run_async("flatpak", ["list", "--app", "--columns=application"])
        except CommandError as e:
            logger.warning(f"Could not list installed Flatpak apps: {e}")
            return set()
        return parse_installed_apps(result.stdout)

    # ──────────────────────────────────────────────
    # Install / Remove
    # ──────────────────────────────────────────────

    async def install(self, name: str) -> bool:
        return await self._flatpak(["install", "-y", FLATHUB_REMOTE, name])

    async def remove(self, name: str) -> bool:
        return await self._flatpak(["uninstall", "-y", name])

    async def _flatpak(self, args: list[str]) -> bool:
        try:
            result = await self.runner.run_async("flatpak", args, timeout=self.mutation_timeout)
        except CommandError as e:
            logger.error(f"Error running flatpak {' '.join(args)}: {e}")
            return False

        if not result.ok:
            logger.error(f"flatpak {' '.join(args)} failed ({result.returncode}): {result.stderr.strip()}")
        return result.ok
