"""
Resolver Protocol — Base interface for package sources.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from obision_store.models.package import PackageRecord, PackageSource


@runtime_checkable
class Resolver(Protocol):
    """
    Protocol that every package source implements.

    Resolvers turn queries into normalized PackageRecords, consulting the
    package cache before the underlying tool or API. Failures never raise:
    searches return an empty list, lookups None and mutations False.
    """

    source: PackageSource

    async def search(self, query: str) -> list[PackageRecord]:
        """Cached search; hits the source only on a cache miss."""
        ...

    async def refresh(self, query: str) -> list[PackageRecord]:
        """Re-resolve ``query`` from the source and overwrite the cache entry."""
        ...

    async def get_details(self, name: str) -> PackageRecord | None:
        """Resolve a single package by name or application ID."""
        ...

    async def install(self, name: str) -> bool:
        ...

    async def remove(self, name: str) -> bool:
        ...
