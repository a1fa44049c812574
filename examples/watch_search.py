"""
Example: Search both sources and watch a query for cache refreshes.

Usage:
    python examples/watch_search.py firefox
"""

import asyncio
import sys

from obision_store import build_service


async def main(query: str):
    service = build_service()
    await service.start()

    def on_update(key, records):
        print(f"\n🔄 {key} refreshed: {len(records)} packages")

    # A view subscribes while visible and must unsubscribe when hidden
    service.subscribe("flatpak", query, on_update)
    try:
        for record in await service.search_debian(query):
            print(f"[deb]     {record.name:<30} {record.version:<20} {record.icon}")
        for record in await service.search_flatpak(query):
            print(f"[flatpak] {record.name:<30} {record.version:<20} {record.icon}")

        # Re-resolve from Flathub; the existing entry is overwritten and the
        # subscriber above is notified on the next loop iteration
        await service.refresh_flatpak(query)
        await asyncio.sleep(0)
    finally:
        service.unsubscribe("flatpak", query, on_update)
        await service.aclose()

    stats = service.get_cache_stats()
    print(f"\n✅ Cache: {stats.entry_count} queries, {stats.total_record_count} packages")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "firefox"))
