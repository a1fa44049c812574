"""Package sources the store resolves records from."""

from obision_store.models.package import PackageSource
from obision_store.resolvers.base import Resolver
from obision_store.resolvers.debian import DebianResolver
from obision_store.resolvers.flatpak import FlatpakResolver


def parse_source(source_name: str | PackageSource) -> PackageSource:
    """Turn a user-supplied source name into a PackageSource."""
    if isinstance(source_name, PackageSource):
        return source_name
    match source_name.lower():
        case "debian" | "deb" | "apt":
            return PackageSource.DEBIAN
        case "flatpak" | "flathub":
            return PackageSource.FLATPAK
        case _:
            raise ValueError(f"Unknown package source: {source_name!r}. Use 'debian' or 'flatpak'.")


__all__ = ["Resolver", "DebianResolver", "FlatpakResolver", "parse_source"]
