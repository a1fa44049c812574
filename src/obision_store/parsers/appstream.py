"""
AppStream DEP-11 metadata scanner.

Extracts package -> icon associations from the gzip-compressed YAML files
shipped under /var/lib/app-info/yaml. Only the ``Package:`` key and the
first cached icon ``name`` after it are read, so the (large) documents are
streamed line by line rather than loaded as YAML.

Cached icon entries look like::

    Package: firefox-esr
    Icon:
      cached:
      - name: firefox-esr_firefox-esr.png
"""

import gzip
import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

SEPARATOR_RE = re.compile(r"[-_].*")


def base_name(package_name: str) -> str:
    """Strip everything from the first '-' or '_': 'firefox-esr' -> 'firefox'."""
    return SEPARATOR_RE.sub("", package_name)


def name_variants(package_name: str) -> list[str]:
    """
    Names a package is indexed under.

    'firefox-esr'     -> ['firefox-esr', 'firefox', 'firefox-esr']
    'org.gnome.gedit' -> ['org.gnome.gedit', 'org.gnome.gedit', 'gedit']
    """
    return [package_name, base_name(package_name), package_name.split(".")[-1]]


def icon_name_from_file(filename: str) -> str:
    """'firefox-esr_firefox-esr.png' -> 'firefox-esr'."""
    parts = filename.split("_")
    name = parts[1] if len(parts) > 1 else filename
    name = name.removesuffix(".png")
    return name.removesuffix("-symbolic")


def scan_appstream_icons(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """
    Yield (package, icon) pairs from DEP-11 YAML lines.

    Only the first icon name following each ``Package:`` line is used.
    """
    package = ""
    for line in lines:
        if line.startswith("Package:"):
            fields = line.split()
            package = fields[1] if len(fields) > 1 else ""
        elif package and line.startswith("  - name:"):
            fields = line.split()
            if len(fields) < 3:
                continue
            icon = icon_name_from_file(fields[2])
            if icon and ":" not in package and ":" not in icon:
                yield package, icon
            package = ""


def read_appstream_file(path: Path) -> list[tuple[str, str]]:
    """Decompress one ``*.yml.gz`` file and return its (package, icon) pairs."""
    with gzip.open(path, "rt", encoding="utf-8", errors="replace") as f:
        pairs = list(scan_appstream_icons(f))
    logger.debug(f"[AppStream] {path.name}: {len(pairs)} icons")
    return pairs
