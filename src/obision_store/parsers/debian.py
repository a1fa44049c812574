"""
Debian package-database output parsers.

Handles the text formats produced by apt-cache and dpkg-query: the
``name - summary`` lines of ``apt-cache search`` and the RFC822-style
field blocks of ``apt-cache show`` / ``apt-cache dumpavail``. Also holds the
section tables used to normalize Debian metadata.
"""

import re

SEARCH_LINE_RE = re.compile(r"^(\S+)\s+-\s+(.+)$")

INSTALLED_STATUS = "install ok installed"

# Sections that typically carry desktop applications. Anything not listed
# (admin, devel, doc, interpreters, libs, utils, text, net, x11, debug,
# fonts, localization, shells, language modules...) has no category.
SECTION_CATEGORIES = {
    "games": "Games",
    "gnome": "GNOME",
    "kde": "KDE",
    "xfce": "XFCE",
    "graphics": "Graphics",
    "sound": "Multimedia",
    "video": "Multimedia",
    "web": "Internet",
    "mail": "Internet",
    "news": "Internet",
    "science": "Science",
    "education": "Education",
    "editors": "Office",
    "office": "Office",
    "otherosfs": "System",
    "hamradio": "Communication",
    "electronics": "Engineering",
}

SECTION_ICONS = {
    "admin": "system-run",
    "devel": "applications-development",
    "doc": "text-x-generic",
    "editors": "text-editor",
    "electronics": "applications-engineering",
    "games": "applications-games",
    "gnome": "gnome-logo-icon",
    "graphics": "applications-graphics",
    "interpreters": "utilities-terminal",
    "kde": "kde",
    "mail": "mail-send",
    "math": "accessories-calculator",
    "net": "network-workgroup",
    "news": "news-feed",
    "science": "applications-science",
    "sound": "applications-multimedia",
    "text": "text-x-generic",
    "utils": "applications-utilities",
    "video": "video-x-generic",
    "web": "web-browser",
    "x11": "video-display",
}

GENERIC_PACKAGE_ICON = "package-x-generic"

DEFAULT_SECTIONS = [
    "admin",
    "devel",
    "editors",
    "games",
    "gnome",
    "graphics",
    "kde",
    "mail",
    "net",
    "science",
    "sound",
    "text",
    "utils",
    "video",
    "web",
    "x11",
]

DEFAULT_CATEGORIES = sorted(set(SECTION_CATEGORIES.values()))


def parse_search_output(content: str) -> list[tuple[str, str]]:
    """
    Parse ``apt-cache search`` output.

    Args:
        content: Raw stdout, one ``name - summary`` per line.

    Returns:
        List of (name, summary) tuples in output order.
    """
    results = []
    for line in content.strip().splitlines():
        match = SEARCH_LINE_RE.match(line)
        if match:
            results.append((match.group(1), match.group(2)))
    return results


def parse_control_fields(content: str) -> dict[str, str]:
    """
    Parse the first field block of ``apt-cache show`` output.

    Continuation lines (leading whitespace) are appended to the previous
    field's value on a new line. Lines before the first field are ignored.
    """
    stanzas = parse_control_stanzas(content, limit=1)
    return stanzas[0] if stanzas else {}


def parse_control_stanzas(content: str, limit: int | None = None) -> list[dict[str, str]]:
    """
    Parse blank-line separated field blocks (``apt-cache dumpavail``).

    Args:
        content: Raw field-block text.
        limit: Stop after this many stanzas.

    Returns:
        One field dict per stanza.
    """
    stanzas: list[dict[str, str]] = []
    fields: dict[str, str] = {}
    current = ""

    for line in content.splitlines():
        if not line.strip():
            if fields:
                stanzas.append(fields)
                if limit is not None and len(stanzas) >= limit:
                    return stanzas
            fields = {}
            current = ""
        elif line[0] in " \t":
            if current:
                fields[current] += "\n" + line.strip()
        elif ":" in line:
            name, _, value = line.partition(":")
            current = name.strip()
            fields[current] = value.strip()

    if fields:
        stanzas.append(fields)
    return stanzas if limit is None else stanzas[:limit]


def main_section(section: str) -> str:
    """'contrib/games' -> 'contrib'; 'games' -> 'games'."""
    return section.split("/")[0]


def map_section(section: str) -> str | None:
    """Map a Debian section to a desktop category, or None if it has none."""
    return SECTION_CATEGORIES.get(main_section(section))


def section_icon(section: str) -> str:
    """Generic themed icon for a Debian section."""
    return SECTION_ICONS.get(main_section(section), GENERIC_PACKAGE_ICON)


def parse_installed_size(value: str) -> int:
    """Convert an ``Installed-Size`` value (KB) to bytes."""
    match = re.match(r"\s*(\d+)", value or "")
    return int(match.group(1)) * 1024 if match else 0


def is_installed(status_output: str) -> bool:
    """Check ``dpkg-query -W -f=${Status}`` output."""
    return INSTALLED_STATUS in status_output
