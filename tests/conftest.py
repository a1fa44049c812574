"""Shared fixtures: a scripted command runner and temp-dir backed components."""

import gzip
from pathlib import Path

import pytest

from obision_store.core.cache import PackageCache
from obision_store.core.commands import CommandResult
from obision_store.core.icons import AppStreamIconIndex


class FakeRunner:
    """
    Command runner returning canned output keyed by the joined argv.

    Values may be a str (stdout, exit 0), a CommandResult, or an exception
    to raise. Unknown commands succeed with empty output.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []

    def _respond(self, command, args):
        argv = (command, *(args or []))
        self.calls.append(argv)
        response = self.responses.get(" ".join(argv), "")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, CommandResult):
            return response
        return CommandResult(stdout=response, stderr="", returncode=0)

    def run(self, command, args=None, timeout=None):
        return self._respond(command, args)

    async def run_async(self, command, args=None, timeout=None):
        return self._respond(command, args)


def _write_appstream(path: Path, entries: list[tuple[str, str]]) -> Path:
    """Write a minimal gzip DEP-11 document with (package, icon file) pairs."""
    lines = ["---", "File: DEP-11", "Version: '0.12'"]
    for package, icon_file in entries:
        lines += [
            "---",
            "Type: desktop-application",
            f"ID: {package}.desktop",
            f"Package: {package}",
            "Icon:",
            "  cached:",
            f"  - name: {icon_file}",
            "    width: 64",
            "    height: 64",
        ]
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def cache(tmp_path):
    return PackageCache(tmp_path / "cache" / "packages-cache.json")


@pytest.fixture
def icon_index(tmp_path):
    return AppStreamIconIndex(
        tmp_path / "cache" / "appstream-icons.json",
        appstream_dir=tmp_path / "yaml",
        icon_dirs=(tmp_path / "icons" / "64x64", tmp_path / "icons" / "128x128"),
    )


@pytest.fixture
def write_appstream():
    return _write_appstream
