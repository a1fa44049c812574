"""Tests for the Flatpak resolver using a mocked Flathub transport."""

import asyncio

import httpx
import pytest

from obision_store.core.commands import CommandError, CommandResult, CommandRunner
from obision_store.core.resilience import Backoff, CircuitBreaker
from obision_store.resolvers.flatpak import FlatpakResolver

from conftest import FakeRunner

BASE_URL = "http://flathub.test"
LIST_INSTALLED = "flatpak list --app --columns=application"

SEARCH_RESPONSE = {
    "hits": [
        {"app_id": "org.gimp.GIMP", "name": "GIMP", "summary": "Image editor", "categories": ["Graphics"]},
        {"app_id": "org.inkscape.Inkscape", "name": "Inkscape", "summary": "Vector graphics"},
    ]
}


class FlathubStub:
    """Records requests and replays a queue of responses (or exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_resolver(stub, cache, runner=None, **kwargs) -> FlatpakResolver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    kwargs.setdefault("backoff", Backoff(base_delay=0, max_delay=0))
    return FlatpakResolver(
        runner or FakeRunner({LIST_INSTALLED: "org.gimp.GIMP\n"}),
        cache,
        client=client,
        base_url=BASE_URL,
        **kwargs,
    )


# ═══════════════════════════════════════════
# Search
# ═══════════════════════════════════════════


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_parses_hits(self, cache):
        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        resolver = make_resolver(stub, cache)

        records = await resolver.search("Image Editor")

        assert [r.id for r in records] == ["flatpak:org.gimp.GIMP", "flatpak:org.inkscape.Inkscape"]
        assert records[0].installed is True
        assert records[1].installed is False
        assert records[0].category == "Graphics"
        assert str(stub.requests[0].url) == f"{BASE_URL}/api/v2/search/Image%20Editor"
        assert cache.get("flatpak:image editor") == records

    @pytest.mark.asyncio
    async def test_repeated_search_served_from_cache(self, cache):
        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        resolver = make_resolver(stub, cache)

        first = await resolver.search("gimp")
        second = await resolver.search("GIMP")
        assert first == second
        assert len(stub.requests) == 1

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache_and_notifies(self, cache):
        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        resolver = make_resolver(stub, cache)
        await resolver.search("gimp")

        updates = []
        cache.subscribe("flatpak:gimp", lambda key, data: updates.append(key))
        await resolver.refresh("gimp")
        await asyncio.sleep(0)

        assert len(stub.requests) == 2
        assert updates == ["flatpak:gimp"]

    @pytest.mark.asyncio
    async def test_result_limit(self, cache):
        hits = [{"app_id": f"org.example.App{i}", "name": f"App {i}"} for i in range(70)]
        stub = FlathubStub(httpx.Response(200, json={"hits": hits}))
        records = await make_resolver(stub, cache).search("app")
        assert len(records) == 50

    @pytest.mark.asyncio
    async def test_http_error_returns_empty_uncached(self, cache):
        stub = FlathubStub(httpx.Response(404, json={"detail": "not found"}))
        assert await make_resolver(stub, cache).search("gimp") == []
        assert cache.get("flatpak:gimp") is None

    @pytest.mark.asyncio
    async def test_invalid_json_returns_empty(self, cache):
        stub = FlathubStub(httpx.Response(200, text="<html>oops</html>"))
        assert await make_resolver(stub, cache).search("gimp") == []

    @pytest.mark.asyncio
    async def test_installed_list_failure_means_not_installed(self, cache):
        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        runner = FakeRunner({LIST_INSTALLED: CommandError("flatpak not found")})
        records = await make_resolver(stub, cache, runner=runner).search("gimp")
        assert [r.installed for r in records] == [False, False]

    @pytest.mark.asyncio
    async def test_non_executable_flatpak_means_not_installed(self, cache, tmp_path, monkeypatch):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        (bin_dir / "flatpak").write_text("#!/bin/sh\necho org.gimp.GIMP\n")
        (bin_dir / "flatpak").chmod(0o644)
        monkeypatch.setenv("PATH", str(bin_dir))

        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        resolver = make_resolver(stub, cache, runner=CommandRunner())
        records = await resolver.search("gimp")
        assert [r.installed for r in records] == [False, False]
        assert await resolver.install("org.gimp.GIMP") is False

    @pytest.mark.asyncio
    async def test_installed_list_queried_once_per_search(self, cache):
        stub = FlathubStub(httpx.Response(200, json=SEARCH_RESPONSE))
        runner = FakeRunner({LIST_INSTALLED: "org.gimp.GIMP\n"})
        await make_resolver(stub, cache, runner=runner).search("gimp")
        assert runner.calls == [tuple(LIST_INSTALLED.split())]


# ═══════════════════════════════════════════
# Retries & Circuit Breaker
# ═══════════════════════════════════════════


class TestResilience:
    @pytest.mark.asyncio
    async def test_retries_connect_error(self, cache):
        stub = FlathubStub(httpx.ConnectError("refused"), httpx.Response(200, json=SEARCH_RESPONSE))
        records = await make_resolver(stub, cache).search("gimp")
        assert len(records) == 2
        assert len(stub.requests) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, cache):
        stub = FlathubStub(httpx.ReadTimeout("slow"))
        resolver = make_resolver(stub, cache)
        assert await resolver.search("gimp") == []
        assert len(stub.requests) == 3  # first try + 2 retries
        assert resolver.circuit_breaker.failures["search"] == 1

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self, cache):
        stub = FlathubStub(
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json=SEARCH_RESPONSE),
        )
        records = await make_resolver(stub, cache).search("gimp")
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_circuit_opens_and_skips_requests(self, cache):
        stub = FlathubStub(httpx.Response(503))
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)
        resolver = make_resolver(stub, cache, circuit_breaker=breaker)

        await resolver.refresh("a")
        await resolver.refresh("b")
        assert len(stub.requests) == 2

        assert await resolver.refresh("c") == []
        assert len(stub.requests) == 2

    @pytest.mark.asyncio
    async def test_circuit_is_per_endpoint(self, cache):
        stub = FlathubStub(
            httpx.Response(503),
            httpx.Response(200, json={"id": "org.gimp.GIMP", "name": "GIMP"}),
        )
        breaker = CircuitBreaker(failure_threshold=1)
        resolver = make_resolver(stub, cache, circuit_breaker=breaker)

        assert await resolver.search("gimp") == []
        record = await resolver.get_details("org.gimp.GIMP")
        assert record is not None
        assert record.name == "GIMP"


# ═══════════════════════════════════════════
# Details / Install / Remove
# ═══════════════════════════════════════════


class TestDetailsAndMutations:
    @pytest.mark.asyncio
    async def test_get_details(self, cache):
        stub = FlathubStub(
            httpx.Response(
                200,
                json={
                    "id": "org.gimp.GIMP",
                    "name": "GIMP",
                    "versions": [{"version": "2.10.38"}],
                    "urls": {"homepage": "https://www.gimp.org/"},
                },
            )
        )
        record = await make_resolver(stub, cache).get_details("org.gimp.GIMP")
        assert record.version == "2.10.38"
        assert record.installed is True
        assert str(stub.requests[0].url) == f"{BASE_URL}/api/v2/appstream/org.gimp.GIMP"

    @pytest.mark.asyncio
    async def test_get_details_not_found(self, cache):
        stub = FlathubStub(httpx.Response(404))
        assert await make_resolver(stub, cache).get_details("org.missing.App") is None

    @pytest.mark.asyncio
    async def test_install(self, cache):
        runner = FakeRunner()
        resolver = make_resolver(FlathubStub(httpx.Response(200)), cache, runner=runner)
        assert await resolver.install("org.gimp.GIMP") is True
        assert runner.calls[-1] == ("flatpak", "install", "-y", "flathub", "org.gimp.GIMP")

    @pytest.mark.asyncio
    async def test_remove_failure(self, cache):
        runner = FakeRunner(
            {"flatpak uninstall -y org.gimp.GIMP": CommandResult("", "error: not installed", returncode=1)}
        )
        resolver = make_resolver(FlathubStub(httpx.Response(200)), cache, runner=runner)
        assert await resolver.remove("org.gimp.GIMP") is False

    @pytest.mark.asyncio
    async def test_aclose_keeps_injected_client(self, cache):
        resolver = make_resolver(FlathubStub(httpx.Response(200)), cache)
        await resolver.aclose()
        assert not resolver.client.is_closed

    @pytest.mark.asyncio
    async def test_aclose_closes_own_client(self, cache):
        resolver = FlatpakResolver(FakeRunner(), cache)
        client = resolver.client
        await resolver.aclose()
        assert client.is_closed
