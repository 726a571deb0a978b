import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import httpx
import pytest

from helpers import CHANNEL, SERVER, FakeCache, FakeFetcher, native_url, patch_client_with_responder, raw_content_item, raw_digital_asset
from ocesync.config import Settings
from ocesync.host.registry import NodeRegistry
import ocesync.sync as sync_module
from ocesync.sync import ContentSync

LIST_PATH = "/content/published/api/v1.1/items"

# ---------- Helpers ----------


def make_settings(tmp_path: Path) -> Settings:
    settings = Settings()
    settings.server.content_server = SERVER
    settings.server.channel_token = CHANNEL
    settings.server.auth_str = "Bearer fixed"
    settings.app.output_dir = str(tmp_path / "out")
    settings.media.renditions = "none"
    return settings


def make_responder(items: Dict[str, Dict[str, Any]], failing: Iterable[str] = ()):
    failing = set(failing)

    def responder(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer fixed"
        if request.url.path == LIST_PATH:
            if "scrollId" in request.url.params:
                return httpx.Response(200, json={"count": 0, "items": []})
            summaries = [{"id": i, "type": v["type"]} for i, v in items.items()]
            return httpx.Response(200, json={"count": len(summaries), "items": summaries, "scrollId": "s1"})
        item_id = request.url.path.rsplit("/", 1)[-1]
        if item_id in failing:
            return httpx.Response(500)
        return httpx.Response(200, json=items[item_id])

    return responder


def make_sync(
    monkeypatch: pytest.MonkeyPatch,
    settings: Settings,
    cache: FakeCache,
    responder: Any,
    fetchers: List[FakeFetcher],
    fail_urls: Iterable[str] = (),
) -> ContentSync:
    sync = ContentSync(settings, cache=cache)
    original = sync._make_connector

    def _make_connector(authorization: str):
        conn = original(authorization)
        patch_client_with_responder(conn, responder)
        return conn

    def _make_fetcher(registry: NodeRegistry) -> FakeFetcher:
        fetcher = FakeFetcher(registry, fail_urls)
        fetchers.append(fetcher)
        return fetcher

    monkeypatch.setattr(sync, "_make_connector", _make_connector)
    monkeypatch.setattr(sync, "_make_fetcher", _make_fetcher)
    return sync


def raw_items() -> Dict[str, Dict[str, Any]]:
    return {
        "DA1": raw_digital_asset("DA1", file_name="one.jpg"),
        "DA2": raw_digital_asset("DA2", file_name="two.jpg"),
        "DA3": raw_digital_asset("DA3", file_name="three.jpg"),
        "C1": raw_content_item("C1"),
    }


def nodes_by_oce_id(manifest: Path) -> Dict[str, Dict[str, Any]]:
    payload = json.loads(manifest.read_text())
    return {n["oceId"]: n for n in payload["nodes"] if "oceId" in n}


# ---------- Tests ----------


@pytest.mark.asyncio
async def test_sync_completes_with_partial_media_failure(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    settings = make_settings(tmp_path)
    fetchers: List[FakeFetcher] = []
    failing_url = native_url("DA2", "two.jpg")
    sync = make_sync(monkeypatch, settings, FakeCache(), make_responder(raw_items()), fetchers, [failing_url])

    report = await sync.sync()

    assert report.ok
    assert report.items == 4
    assert report.assets == 3
    assert report.downloaded == 2
    assert report.failed == 1
    assert report.links == 2
    assert report.nodes == 4

    nodes = nodes_by_oce_id(report.manifest)
    assert len(nodes["DA1"]["children"]) == 1
    assert len(nodes["DA3"]["children"]) == 1
    assert nodes["DA2"]["children"] == []
    assert nodes["C1"]["internal"]["type"] == "oceAsset"
    assert nodes["C1"]["oceType"] == "BlogPost"


@pytest.mark.asyncio
async def test_rerun_reuses_cached_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    cache = FakeCache()
    failing_url = native_url("DA2", "two.jpg")

    first_fetchers: List[FakeFetcher] = []
    first = make_sync(monkeypatch, settings, cache, make_responder(raw_items()), first_fetchers, [failing_url])
    first_report = await first.sync()
    assert first_report.ok

    second_fetchers: List[FakeFetcher] = []
    second = make_sync(monkeypatch, settings, cache, make_responder(raw_items()), second_fetchers, [failing_url])
    report = await second.sync()

    assert report.ok
    assert report.reused == 2
    # Only the binary that failed last time is requested again
    assert [c[0] for c in second_fetchers[0].calls] == [failing_url]
    assert report.links == 2

    first_nodes = nodes_by_oce_id(first_report.manifest)
    nodes = nodes_by_oce_id(report.manifest)
    assert nodes["DA1"]["id"] == first_nodes["DA1"]["id"]
    assert nodes["DA1"]["children"] == first_nodes["DA1"]["children"]

    payload = json.loads(report.manifest.read_text())
    assert set(payload["touched"]) == set(nodes["DA1"]["children"] + nodes["DA3"]["children"])


@pytest.mark.asyncio
async def test_modified_asset_is_downloaded_again(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    cache = FakeCache()
    await make_sync(monkeypatch, settings, cache, make_responder(raw_items()), []).sync()

    items = raw_items()
    items["DA1"] = raw_digital_asset("DA1", file_name="one.jpg", updated="2023-05-05T00:00:00Z")
    fetchers: List[FakeFetcher] = []
    report = await make_sync(monkeypatch, settings, cache, make_responder(items), fetchers).sync()

    assert report.downloaded == 1
    assert report.reused == 2
    assert [c[0] for c in fetchers[0].calls] == [native_url("DA1", "one.jpg")]


@pytest.mark.asyncio
async def test_item_fetch_failure_aborts_run(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    fetchers: List[FakeFetcher] = []
    sync = make_sync(monkeypatch, settings, FakeCache(), make_responder(raw_items(), failing=["C1"]), fetchers)

    report = await sync.sync()

    assert not report.ok
    assert report.error
    assert report.manifest is None
    assert fetchers == []
    assert not (tmp_path / "out" / "nodes.json").exists()


@pytest.mark.asyncio
async def test_fetch_content_returns_raw_items(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    sync = make_sync(monkeypatch, settings, FakeCache(), make_responder(raw_items()), [])

    items = await sync.fetch_content()
    assert sorted(it["id"] for it in items) == ["C1", "DA1", "DA2", "DA3"]


@pytest.mark.asyncio
async def test_rerun_without_manifest_downloads_cached_files_again(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    settings = make_settings(tmp_path)
    cache = FakeCache()
    first = await make_sync(monkeypatch, settings, cache, make_responder(raw_items()), []).sync()
    assert first.links == 3
    first.manifest.unlink()

    fetchers: List[FakeFetcher] = []
    report = await make_sync(monkeypatch, settings, cache, make_responder(raw_items()), fetchers).sync()

    assert report.ok
    assert report.reused == 0
    assert report.downloaded == 3
    assert report.links == 3
    nodes = nodes_by_oce_id(report.manifest)
    assert all(len(nodes[i]["children"]) == 1 for i in ("DA1", "DA2", "DA3"))


@pytest.mark.asyncio
async def test_rerun_after_failed_run_restores_links(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    cache = FakeCache()
    real_materialize = sync_module.materialize
    calls = []

    def flaky_materialize(*args: Any, **kwargs: Any):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("disk full")
        return real_materialize(*args, **kwargs)

    monkeypatch.setattr(sync_module, "materialize", flaky_materialize)

    first = await make_sync(monkeypatch, settings, cache, make_responder(raw_items()), []).sync()
    assert not first.ok
    assert first.downloaded == 3
    assert not (tmp_path / "out" / "nodes.json").exists()

    report = await make_sync(monkeypatch, settings, cache, make_responder(raw_items()), []).sync()

    assert report.ok
    assert report.downloaded == 3
    assert report.links == 3
