import asyncio

import aiohttp
import pytest

from pastewatch.ingest.pastebin import DEFAULT_API_URL, DEFAULT_ITEM_URL, PastebinConfig, PastebinSource
from pastewatch.utils.types import Paste
from tests.helpers.fake_http import FakeResponse, FakeSession

LISTING = [
    {"key": "aaa", "scrape_url": "https://scrape.example/item?i=aaa", "size": "12"},
    {"key": "bbb", "title": "second"},
    {"title": "no key, dropped"},
]


def _source(routes):
    session = FakeSession(routes)
    return PastebinSource(PastebinConfig(limit=50), session=session), session


@pytest.mark.asyncio
async def test_fetch_batch_parses_listing():
    src, session = _source({DEFAULT_API_URL: FakeResponse(200, LISTING)})
    await src.start()
    pastes = await src.fetch_batch()

    assert [p.key for p in pastes] == ["aaa", "bbb"]
    assert pastes[0].size == 12
    assert session.calls == [(DEFAULT_API_URL, {"limit": "50"})]


@pytest.mark.asyncio
async def test_fetch_batch_empty_listing_is_ok():
    src, _ = _source({DEFAULT_API_URL: FakeResponse(200, [])})
    await src.start()
    assert await src.fetch_batch() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        FakeResponse(503, "unavailable"),
        FakeResponse(200, "YOUR IP: 10.0.0.1 DOES NOT HAVE ACCESS. VISIT: https://pastebin.com/doc_scraping_api"),
        FakeResponse(200, {"error": "not a list"}),
        aiohttp.ClientConnectionError("connection refused"),
        asyncio.TimeoutError(),
    ],
)
async def test_fetch_batch_failures_degrade_to_none(reply):
    src, _ = _source({DEFAULT_API_URL: reply})
    await src.start()
    assert await src.fetch_batch() is None


@pytest.mark.asyncio
async def test_fetch_raw_prefers_scrape_url():
    src, session = _source({
        "https://scrape.example/item?i=aaa": FakeResponse(200, "raw text"),
        DEFAULT_ITEM_URL: FakeResponse(200, "from item endpoint"),
    })
    await src.start()

    assert await src.fetch_raw(Paste(key="aaa", scrape_url="https://scrape.example/item?i=aaa")) == "raw text"
    assert await src.fetch_raw(Paste(key="zzz")) == "from item endpoint"
    assert session.calls[-1] == (DEFAULT_ITEM_URL, {"i": "zzz"})


@pytest.mark.asyncio
async def test_fetch_raw_failure_is_none():
    src, _ = _source({DEFAULT_ITEM_URL: FakeResponse(404, "gone")})
    await src.start()
    assert await src.fetch_raw(Paste(key="zzz")) is None


@pytest.mark.asyncio
async def test_injected_session_is_not_closed_by_stop():
    src, session = _source({})
    await src.start()
    await src.stop()
    assert session.closed is False


@pytest.mark.asyncio
async def test_fetch_before_start_raises():
    src = PastebinSource()
    with pytest.raises(RuntimeError):
        await src.fetch_batch()


@pytest.mark.asyncio
async def test_undecodable_body_is_none():
    src, _ = _source({
        DEFAULT_API_URL: FakeResponse(200, b'[{"key": "\xff"}]'),
        DEFAULT_ITEM_URL: FakeResponse(200, b"caf\xe9"),
    })
    await src.start()
    assert await src.fetch_batch() is None
    assert await src.fetch_raw(Paste(key="zzz")) is None


@pytest.mark.asyncio
async def test_out_of_range_number_is_dropped_not_fatal():
    src, _ = _source({DEFAULT_API_URL: FakeResponse(200, '[{"key": "aaa", "date": 1e999, "size": "12"}]')})
    await src.start()
    pastes = await src.fetch_batch()
    assert [p.key for p in pastes] == ["aaa"]
    assert pastes[0].date is None
    assert pastes[0].size == 12
