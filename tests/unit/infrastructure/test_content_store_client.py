"""Unit tests for ContentStoreClient and with_network_retry."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from common.exception import NetworkError, RateLimited, Unauthorized, UpstreamUnavailable, ValidationError
from common.service.content_store import (
    ContentStoreClient,
    ListParams,
    Record,
    with_network_retry,
)


def client_for(handler):
    return ContentStoreClient(
        "https://content.test/v0", "base1", api_token="secret", transport=httpx.MockTransport(handler)
    )


class TestBuildQuery:
    """Tests for query serialization."""

    def test_local_only_params_are_not_sent(self):
        client = ContentStoreClient("https://content.test", "base1")
        params = ListParams(
            page_size=30,
            filter="{lang}='ur'",
            sort=[("date", "desc")],
            fields=["title"],
            search="dil",
            cursor="itr1/rec9",
            extra={"view": "Grid", "lang": "ur"},
        )

        query = client.build_query(params)

        assert query == [
            ("pageSize", "30"),
            ("filterByFormula", "{lang}='ur'"),
            ("sort[0][field]", "date"),
            ("sort[0][direction]", "desc"),
            ("fields[]", "title"),
            ("view", "Grid"),
            ("offset", "itr1/rec9"),
        ]


class TestList:
    """Tests for list requests."""

    @pytest.mark.asyncio
    async def test_list_parses_records_and_cursor(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json={"records": [{"id": "rec1", "fields": {"title": "t"}}], "offset": "next"},
            )

        page = await client_for(handler).list("Ghazlen", ListParams(page_size=10))

        assert seen["path"] == "/v0/base1/Ghazlen"
        assert seen["auth"] == "Bearer secret"
        assert page.records == [Record(id="rec1", fields={"title": "t"})]
        assert page.cursor == "next"

    @pytest.mark.asyncio
    async def test_wrapped_payload_and_last_page(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"records": [{"id": "rec2"}]}})

        page = await client_for(handler).list("Ashaar", ListParams(page_size=10))

        assert page.records[0].fields == {}
        assert page.cursor is None

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (401, Unauthorized),
            (422, ValidationError),
            (429, RateLimited),
            (503, UpstreamUnavailable),
        ],
    )
    @pytest.mark.asyncio
    async def test_error_statuses(self, status, error_type):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text="nope")

        with pytest.raises(error_type):
            await client_for(handler).list("Ashaar", ListParams(page_size=10))


class TestWrites:
    """Tests for create, update and fallback reads."""

    @pytest.mark.asyncio
    async def test_update_sends_patch_and_returns_record(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"records": [{"id": "rec1", "fields": {"likes": 3}}]})

        record = await client_for(handler).update("Ghazlen", "rec1", {"likes": 3})

        assert seen["method"] == "PATCH"
        assert seen["body"] == {"records": [{"id": "rec1", "fields": {"likes": 3}}]}
        assert record.fields["likes"] == 3

    @pytest.mark.asyncio
    async def test_get_or_fallback_serves_fallback_when_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        fallback = Record(id="rec1", fields={"title": "cached"})

        result = await client_for(handler).get_or_fallback("Ghazlen", "rec1", fallback)

        assert result is fallback


class TestWithNetworkRetry:
    """Tests for with_network_retry."""

    @pytest.mark.asyncio
    async def test_retries_network_errors_with_linear_delay(self):
        call = AsyncMock(side_effect=[NetworkError("a"), NetworkError("b"), "ok"])

        with patch("common.service.content_store.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await with_network_retry(call, retries=2, delay=0.2)

        assert result == "ok"
        assert [c.args[0] for c in sleep.await_args_list] == [pytest.approx(0.2), pytest.approx(0.4)]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        call = AsyncMock(side_effect=UpstreamUnavailable("down"))

        with pytest.raises(UpstreamUnavailable):
            await with_network_retry(call, retries=2, delay=0)

        assert call.await_count == 1
