"""
Tests for BitSkins payload translation.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from skintrader.integrations.bitskins_api import BitSkinsAPIClient, _parse_timestamp
from skintrader.integrations.errors import DecodeError


@pytest.fixture
def client(settings):
    limiter = AsyncMock()
    limiter.acquire.return_value = 0.0
    return BitSkinsAPIClient(settings, limiter)


def respond(client, payload, status=200):
    return patch.object(client, "_send", AsyncMock(return_value=(status, json.dumps(payload))))


class TestBitSkinsAPIClient:
    """Test cases for BitSkinsAPIClient."""

    def test_requires_api_key(self, settings_factory):
        settings = settings_factory(BITSKINS_API_KEY=None)

        with pytest.raises(ValueError):
            BitSkinsAPIClient(settings, AsyncMock())

    def test_categories(self, client):
        assert client._category("/market/search/730") == "market"
        assert client._category("/market/search/mine/730") == "market"
        assert client._category("/market/pricing/list") == "global"

    def test_parse_timestamp(self):
        assert _parse_timestamp("2024-01-01T00:00:00.000Z") == 1704067200
        assert _parse_timestamp(1704067200) == 1704067200

    @pytest.mark.asyncio
    async def test_get_item_classes(self, client):
        with respond(client, [{"id": 1, "name": "AK-47 | Redline (Field-Tested)", "class_id": "310776", "suggested_price": 15230}]):
            classes = await client.get_item_classes()

        assert classes[0].id == "1"
        assert classes[0].suggested_price == 15230

    @pytest.mark.asyncio
    async def test_get_listings(self, client):
        payload = {
            "counter": {"total": 812},
            "list": [
                {"id": 555, "skin_id": 1, "price": 14100, "float_value": 0.2512, "name": "AK-47 | Redline"},
            ],
        }
        with respond(client, payload) as send:
            page = await client.get_listings("1", 500)

        body = json.loads(send.await_args.args[2])
        assert body == {"where": {"skin_id": [1]}, "limit": 500, "offset": 500}
        assert page.total == 812
        assert page.items[0].id == "555"
        assert page.items[0].item_class_id == "1"
        assert page.items[0].price == 14100

    @pytest.mark.asyncio
    async def test_get_listings_rejects_bad_shape(self, client):
        with respond(client, {"list": [{"price": 1}]}):
            with pytest.raises(DecodeError):
                await client.get_listings("1", 0)

    @pytest.mark.asyncio
    async def test_get_trades(self, client):
        payload = [
            {"created_at": "2024-01-01T00:00:00.000Z", "price": 14000, "float_value": 0.21, "paint_seed": 77, "extras_1": 3},
        ]
        with respond(client, payload):
            trades = await client.get_trades("1")

        assert trades[0].traded_at == 1704067200
        assert trades[0].price == 14000
        assert trades[0].paint_seed == 77
        assert trades[0].extras == 3

    @pytest.mark.asyncio
    async def test_get_balance(self, client):
        with respond(client, {"balance": 25000}):
            assert await client.get_balance() == 25000.0

        with respond(client, {"balance": None}):
            with pytest.raises(DecodeError):
                await client.get_balance()

    @pytest.mark.asyncio
    async def test_get_holdings(self, client):
        with respond(client, {"list": [{"id": 9, "skin_id": 1, "name": "AK", "price": 15000}]}):
            holdings = await client.get_holdings()

        assert holdings[0].listing_id == "9"
        assert holdings[0].listed_price == 15000

    @pytest.mark.asyncio
    async def test_buy_sends_integer_max_price(self, client):
        with respond(client, {"result": True}) as send:
            await client.buy("555", 14100.0)

        method, path, body, _ = send.await_args.args
        assert (method, path) == ("POST", "/market/buy/single")
        assert json.loads(body) == {"app_id": 730, "id": "555", "max_price": 14100}
