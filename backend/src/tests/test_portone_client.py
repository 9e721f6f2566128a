"""
Tests for the PortOne V2 client.

Uses httpx.MockTransport in place of the PortOne API.
"""

import json

import httpx
import pytest

from src.config.settings import PortOneConfig
from src.integrations.portone.payment_client import (
    ChargeRequest,
    PortOneClient,
    PortOneError,
)


@pytest.fixture
def config():
    return PortOneConfig(
        api_secret="test-secret",
        store_id="store-123",
        channel_key="channel-key-123",
        api_base_url="https://api.portone.test",
        checkout_window_seconds=0.5,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def charge_request():
    return ChargeRequest(
        payment_id="payment-course-1-user-1-1700000000000",
        item_id="course-1",
        user_id="user-1",
        order_name="Intro to Pottery",
        amount=49000,
        customer_email="buyer@example.com",
    )


def _client(config, handler):
    http_client = httpx.AsyncClient(
        base_url=config.api_base_url,
        headers={"Authorization": f"PortOne {config.api_secret}"},
        transport=httpx.MockTransport(handler),
    )
    return PortOneClient(config, http_client=http_client)


def _payment(status, **extra):
    body = {"status": status, "id": "payment-course-1-user-1-1700000000000"}
    body.update(extra)
    return httpx.Response(200, json=body)


class TestCharge:

    @pytest.mark.asyncio
    async def test_paid_with_matching_amount_succeeds(self, config, charge_request):
        def handler(request):
            assert request.url.path == f"/payments/{charge_request.payment_id}"
            assert request.headers["Authorization"] == "PortOne test-secret"
            return _payment("PAID", amount={"total": 49000}, currency="KRW", transactionId="txn-9")

        async with _client(config, handler) as client:
            result = await client.charge(charge_request)

        assert result.succeeded
        assert result.transaction_id == "txn-9"

    @pytest.mark.asyncio
    async def test_polls_until_terminal(self, config, charge_request):
        responses = iter([
            httpx.Response(404, json={"type": "PAYMENT_NOT_FOUND", "message": "not found"}),
            _payment("READY"),
            _payment("PAID", amount={"total": 49000}, currency="KRW"),
        ])

        async with _client(config, lambda request: next(responses)) as client:
            result = await client.charge(charge_request)

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_failed_payment_carries_reason(self, config, charge_request):
        def handler(request):
            return _payment("FAILED", failure={"reason": "Card declined"})

        async with _client(config, handler) as client:
            result = await client.charge(charge_request)

        assert result.code == "FAILED"
        assert result.message == "Card declined"

    @pytest.mark.asyncio
    async def test_cancelled_payment(self, config, charge_request):
        async with _client(config, lambda request: _payment("CANCELLED")) as client:
            result = await client.charge(charge_request)

        assert result.code == "CANCELLED"
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_amount_mismatch_is_failure(self, config, charge_request):
        def handler(request):
            return _payment("PAID", amount={"total": 100}, currency="KRW")

        async with _client(config, handler) as client:
            result = await client.charge(charge_request)

        assert result.code == "AMOUNT_MISMATCH"

    @pytest.mark.asyncio
    async def test_abandoned_checkout(self, config, charge_request):
        async with _client(config, lambda request: _payment("READY")) as client:
            result = await client.charge(charge_request)

        assert result.code == "CHECKOUT_ABANDONED"

    @pytest.mark.asyncio
    async def test_unknown_status_is_failure(self, config, charge_request):
        async with _client(config, lambda request: _payment("SOMETHING_NEW")) as client:
            result = await client.charge(charge_request)

        assert result.code == "SOMETHING_NEW"

    @pytest.mark.asyncio
    async def test_http_error_raises(self, config, charge_request):
        def handler(request):
            return httpx.Response(401, json={"type": "UNAUTHORIZED", "message": "bad secret"})

        async with _client(config, handler) as client:
            with pytest.raises(PortOneError) as exc_info:
                await client.charge(charge_request)

        assert exc_info.value.code == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, config, charge_request):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with _client(config, handler) as client:
            with pytest.raises(PortOneError):
                await client.charge(charge_request)


class TestPrepare:

    @pytest.mark.asyncio
    async def test_pre_register_payload(self, config, charge_request):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        async with _client(config, handler) as client:
            await client.prepare(charge_request)

        assert seen["path"] == f"/payments/{charge_request.payment_id}/pre-register"
        assert seen["body"] == {"storeId": "store-123", "totalAmount": 49000, "currency": "KRW"}

    def test_checkout_params(self, config, charge_request):
        client = PortOneClient(config, http_client=httpx.AsyncClient())

        params = client.checkout_params(charge_request)

        assert params["storeId"] == "store-123"
        assert params["channelKey"] == "channel-key-123"
        assert params["paymentId"] == charge_request.payment_id
        assert params["currency"] == "CURRENCY_KRW"
        assert params["easyPay"] == {"easyPayProvider": "KAKAOPAY"}
        assert params["customer"] == {"email": "buyer@example.com"}
