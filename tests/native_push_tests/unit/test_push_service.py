"""
Tests for notification dispatch across an owner's tokens.

Covers:
- Aggregated success over all registered tokens
- Per-token failure isolation
- Providers that were not initialized
- Concurrency bound and cancellation
"""

import asyncio
import threading
from unittest.mock import AsyncMock, Mock

import pytest

from native_push.exceptions import DeliveryError, TokenFormatError
from native_push.initializer import ProviderClients
from native_push.notification_types import NotificationDescriptor, Provider
from native_push.push_service import PushNotificationService
from native_push.providers.webpush import parse_subscription


def make_client(result=True):
    client = Mock()
    client.send = AsyncMock(return_value=result)
    client.aclose = AsyncMock()
    return client


class StaticTokens:
    """Token loader returning a fixed token list."""

    def __init__(self, tokens):
        self.tokens = tokens
        self.requested = []

    def load(self, owner_id):
        self.requested.append(owner_id)
        return list(self.tokens)


@pytest.fixture
def notification():
    return NotificationDescriptor(title="Hello", body="World")


class TestSendNotification:
    """Test aggregated dispatch results."""

    @pytest.mark.asyncio
    async def test_no_tokens_is_success(self, notification):
        fcm = make_client()
        service = PushNotificationService(StaticTokens([]), ProviderClients(fcm=fcm))

        assert await service.send_notification("user-1", notification) is True
        fcm.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_tokens_delivered(self, notification):
        apns, fcm = make_client(), make_client()
        store = StaticTokens([("apns_1", Provider.APNS), ("fcm_1", Provider.FCM), ("fcm_2", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(apns=apns, fcm=fcm))

        assert await service.send_notification("user-1", notification) is True
        assert store.requested == ["user-1"]
        apns.send.assert_awaited_once_with("apns_1", notification)
        assert fcm.send.await_count == 2

    @pytest.mark.asyncio
    async def test_one_rejection_fails_dispatch(self, notification):
        apns, fcm = make_client(), make_client(result=False)
        store = StaticTokens([("apns_1", Provider.APNS), ("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(apns=apns, fcm=fcm))

        assert await service.send_notification("user-1", notification) is False
        apns.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_results_per_token(self, notification):
        apns, fcm = make_client(), make_client(result=False)
        store = StaticTokens([("apns_1", Provider.APNS), ("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(apns=apns, fcm=fcm))

        results = await service.send_to_owner("user-1", notification)

        assert [(r.device_token, r.success) for r in results] == [("apns_1", True), ("fcm_1", False)]
        assert results[1].error_category == "rejected"
        assert results[1].error == "Rejected by provider"
        assert results[0].error is None


class TestFailureIsolation:
    """Test that one token's failure never stops the others."""

    @pytest.mark.asyncio
    async def test_malformed_webpush_token(self, notification):
        """A corrupt subscription fails alone; sibling tokens are still sent."""
        webpush = Mock()
        webpush.send = AsyncMock(side_effect=lambda token, descriptor: parse_subscription(token) and True)
        fcm = make_client()
        store = StaticTokens([("not json", Provider.WEBPUSH), ("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(fcm=fcm, webpush=webpush))

        results = await service.send_to_owner("user-1", notification)

        assert results[0].success is False
        assert results[0].error_category == "token_format"
        assert "not valid JSON" in results[0].error
        assert results[1].success is True
        fcm.send.assert_awaited_once_with("fcm_1", notification)

    @pytest.mark.asyncio
    async def test_delivery_error(self, notification):
        apns = Mock()
        apns.send = AsyncMock(side_effect=DeliveryError("APNs request failed: timeout"))
        fcm = make_client()
        store = StaticTokens([("apns_1", Provider.APNS), ("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(apns=apns, fcm=fcm))

        results = await service.send_to_owner("user-1", notification)

        assert results[0].error_category == "delivery"
        assert results[0].error == "APNs request failed: timeout"
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, notification):
        fcm = Mock()
        fcm.send = AsyncMock(side_effect=[RuntimeError("boom"), True])
        store = StaticTokens([("fcm_1", Provider.FCM), ("fcm_2", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(fcm=fcm))

        results = await service.send_to_owner("user-1", notification)

        assert sorted(r.error_category or "ok" for r in results) == ["exception", "ok"]
        assert fcm.send.await_count == 2

    @pytest.mark.asyncio
    async def test_token_format_error_from_adapter(self, notification):
        webpush = Mock()
        webpush.send = AsyncMock(side_effect=TokenFormatError("WebPush token is missing auth"))
        service = PushNotificationService(
            StaticTokens([('{"endpoint": "e"}', Provider.WEBPUSH)]),
            ProviderClients(webpush=webpush),
        )

        assert await service.send_notification("user-1", notification) is False

    @pytest.mark.asyncio
    async def test_provider_not_configured(self, notification):
        fcm = make_client()
        store = StaticTokens([("apns_1", Provider.APNS), ("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(fcm=fcm))

        results = await service.send_to_owner("user-1", notification)

        assert results[0].success is False
        assert results[0].error_category == "not_configured"
        assert results[0].error == "APNS not configured"
        assert results[1].success is True


class TestConcurrency:
    """Test bounded concurrent dispatch."""

    @pytest.mark.asyncio
    async def test_sends_run_concurrently_within_bound(self, notification):
        active = 0
        peak = 0

        async def send(token, descriptor):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return True

        fcm = Mock()
        fcm.send = AsyncMock(side_effect=send)
        store = StaticTokens([(f"fcm_{i}", Provider.FCM) for i in range(10)])
        service = PushNotificationService(store, ProviderClients(fcm=fcm), max_concurrency=3)

        assert await service.send_notification("user-1", notification) is True
        assert fcm.send.await_count == 10
        assert 1 < peak <= 3

    @pytest.mark.asyncio
    async def test_token_lookup_runs_off_event_loop(self, notification):
        loop_thread = threading.get_ident()
        lookup_threads = []

        class RecordingTokens(StaticTokens):
            def load(self, owner_id):
                lookup_threads.append(threading.get_ident())
                return super().load(owner_id)

        store = RecordingTokens([("fcm_1", Provider.FCM)])
        service = PushNotificationService(store, ProviderClients(fcm=make_client()))

        assert await service.send_notification("user-1", notification) is True
        assert store.requested == ["user-1"]
        assert lookup_threads and lookup_threads[0] != loop_thread

    def test_default_concurrency_from_clients(self):
        clients = ProviderClients(max_concurrency=7)

        assert PushNotificationService(StaticTokens([]), clients).max_concurrency == 7

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, notification):
        started = asyncio.Event()

        async def send(token, descriptor):
            started.set()
            await asyncio.sleep(10)
            return True

        fcm = Mock()
        fcm.send = AsyncMock(side_effect=send)
        service = PushNotificationService(StaticTokens([("fcm_1", Provider.FCM)]), ProviderClients(fcm=fcm))

        task = asyncio.create_task(service.send_notification("user-1", notification))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
