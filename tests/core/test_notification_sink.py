# tests/core/test_notification_sink.py
"""
Тесты доставки уведомлений (src/core/notifications/service.py).
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiormq.exceptions import ChannelInvalidStateError

from fakes import make_order
from src.common.constants import OrderStatus
from src.core.notifications.service import (
    NotificationSink,
    build_status_payload,
    status_additional_data,
)
from src.infra.event_bus import DomainEvent, EventBus, EventBusError, EventTypes


class TestPayloads:
    """Формат уведомлений."""

    def test_status_payload_shape(self) -> None:
        order = make_order("client-1")

        payload = build_status_payload(order, OrderStatus.CONFIRMED, {"x": 1})

        assert payload["type"] == "orderStatus"
        assert payload["payload"]["status"] == "confirmed"
        assert payload["payload"]["order"]["id"] == order.id
        assert payload["payload"]["additionalData"] == {"x": 1}

    def test_additional_data_by_status(self) -> None:
        eta = datetime(2026, 11, 10, 9, 15, tzinfo=timezone.utc)
        order = make_order(
            "client-1",
            estimated_arrival_time=eta,
            actual_price=8480,
            rating=4.5,
            cancellation_reason="Пробки",
        )

        assert status_additional_data(order, OrderStatus.EN_ROUTE) == {"estimatedArrivalTime": eta.isoformat()}
        assert status_additional_data(order, OrderStatus.COMPLETED) == {"finalPrice": 8480, "rating": 4.5}
        assert status_additional_data(order, OrderStatus.CANCELLED, OrderStatus.STARTED) == {
            "reason": "Пробки",
            "originalStatus": "started",
        }
        assert status_additional_data(order, OrderStatus.ARRIVED) == {}


class TestDelivery:
    """Повторы и fallback."""

    @pytest.mark.asyncio
    async def test_delivered_first_try(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        task = notifications.order_status_changed(make_order("c"), OrderStatus.CREATED)

        assert await task is True
        event = mock_event_bus.publish.await_args.args[0]
        assert event.event_type == EventTypes.ORDER_STATUS_CHANGED

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        mock_event_bus.publish.side_effect = [EventBusError("down"), EventBusError("down"), None]

        assert await notifications.deliver(DomainEvent(event_type=EventTypes.ORDER_STATUS_CHANGED)) is True
        assert mock_event_bus.publish.await_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_sends_system_fallback(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        failing = DomainEvent(event_type=EventTypes.ORDER_STATUS_CHANGED)
        mock_event_bus.publish.side_effect = [EventBusError("down")] * 3 + [None]

        assert await notifications.deliver(failing) is False

        assert mock_event_bus.publish.await_count == 4
        fallback = mock_event_bus.publish.await_args.args[0]
        assert fallback.event_type == EventTypes.SYSTEM_NOTIFICATION
        assert fallback.payload["payload"]["eventId"] == failing.event_id

    @pytest.mark.asyncio
    async def test_system_event_has_no_fallback(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        mock_event_bus.publish.side_effect = EventBusError("down")

        assert await notifications.system("Плановые работы") is False
        assert mock_event_bus.publish.await_count == 3

    @pytest.mark.asyncio
    async def test_fallback_failure_is_logged_not_raised(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        mock_event_bus.publish.side_effect = EventBusError("down")

        assert await notifications.deliver(DomainEvent(event_type=EventTypes.ORDER_STATUS_CHANGED)) is False
        assert mock_event_bus.publish.await_count == 4

    @pytest.mark.asyncio
    async def test_exponential_backoff(self, mock_event_bus: AsyncMock) -> None:
        sink = NotificationSink(mock_event_bus, attempts=4, backoff_base=0.5)
        mock_event_bus.publish.side_effect = [EventBusError("down")] * 3 + [None]

        with patch("src.core.notifications.service.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await sink.deliver(DomainEvent(event_type=EventTypes.ORDER_STATUS_CHANGED)) is True

        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self, notifications: NotificationSink, mock_event_bus: AsyncMock) -> None:
        for status in (OrderStatus.CREATED, OrderStatus.CANCELLED):
            notifications.order_status_changed(make_order("c"), status)
        assert notifications.pending == 2

        await notifications.drain()

        assert notifications.pending == 0
        assert mock_event_bus.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_drain_without_tasks(self, notifications: NotificationSink) -> None:
        await notifications.drain()
        assert notifications.pending == 0


@pytest.fixture
def closed_channel_bus() -> EventBus:
    """Шина, у которой канал RabbitMQ закрыт после подключения."""
    EventBus._instance = None
    bus = EventBus()
    connection = MagicMock()
    connection.is_closed = False
    bus._connection = connection
    bus._exchange = AsyncMock()
    bus._exchange.publish.side_effect = ChannelInvalidStateError("Channel closed")
    yield bus
    EventBus._instance = None


class TestClosedChannel:
    """Закрытый канал проходит через повторы и fallback."""

    @pytest.mark.asyncio
    async def test_retries_and_reports(self, closed_channel_bus: EventBus) -> None:
        sink = NotificationSink(closed_channel_bus, attempts=3, backoff_base=0)
        failing = DomainEvent(event_type=EventTypes.ORDER_STATUS_CHANGED)

        with patch("src.core.notifications.service.log_error", new=AsyncMock()) as log_error:
            assert await sink.deliver(failing) is False

        assert closed_channel_bus._exchange.publish.await_count == 4
        fallback_message = closed_channel_bus._exchange.publish.await_args.args[0]
        assert failing.event_id in fallback_message.body.decode()
        assert log_error.await_count == 2

    @pytest.mark.asyncio
    async def test_background_task_does_not_fail(self, closed_channel_bus: EventBus) -> None:
        sink = NotificationSink(closed_channel_bus, attempts=2, backoff_base=0)

        task = sink.order_status_changed(make_order("c"), OrderStatus.CONFIRMED)
        await sink.drain()

        assert task.done() and task.exception() is None
        assert task.result() is False
