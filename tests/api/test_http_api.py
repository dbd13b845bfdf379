# tests/api/test_http_api.py
"""
Тесты HTTP API (src/api/app.py).
Сервисы подменяются моками, lifespan не запускается.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from fakes import make_driver, make_order
from src.api.app import app
from src.common.constants import DriverStatus, OrderStatus, PaymentType, UserRole
from src.common.exceptions import InvalidStatusTransition, NotFound, PersistenceFailure, ResourceUnavailable
from src.core.drivers.models import DriverLocation
from src.core.orders.statistics import build_client_statistics, build_driver_statistics
from src.core.pricing.models import PriceRequest

client = TestClient(app)

CLIENT_HEADERS = {"X-User-Id": "client-1", "X-User-Role": "client"}
DRIVER_HEADERS = {"X-User-Id": "driver-user-1", "X-User-Role": "driver"}
ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


@pytest.fixture
def order_service(mock_order_service: MagicMock):
    with patch("src.api.dependencies.get_order_service", new=AsyncMock(return_value=mock_order_service)):
        yield mock_order_service


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.assign = AsyncMock()
    with patch("src.api.dependencies.get_assignment_engine", new=AsyncMock(return_value=engine)):
        yield engine


@pytest.fixture
def directory():
    directory = MagicMock()
    directory.change_status = AsyncMock()
    directory.update_location = AsyncMock()
    directory.get_driver_by_user = AsyncMock()
    with patch("src.api.dependencies.get_driver_directory", new=AsyncMock(return_value=directory)):
        yield directory


class TestPrincipal:
    """Заголовки участника."""

    def test_missing_headers(self, order_service) -> None:
        response = client.get("/api/v1/orders/order-1")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"
        order_service.get_order.assert_not_awaited()

    def test_unknown_role(self, order_service) -> None:
        response = client.get("/api/v1/orders/order-1", headers={"X-User-Id": "u", "X-User-Role": "guest"})

        assert response.status_code == 400
        assert "guest" in response.json()["error"]["message"]

    def test_role_is_case_insensitive(self, order_service) -> None:
        order_service.get_order.return_value = make_order("client-1")

        assert client.get("/api/v1/orders/order-1", headers=ADMIN_HEADERS).status_code == 200
        principal = order_service.get_order.await_args.args[0]
        assert principal.role == UserRole.ADMIN


class TestCalculate:
    """Расчёт стоимости."""

    def test_client_gets_estimate(self, order_service, pricing) -> None:
        order_service.calculate_price = MagicMock(side_effect=pricing.calculate)

        response = client.post(
            "/api/v1/orders/calculate",
            json={"type": "hourly", "car_class": "premium", "duration_hours": 2},
            headers=CLIENT_HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["base_price"], body["final_price"], body["commission"]) == (8400, 7980, 1995)
        assert isinstance(order_service.calculate_price.call_args.args[0], PriceRequest)

    def test_driver_denied(self, order_service) -> None:
        response = client.post(
            "/api/v1/orders/calculate",
            json={"type": "hourly", "car_class": "premium", "duration_hours": 2},
            headers=DRIVER_HEADERS,
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_DENIED"

    def test_invalid_body(self, order_service) -> None:
        response = client.post(
            "/api/v1/orders/calculate",
            json={"type": "limousine", "car_class": "premium"},
            headers=CLIENT_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"]["errors"]

    def test_hourly_discounts(self, order_service, pricing) -> None:
        order_service.get_hourly_discounts = MagicMock(side_effect=pricing.get_hourly_discounts)

        response = client.get("/api/v1/price/hourly-discounts")

        assert response.status_code == 200
        body = response.json()
        assert body[0] == {"hours": 12, "percent": 30}
        assert body[-1] == {"hours": 2, "percent": 5}


class TestOrders:
    """Заказы."""

    def test_create(self, order_service) -> None:
        created = make_order("client-1", payment_type=PaymentType.CASH)
        order_service.create_order.return_value = created
        pickup = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

        response = client.post(
            "/api/v1/orders",
            json={
                "type": "hourly",
                "car_class": "premium",
                "pickup_datetime": pickup,
                "pickup_address": "Москва, Тверская 1",
                "pickup_latitude": 55.76,
                "pickup_longitude": 37.61,
                "duration_hours": 2,
                "payment_type": "cash",
            },
            headers=CLIENT_HEADERS,
        )

        assert response.status_code == 201
        assert response.json()["id"] == created.id
        principal, dto = order_service.create_order.await_args.args
        assert principal.user_id == "client-1"
        assert dto.duration_hours == 2

    def test_history_limit_validated(self, order_service) -> None:
        response = client.get("/api/v1/orders/user/history?limit=500", headers=CLIENT_HEADERS)
        assert response.status_code == 400

    def test_history(self, order_service) -> None:
        order_service.get_client_orders.return_value = [make_order("client-1")]

        response = client.get("/api/v1/orders/user/history?limit=5&offset=10", headers=CLIENT_HEADERS)

        assert response.status_code == 200
        assert len(response.json()) == 1
        assert order_service.get_client_orders.await_args.kwargs == {"limit": 5, "offset": 10}

    def test_driver_active_order_empty(self, order_service) -> None:
        order_service.get_driver_active_order.return_value = None

        response = client.get("/api/v1/orders/driver/active", headers=DRIVER_HEADERS)

        assert response.status_code == 200
        assert response.json() is None

    def test_status_update_passes_metadata(self, order_service) -> None:
        order_service.update_status.return_value = make_order("client-1", status=OrderStatus.COMPLETED)

        response = client.patch(
            "/api/v1/orders/order-1/status",
            json={"status": "completed", "rating": 5, "additional_charges": 500},
            headers=DRIVER_HEADERS,
        )

        assert response.status_code == 200
        _, order_id, status, metadata = order_service.update_status.await_args.args
        assert (order_id, status) == ("order-1", OrderStatus.COMPLETED)
        assert (metadata.rating, metadata.additional_charges) == (5, 500)

    def test_cancel(self, order_service) -> None:
        order_service.cancel_order.return_value = make_order("client-1", status=OrderStatus.CANCELLED)

        response = client.patch("/api/v1/orders/order-1/cancel", json={"reason": "Планы изменились"}, headers=CLIENT_HEADERS)

        assert response.status_code == 200
        assert order_service.cancel_order.await_args.args[2] == "Планы изменились"

    def test_assign(self, engine) -> None:
        engine.assign.return_value = make_order("client-1", status=OrderStatus.DRIVER_ASSIGNED, driver_id="d-1")

        response = client.post("/api/v1/orders/order-1/assign", headers=CLIENT_HEADERS)

        assert response.status_code == 200
        assert response.json()["driver_id"] == "d-1"
        assert engine.assign.await_args.args[0] == "order-1"


class TestErrorMapping:
    """Прикладные ошибки в HTTP-статусы."""

    @pytest.mark.parametrize("error,status,code", [
        (NotFound("Заказ не найден"), 404, "NOT_FOUND"),
        (ResourceUnavailable("Нет свободных водителей"), 409, "RESOURCE_UNAVAILABLE"),
        (PersistenceFailure("Ошибка хранилища"), 503, "PERSISTENCE_FAILURE"),
    ])
    def test_status_codes(self, order_service, error, status: int, code: str) -> None:
        order_service.get_order.side_effect = error

        response = client.get("/api/v1/orders/order-1", headers=CLIENT_HEADERS)

        assert response.status_code == status
        assert response.json() == {"error": {"code": code, "message": error.message}}

    def test_transition_details(self, order_service) -> None:
        order_service.update_status.side_effect = InvalidStatusTransition(
            "Недопустимый переход", details={"from": "created", "to": "completed"},
        )

        response = client.patch("/api/v1/orders/order-1/status", json={"status": "completed"}, headers=ADMIN_HEADERS)

        assert response.status_code == 409
        assert response.json()["error"]["details"] == {"from": "created", "to": "completed"}


class TestDrivers:
    """Водители."""

    def test_change_status(self, directory) -> None:
        directory.change_status.return_value = make_driver("driver-user-1", status=DriverStatus.BREAK)

        response = client.patch("/api/v1/drivers/d-1/status", json={"status": "break"}, headers=DRIVER_HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "break"

    def test_client_cannot_change_status(self, directory) -> None:
        response = client.patch("/api/v1/drivers/d-1/status", json={"status": "online"}, headers=CLIENT_HEADERS)

        assert response.status_code == 403
        directory.change_status.assert_not_awaited()

    def test_location(self, directory) -> None:
        now = datetime.now(timezone.utc)
        directory.update_location.return_value = DriverLocation(latitude=55.75, longitude=37.61, updated_at=now)

        response = client.put(
            "/api/v1/drivers/d-1/location", json={"latitude": 55.75, "longitude": 37.61}, headers=DRIVER_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["latitude"] == 55.75

    def test_invalid_location(self, directory) -> None:
        response = client.put(
            "/api/v1/drivers/d-1/location", json={"latitude": 95, "longitude": 37.61}, headers=DRIVER_HEADERS,
        )

        assert response.status_code == 400
        directory.update_location.assert_not_awaited()

    def test_current_driver(self, directory) -> None:
        directory.get_driver_by_user.return_value = make_driver("driver-user-1")

        response = client.get("/api/v1/drivers/me", headers=DRIVER_HEADERS)

        assert response.status_code == 200
        assert response.json()["user_id"] == "driver-user-1"
        directory.get_driver_by_user.assert_awaited_once_with("driver-user-1")

    def test_current_driver_without_profile(self, directory) -> None:
        directory.get_driver_by_user.return_value = None

        response = client.get("/api/v1/drivers/me", headers=DRIVER_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestStatistics:
    """Статистика клиента и водителя."""

    def test_client_statistics(self, order_service) -> None:
        now = datetime.now(timezone.utc)
        orders = [
            make_order("client-1", status=OrderStatus.COMPLETED, actual_price=8480),
            make_order("client-1", status=OrderStatus.CANCELLED),
        ]
        order_service.get_client_statistics.return_value = build_client_statistics(orders, now)

        response = client.get("/api/v1/orders/user/statistics", headers=CLIENT_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert (body["total_orders"], body["completed_orders"], body["total_spent"]) == (2, 1, 8480)
        assert body["last_month"]["amount"] == 8480

    def test_driver_cannot_read_client_statistics(self, order_service) -> None:
        response = client.get("/api/v1/orders/user/statistics", headers=DRIVER_HEADERS)

        assert response.status_code == 403
        order_service.get_client_statistics.assert_not_awaited()

    @pytest.mark.parametrize("path", ["/api/v1/orders/driver/statistics", "/api/v1/drivers/me/stats"])
    def test_driver_statistics(self, order_service, path: str) -> None:
        driver = make_driver("driver-user-1", commission_balance=1995)
        completed = make_order("client-1", driver_id=driver.id, status=OrderStatus.COMPLETED, actual_price=7980)
        now = datetime.now(timezone.utc)
        order_service.get_driver_statistics.return_value = build_driver_statistics(
            [completed], driver, 5985, now, lambda moment: moment.date(),
        )

        response = client.get(path, headers=DRIVER_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["total_earned"] == 7980 - 1995
        assert body["commission_balance"] == 1995
        assert body["ledger_earnings"] == 5985
        principal = order_service.get_driver_statistics.await_args.args[0]
        assert principal.user_id == "driver-user-1"

    def test_client_cannot_read_driver_statistics(self, order_service) -> None:
        response = client.get("/api/v1/drivers/me/stats", headers=CLIENT_HEADERS)

        assert response.status_code == 403
        order_service.get_driver_statistics.assert_not_awaited()


class TestHealth:
    """Health check."""

    def test_degraded_without_infrastructure(self) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["dependencies"] == {"postgres": "unhealthy", "redis": "unhealthy", "rabbitmq": "unhealthy"}
