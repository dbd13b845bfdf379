# tests/core/test_driver_directory.py
"""
Тесты справочника водителей (src/core/drivers/service.py).
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from fakes import InMemoryStore, make_driver, make_order, make_user
from src.common.constants import CarClass, DriverStatus, OrderStatus, UserRole
from src.common.exceptions import AuthorizationDenied, InvalidRequest, InvalidStatusTransition, NotFound
from src.core.drivers.service import DriverDirectory, can_change_status
from src.core.users.models import Principal

ADMIN = Principal(user_id="admin-1", role=UserRole.ADMIN)


def _add_driver(store: InMemoryStore, **kw):
    user = store.add_user(make_user(UserRole.DRIVER))
    return store.add_driver(make_driver(user.id, **kw))


def _own(driver) -> Principal:
    return Principal(user_id=driver.user_id, role=UserRole.DRIVER)


class TestStatusGraph:
    """Граф статусов водителя."""

    @pytest.mark.parametrize("current,new", [
        (DriverStatus.OFFLINE, DriverStatus.ONLINE),
        (DriverStatus.ONLINE, DriverStatus.BREAK),
        (DriverStatus.ONLINE, DriverStatus.OFFLINE),
        (DriverStatus.BREAK, DriverStatus.ONLINE),
        (DriverStatus.BREAK, DriverStatus.OFFLINE),
        (DriverStatus.BUSY, DriverStatus.ONLINE),
    ])
    def test_allowed(self, current: DriverStatus, new: DriverStatus) -> None:
        assert can_change_status(current, new)

    @pytest.mark.parametrize("current,new", [
        (DriverStatus.OFFLINE, DriverStatus.BREAK),
        (DriverStatus.OFFLINE, DriverStatus.BUSY),
        (DriverStatus.BUSY, DriverStatus.OFFLINE),
        (DriverStatus.BREAK, DriverStatus.BUSY),
    ])
    def test_rejected(self, current: DriverStatus, new: DriverStatus) -> None:
        assert not can_change_status(current, new)


class TestChangeStatus:
    """Ручная смена статуса."""

    @pytest.mark.asyncio
    async def test_go_online(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store, status=DriverStatus.OFFLINE)

        updated = await directory.change_status(driver.id, DriverStatus.ONLINE, _own(driver))

        assert updated.status == DriverStatus.ONLINE
        assert store.drivers[driver.id].status == DriverStatus.ONLINE

    @pytest.mark.asyncio
    async def test_busy_is_not_manual(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store)

        with pytest.raises(InvalidRequest, match="BUSY"):
            await directory.change_status(driver.id, DriverStatus.BUSY, ADMIN)

    @pytest.mark.asyncio
    async def test_graph_violation(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store, status=DriverStatus.OFFLINE)

        with pytest.raises(InvalidStatusTransition):
            await directory.change_status(driver.id, DriverStatus.BREAK, ADMIN)

    @pytest.mark.asyncio
    async def test_foreign_driver_denied(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store)
        other = _add_driver(store)

        with pytest.raises(AuthorizationDenied):
            await directory.change_status(driver.id, DriverStatus.BREAK, _own(other))

    @pytest.mark.asyncio
    async def test_client_denied(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store)

        with pytest.raises(AuthorizationDenied):
            await directory.change_status(
                driver.id, DriverStatus.BREAK, Principal(user_id=driver.user_id, role=UserRole.CLIENT),
            )

    @pytest.mark.asyncio
    async def test_busy_driver_with_order_stays_busy(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        client = store.add_user(make_user(UserRole.CLIENT))
        driver = _add_driver(store, status=DriverStatus.BUSY)
        store.add_order(make_order(client.id, status=OrderStatus.EN_ROUTE, driver_id=driver.id))

        with pytest.raises(InvalidRequest, match="активный заказ"):
            await directory.change_status(driver.id, DriverStatus.ONLINE, ADMIN)

        assert store.drivers[driver.id].status == DriverStatus.BUSY

    @pytest.mark.asyncio
    async def test_missing_driver(self, directory: DriverDirectory) -> None:
        with pytest.raises(NotFound):
            await directory.change_status("missing", DriverStatus.ONLINE, ADMIN)


class TestQueries:
    """Поиск и чтение."""

    @pytest.mark.asyncio
    async def test_available_excludes_busy_slot(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        client = store.add_user(make_user(UserRole.CLIENT))
        free = _add_driver(store)
        taken = _add_driver(store)
        _add_driver(store, car_class=CarClass.ELITE)
        booked = store.add_order(make_order(client.id, status=OrderStatus.CONFIRMED, driver_id=taken.id))

        drivers = await directory.find_available_drivers(CarClass.PREMIUM, booked.pickup_datetime)
        assert [d.id for d in drivers] == [free.id]

        later = await directory.find_available_drivers(
            CarClass.PREMIUM, booked.pickup_datetime + timedelta(hours=5),
        )
        assert {d.id for d in later} == {free.id, taken.id}

    @pytest.mark.asyncio
    async def test_get_driver(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store)

        assert (await directory.get_driver(driver.id)).id == driver.id
        assert (await directory.get_driver_by_user(driver.user_id)).id == driver.id
        assert await directory.get_driver_by_user("nobody") is None
        with pytest.raises(NotFound):
            await directory.get_driver("missing")


class TestLocation:
    """Обновление координат."""

    @pytest.mark.asyncio
    async def test_update_own_location(
        self, directory: DriverDirectory, store: InMemoryStore, mock_redis: AsyncMock,
    ) -> None:
        driver = _add_driver(store)

        location = await directory.update_location(driver.id, 55.75, 37.61, _own(driver))

        assert (location.latitude, location.longitude) == (55.75, 37.61)
        key, payload = mock_redis.set_json.await_args.args
        assert key == f"driver:location:{driver.id}"
        assert payload["latitude"] == 55.75
        assert mock_redis.set_json.await_args.kwargs["ttl"] == 300

    @pytest.mark.asyncio
    async def test_foreign_location_denied(self, directory: DriverDirectory, store: InMemoryStore) -> None:
        driver = _add_driver(store)
        other = _add_driver(store)

        with pytest.raises(AuthorizationDenied):
            await directory.update_location(driver.id, 55.0, 37.0, _own(other))
