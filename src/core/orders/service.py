# src/core/orders/service.py
"""
Сервис для работы с заказами.
Создание с расчётом цены и списанием бонусов, чтение с кэшем,
отмена, оценка поездки и выборки для клиентов и водителей.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from src.common.constants import (
    AIRPORT_KEYWORDS,
    AirportCode,
    CarClass,
    OrderStatus,
    OrderType,
    PaymentStatus,
    PaymentType,
    TypeMsg,
    UserRole,
)
from src.common.exceptions import AuthorizationDenied, InvalidRequest, NotFound
from src.common.logger import log_info
from src.config.loader import OrderSettings
from src.core.notifications.service import NotificationSink
from src.core.orders import authorization
from src.core.orders.cache import OrderCache
from src.core.orders.models import Order, OrderCreateDTO, StatusMetadata
from src.core.orders.state_machine import OrderStatusMachine, validate_rating
from src.core.orders.statistics import (
    ClientStatistics,
    DriverStatistics,
    build_client_statistics,
    build_driver_statistics,
)
from src.core.pricing.models import PriceEstimate, PriceRequest
from src.core.pricing.service import PricingEngine
from src.core.unit_of_work import UnitOfWorkFactory
from src.core.users.models import Principal

MAX_PAGE_SIZE = 100


def detect_airport(*addresses: Optional[str]) -> Optional[AirportCode]:
    """Определяет аэропорт по ключевым словам в адресах."""
    for address in addresses:
        if not address:
            continue
        lowered = address.lower()
        for keyword, code in AIRPORT_KEYWORDS.items():
            if keyword in lowered:
                return code
    return None


class OrderService:
    """
    Сервис заказов.
    Переходы статусов делегируются OrderStatusMachine.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        pricing: PricingEngine,
        state_machine: OrderStatusMachine,
        cache: OrderCache,
        notifications: NotificationSink,
        settings: OrderSettings,
    ) -> None:
        self._uow_factory = uow_factory
        self._pricing = pricing
        self._state_machine = state_machine
        self._cache = cache
        self._notifications = notifications
        self._settings = settings

    # =========================================================================
    # РАСЧЁТ СТОИМОСТИ
    # =========================================================================

    def calculate_price(self, request: PriceRequest) -> PriceEstimate:
        """Оценка стоимости без сохранения."""
        return self._pricing.calculate(request)

    def get_hourly_discounts(self) -> list[dict[str, float]]:
        """Таблица скидок почасовой аренды, от большего порога к меньшему."""
        return self._pricing.get_hourly_discounts()

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    def _validate_create(self, dto: OrderCreateDTO, now: datetime) -> tuple[datetime, Optional[AirportCode]]:
        """Проверяет входные данные по типу заказа. Возвращает время подачи и аэропорт."""
        pickup = self._pricing.localize(dto.pickup_datetime)
        if pickup < now:
            raise InvalidRequest("Время подачи уже прошло")

        airport = dto.airport_code
        match dto.type:
            case OrderType.AIRPORT:
                airport = airport or detect_airport(dto.destination_address, dto.pickup_address)
                if airport is None:
                    raise InvalidRequest("Для заказа в аэропорт нужен код аэропорта")
            case OrderType.HOURLY:
                if dto.duration_hours is None:
                    raise InvalidRequest("Для почасового заказа нужна длительность")
                low, high = self._settings.MIN_HOURLY_DURATION, self._settings.MAX_HOURLY_DURATION
                if not low <= dto.duration_hours <= high:
                    raise InvalidRequest(f"Длительность почасового заказа от {low:g} до {high:g} часов")
            case OrderType.PRE_ORDER:
                advance = timedelta(minutes=self._settings.MIN_PRE_ORDER_ADVANCE_MINUTES)
                if pickup < now + advance:
                    raise InvalidRequest(
                        f"Предзаказ оформляется минимум за "
                        f"{self._settings.MIN_PRE_ORDER_ADVANCE_MINUTES} минут"
                    )
        return pickup, airport

    @staticmethod
    def _bonus_to_apply(dto: OrderCreateDTO, balance: int, price: int) -> int:
        match dto.payment_type:
            case PaymentType.BONUS:
                if balance < price:
                    raise InvalidRequest("Недостаточно бонусов для оплаты заказа")
                return price
            case PaymentType.MIXED:
                return min(dto.bonus_amount, balance, price)
            case _:
                return 0

    async def create_order(self, principal: Principal, dto: OrderCreateDTO) -> Order:
        """
        Создаёт заказ.

        Args:
            principal: Клиент
            dto: Данные заказа

        Returns:
            Заказ в статусе CREATED

        Raises:
            AuthorizationDenied: вызывающий не клиент
            InvalidRequest: данные не проходят проверки или не хватает бонусов
            NotFound: пользователя нет
        """
        if principal.role != UserRole.CLIENT:
            raise AuthorizationDenied("Создавать заказы может только клиент")

        now = datetime.now(timezone.utc)
        pickup, airport = self._validate_create(dto, now)

        estimate = self._pricing.calculate(PriceRequest(
            type=dto.type,
            car_class=dto.car_class,
            duration_hours=dto.duration_hours,
            airport=airport,
            pickup_datetime=pickup,
            is_holiday=dto.is_holiday,
            additional_stops=dto.additional_stops,
            expected_waiting_minutes=dto.expected_waiting_minutes,
        ))
        price = estimate.final_price

        async with self._uow_factory.begin() as uow:
            user = await uow.users.get_by_id(principal.user_id, for_update=True)
            if user is None:
                raise NotFound(f"Пользователь {principal.user_id} не найден")

            bonus = self._bonus_to_apply(dto, user.bonus_balance, price)
            if bonus > 0:
                await uow.users.adjust_bonus_balance(user.id, -bonus)

            order = await uow.orders.create(Order(
                id=str(uuid4()),
                order_number=await uow.orders.next_order_number(self._pricing.localize(now)),
                client_id=user.id,
                type=dto.type,
                status=OrderStatus.CREATED,
                car_class=dto.car_class,
                pickup_datetime=pickup,
                pickup_address=dto.pickup_address,
                pickup_latitude=dto.pickup_latitude,
                pickup_longitude=dto.pickup_longitude,
                destination_address=dto.destination_address,
                destination_latitude=dto.destination_latitude,
                destination_longitude=dto.destination_longitude,
                duration_hours=dto.duration_hours,
                airport_code=airport,
                additional_stops=dto.additional_stops,
                estimated_price=price,
                commission=estimate.commission,
                payment_type=dto.payment_type,
                payment_status=PaymentStatus.COMPLETED if bonus >= price else PaymentStatus.PENDING,
                bonus_amount=bonus,
                comment=dto.comment,
            ))

        await log_info(
            f"Создан заказ {order.order_number}: {order.type.value}, {order.car_class.value}, "
            f"{price} руб., бонусами {bonus}",
            type_msg=TypeMsg.INFO,
        )
        self._notifications.order_status_changed(order, OrderStatus.CREATED)
        return order

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_order(self, principal: Principal, order_id: str) -> Order:
        """
        Заказ для клиента-владельца, назначенного водителя или администратора.

        Raises:
            NotFound: заказа нет
            AuthorizationDenied: нет доступа
        """
        order = await self._cache.get(order_id)
        if order is None:
            async with self._uow_factory.read() as uow:
                order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFound(f"Заказ {order_id} не найден")
            await self._cache.set(order)

        driver = None
        if principal.role == UserRole.DRIVER and order.driver_id:
            async with self._uow_factory.read() as uow:
                driver = await uow.drivers.get_by_id(order.driver_id)

        decision = authorization.can_view(order, principal, driver)
        if not decision.allowed:
            raise AuthorizationDenied(decision.reason)
        return order

    async def get_client_orders(self, principal: Principal, limit: int = 20, offset: int = 0) -> list[Order]:
        """История заказов клиента."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        async with self._uow_factory.read() as uow:
            return await uow.orders.list_by_client(principal.user_id, limit, max(0, offset))

    async def get_upcoming_orders(self, principal: Principal) -> list[Order]:
        """Предстоящие незавершённые заказы клиента."""
        async with self._uow_factory.read() as uow:
            return await uow.orders.list_upcoming(principal.user_id, datetime.now(timezone.utc))

    async def get_available_orders(
        self,
        principal: Principal,
        car_class: Optional[CarClass] = None,
    ) -> list[Order]:
        """
        Новые заказы без водителя.
        Водителю показываются заказы его класса, администратору любые.
        """
        if principal.role == UserRole.CLIENT:
            raise AuthorizationDenied("Список свободных заказов доступен водителям")

        async with self._uow_factory.read() as uow:
            if principal.role == UserRole.DRIVER:
                driver = await uow.drivers.get_by_user_id(principal.user_id)
                if driver is None:
                    raise NotFound("Профиль водителя не найден")
                car_class = driver.car_class
            return await uow.orders.list_available(car_class)

    async def get_driver_active_order(self, principal: Principal) -> Optional[Order]:
        """Текущий активный заказ водителя-вызывающего."""
        async with self._uow_factory.read() as uow:
            driver = await uow.drivers.get_by_user_id(principal.user_id)
            if driver is None:
                raise NotFound("Профиль водителя не найден")
            return await uow.orders.get_active_by_driver(driver.id)

    # =========================================================================
    # СТАТИСТИКА
    # =========================================================================

    async def get_client_statistics(self, principal: Principal) -> ClientStatistics:
        """
        Статистика заказов клиента-вызывающего.

        Raises:
            AuthorizationDenied: вызывающий не клиент
        """
        if principal.role != UserRole.CLIENT:
            raise AuthorizationDenied("Статистика заказов доступна клиенту")

        async with self._uow_factory.read() as uow:
            orders = await uow.orders.list_all_by_client(principal.user_id)
        return build_client_statistics(orders, datetime.now(timezone.utc))

    async def get_driver_statistics(self, principal: Principal) -> DriverStatistics:
        """
        Статистика, заработок и баланс комиссии водителя-вызывающего.
        Сегодняшний срез считается по календарному дню часового пояса тарифов.

        Raises:
            AuthorizationDenied: вызывающий не водитель
            NotFound: профиля водителя нет
        """
        if principal.role != UserRole.DRIVER:
            raise AuthorizationDenied("Статистика водителя доступна только водителю")

        async with self._uow_factory.read() as uow:
            driver = await uow.drivers.get_by_user_id(principal.user_id)
            if driver is None:
                raise NotFound("Профиль водителя не найден")
            orders = await uow.orders.list_by_driver(driver.id)
            ledger_earnings = await uow.ledger.driver_earnings(driver.id)

        return build_driver_statistics(
            orders,
            driver,
            ledger_earnings,
            datetime.now(timezone.utc),
            lambda moment: self._pricing.localize(moment).date(),
        )

    # =========================================================================
    # ИЗМЕНЕНИЕ
    # =========================================================================

    async def update_status(
        self,
        principal: Principal,
        order_id: str,
        new_status: OrderStatus,
        metadata: Optional[StatusMetadata] = None,
    ) -> Order:
        """Переход статуса через машину состояний."""
        return await self._state_machine.update_status(order_id, new_status, principal, metadata)

    async def cancel_order(self, principal: Principal, order_id: str, reason: Optional[str] = None) -> Order:
        """
        Отмена заказа клиентом-владельцем или администратором.
        Списанные бонусы возвращаются клиенту.
        """
        if principal.role not in (UserRole.CLIENT, UserRole.ADMIN):
            raise AuthorizationDenied("Отменить заказ может клиент или администратор")
        return await self._state_machine.update_status(
            order_id, OrderStatus.CANCELLED, principal, StatusMetadata(reason=reason),
        )

    async def rate_order(
        self,
        principal: Principal,
        order_id: str,
        rating: float,
        comment: Optional[str] = None,
    ) -> Order:
        """
        Оценка завершённого заказа клиентом, если она не была поставлена при завершении.

        Raises:
            InvalidRequest: оценка вне [1, 5], заказ не завершён или уже оценён
            AuthorizationDenied: вызывающий не владелец
            NotFound: заказа нет
        """
        validate_rating(rating)

        async with self._uow_factory.begin() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if order is None:
                raise NotFound(f"Заказ {order_id} не найден")
            if principal.role != UserRole.CLIENT or order.client_id != principal.user_id:
                raise AuthorizationDenied("Оценить заказ может только его клиент")
            if order.status != OrderStatus.COMPLETED:
                raise InvalidRequest("Оценить можно только завершённый заказ")
            if order.rating is not None:
                raise InvalidRequest("Заказ уже оценён")

            order = await uow.orders.update(order.model_copy(update={
                "rating": rating,
                "rating_comment": comment,
            }))

            if order.driver_id:
                driver = await uow.drivers.get_by_id(order.driver_id, for_update=True)
                if driver is not None:
                    # Поездка уже учтена в total_rides при завершении
                    rides = max(driver.total_rides, 1)
                    new_rating = round((driver.rating * (rides - 1) + rating) / rides, 2)
                    await uow.drivers.update(driver.model_copy(update={"rating": new_rating}))

        await self._cache.invalidate(order.id)
        await log_info(f"Заказ {order.order_number} оценён: {rating:g}", type_msg=TypeMsg.INFO)
        return order
