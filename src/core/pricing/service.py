# src/core/pricing/service.py
"""
Движок ценообразования.
Чистые вычисления без ввода-вывода: одинаковые входные данные
и конфигурация всегда дают одинаковый результат.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from src.common.constants import CarClass, OrderType
from src.common.exceptions import InvalidRequest
from src.config.loader import CarClassPricing, PricingSettings
from src.core.pricing.models import (
    AdditionalCharge,
    ChargeType,
    ModifierType,
    PriceBreakdown,
    PriceEstimate,
    PriceModifier,
    PriceRequest,
)


def round_money(value: float | Decimal) -> int:
    """Округляет сумму до целого рубля (половина вверх)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_night_hour(hour: int, start: int, end: int) -> bool:
    """
    Проверяет попадание часа в ночной интервал [start, end).
    Интервал может переходить через полночь (23 -> 6).
    """
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


class PricingEngine:
    """
    Калькулятор стоимости заказа.

    Алгоритм по типу заказа:
    - аэропорт: фиксированный тариф класса для кода аэропорта;
    - почасовой: первый час * длительность минус скидка по порогам;
    - предзаказ: первый час плюс поминутная оплата сверх первого часа.

    Затем добавляются начисления (остановки, ожидание) и модификаторы
    (ночь, праздник), результат не опускается ниже минимальной цены класса.
    """

    def __init__(self, config: PricingSettings) -> None:
        """
        Args:
            config: Тарифы, скидки и комиссия
        """
        self._config = config
        self._tz = ZoneInfo(config.timezone)

    def _tariff(self, car_class: CarClass) -> CarClassPricing:
        tariff = self._config.car_classes.get(car_class)
        if tariff is None:
            raise InvalidRequest(f"Нет тарифа для класса {car_class.value}")
        return tariff

    # =========================================================================
    # БАЗОВАЯ СТОИМОСТЬ
    # =========================================================================

    def discount_percent_for(self, hours: float, max_discount_percent: float) -> float:
        """Возвращает процент скидки для длительности (пороги по убыванию)."""
        for tier in self._config.hourly_discounts:
            if hours >= tier.hours:
                return min(tier.percent, max_discount_percent)
        return 0.0

    def _airport_price(self, request: PriceRequest, tariff: CarClassPricing) -> tuple[int, int, float]:
        if request.airport is None:
            raise InvalidRequest("Для заказа в аэропорт нужен код аэропорта")
        fee = tariff.airports.fee_for(request.airport)
        return fee, 0, 0.0

    def _hourly_price(self, request: PriceRequest, tariff: CarClassPricing) -> tuple[int, int, float]:
        duration = request.duration_hours
        rules = tariff.rules
        if duration is None:
            raise InvalidRequest("Для почасового заказа нужна длительность")
        if not rules.min_order_duration <= duration <= rules.max_order_duration:
            raise InvalidRequest(
                f"Длительность должна быть от {rules.min_order_duration:g} "
                f"до {rules.max_order_duration:g} часов"
            )

        base = round_money(Decimal(tariff.first_hour) * Decimal(str(duration)))
        percent = self.discount_percent_for(duration, rules.max_discount_percent)
        discount = round_money(Decimal(base) * Decimal(str(percent)) / 100)
        return base, discount, percent

    def _pre_order_price(self, request: PriceRequest, tariff: CarClassPricing) -> tuple[int, int, float]:
        duration = request.duration_hours or 1
        extra_minutes = Decimal(str(max(duration - 1, 0))) * 60
        extra_price = extra_minutes * tariff.minute_rate / 60
        return round_money(tariff.first_hour + extra_price), 0, 0.0

    # =========================================================================
    # НАЧИСЛЕНИЯ И МОДИФИКАТОРЫ
    # =========================================================================

    def localize(self, moment: datetime) -> datetime:
        """Переводит время подачи в часовой пояс тарифов (naive считается локальным)."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self._tz)
        return moment.astimezone(self._tz)

    def _additional_charges(self, request: PriceRequest, tariff: CarClassPricing) -> list[AdditionalCharge]:
        charges: list[AdditionalCharge] = []
        if request.additional_stops:
            charges.append(AdditionalCharge(
                type=ChargeType.EXTRA_STOP,
                amount=request.additional_stops * tariff.rules.extra_stop_rate,
                description=f"Дополнительные остановки: {request.additional_stops}",
            ))
        if request.expected_waiting_minutes:
            charges.append(AdditionalCharge(
                type=ChargeType.WAITING,
                amount=request.expected_waiting_minutes * tariff.rules.waiting_rate,
                description=f"Ожидание: {request.expected_waiting_minutes} мин",
            ))
        return charges

    def _price_modifiers(
        self,
        request: PriceRequest,
        tariff: CarClassPricing,
        price: int,
    ) -> list[PriceModifier]:
        time_based = tariff.time_based
        modifiers: list[PriceModifier] = []

        if request.pickup_datetime is not None:
            hour = self.localize(request.pickup_datetime).hour
            if is_night_hour(hour, time_based.night_hours_start, time_based.night_hours_end):
                modifiers.append(PriceModifier(
                    type=ModifierType.INCREASE,
                    charge=ChargeType.NIGHT_RATE,
                    value=round_money(Decimal(price) * (Decimal(str(time_based.night_rate_multiplier)) - 1)),
                    description="Ночной тариф",
                ))

        if request.is_holiday:
            modifiers.append(PriceModifier(
                type=ModifierType.INCREASE,
                charge=ChargeType.HOLIDAY_RATE,
                value=round_money(Decimal(price) * (Decimal(str(time_based.holiday_rate_multiplier)) - 1)),
                description="Праздничный тариф",
            ))

        return modifiers

    # =========================================================================
    # ПУБЛИЧНЫЙ API
    # =========================================================================

    def calculate_commission(self, price: int) -> int:
        """
        Комиссия платформы: round(price * rate) в границах [min, max].
        Монотонно не убывает по цене.
        """
        commission_cfg = self._config.commission
        commission = round_money(Decimal(price) * Decimal(str(commission_cfg.rate)))
        if commission_cfg.min_amount is not None:
            commission = max(commission, commission_cfg.min_amount)
        if commission_cfg.max_amount is not None:
            commission = min(commission, commission_cfg.max_amount)
        return commission

    def calculate(self, request: PriceRequest) -> PriceEstimate:
        """
        Рассчитывает стоимость заказа.

        Args:
            request: Параметры заказа

        Returns:
            Цена, скидка, начисления, модификаторы и комиссия

        Raises:
            InvalidRequest: нет кода аэропорта или длительность вне допустимых границ
        """
        tariff = self._tariff(request.car_class)

        match request.type:
            case OrderType.AIRPORT:
                base, discount, percent = self._airport_price(request, tariff)
            case OrderType.HOURLY:
                base, discount, percent = self._hourly_price(request, tariff)
            case OrderType.PRE_ORDER:
                base, discount, percent = self._pre_order_price(request, tariff)
            case _:
                raise InvalidRequest(f"Неподдерживаемый тип заказа: {request.type}")

        type_price = base - discount
        charges = self._additional_charges(request, tariff)
        modifiers = self._price_modifiers(request, tariff, type_price)

        charges_amount = sum(c.amount for c in charges)
        modifiers_amount = sum(m.value for m in modifiers)
        final_price = max(type_price + charges_amount + modifiers_amount, tariff.rules.min_price)
        commission = self.calculate_commission(final_price)

        return PriceEstimate(
            base_price=base,
            discount=discount,
            discount_percent=percent,
            final_price=final_price,
            commission=commission,
            additional_charges=charges,
            price_modifiers=modifiers,
            breakdown=PriceBreakdown(
                base_amount=base,
                discount_amount=discount,
                additional_charges_amount=charges_amount,
                modifiers_amount=modifiers_amount,
                commission_amount=commission,
                final_amount=final_price,
            ),
            cancellation_fee=round_money(
                Decimal(final_price) * Decimal(str(tariff.rules.cancellation_fee_percent)) / 100
            ),
            night_rate_applied=any(m.charge == ChargeType.NIGHT_RATE for m in modifiers),
            holiday_rate_applied=any(m.charge == ChargeType.HOLIDAY_RATE for m in modifiers),
        )

    def get_hourly_discounts(self) -> list[dict[str, float]]:
        """Возвращает таблицу скидок почасовой аренды."""
        return [{"hours": d.hours, "percent": d.percent} for d in self._config.hourly_discounts]
