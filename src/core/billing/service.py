# src/core/billing/service.py
"""
Сервис биллинга.
Финансовое закрытие завершённого заказа: платёж, комиссия водителя, кэшбэк клиенту.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING, Optional

from src.common.constants import PaymentStatus, TransactionStatus, TransactionType, TypeMsg
from src.common.logger import log_info
from src.core.billing.models import Transaction
from src.core.drivers.models import Driver
from src.core.orders.models import Order
from src.core.pricing.service import PricingEngine

if TYPE_CHECKING:
    from src.core.unit_of_work import UnitOfWork


@dataclass
class SettlementResult:
    """Результат закрытия заказа."""
    order: Order
    driver: Driver
    payment: Transaction
    cashback: Optional[Transaction] = None


class BillingService:
    """
    Сервис биллинга.

    Вызывается внутри транзакции перехода в COMPLETED: все записи
    (проводки, бонусы клиента) откатываются вместе с заказом.
    """

    def __init__(self, pricing: PricingEngine, cashback_percent: float = 5.0) -> None:
        """
        Args:
            pricing: Движок цен (расчёт комиссии по итоговой цене)
            cashback_percent: Процент кэшбэка клиенту бонусами
        """
        self._pricing = pricing
        self._cashback_percent = cashback_percent

    def cashback_for(self, price: int) -> int:
        """Кэшбэк бонусами за поездку, дробная часть отбрасывается."""
        amount = Decimal(price) * Decimal(str(self._cashback_percent)) / 100
        return int(amount.to_integral_value(rounding=ROUND_FLOOR))

    async def settle_completion(self, uow: UnitOfWork, order: Order, driver: Driver) -> SettlementResult:
        """
        Проводит оплату завершённого заказа.

        Args:
            uow: Текущая единица работы
            order: Заказ с заполненной actual_price
            driver: Заблокированная запись водителя

        Returns:
            Обновлённые (но ещё не сохранённые) заказ и водитель плюс проводки
        """
        price = order.actual_price if order.actual_price is not None else order.estimated_price
        commission = self._pricing.calculate_commission(price)

        payment = await uow.ledger.create(Transaction(
            type=TransactionType.PAYMENT,
            status=TransactionStatus.COMPLETED,
            amount=price,
            commission=commission,
            order_id=order.id,
            driver_id=driver.id,
            user_id=order.client_id,
            description=f"Оплата заказа {order.order_number}",
        ))

        cashback: Optional[Transaction] = None
        cashback_amount = self.cashback_for(price)
        if cashback_amount > 0:
            await uow.users.adjust_bonus_balance(order.client_id, cashback_amount)
            cashback = await uow.ledger.create(Transaction(
                type=TransactionType.BONUS,
                status=TransactionStatus.COMPLETED,
                amount=cashback_amount,
                order_id=order.id,
                user_id=order.client_id,
                description=f"Кэшбэк {self._cashback_percent:g}% за заказ {order.order_number}",
            ))

        await log_info(
            f"Заказ {order.order_number} оплачен: {price} руб., комиссия {commission}, "
            f"кэшбэк {cashback_amount}",
            type_msg=TypeMsg.INFO,
        )

        return SettlementResult(
            order=order.model_copy(update={
                "commission": commission,
                "payment_status": PaymentStatus.COMPLETED,
            }),
            driver=driver.model_copy(update={
                "commission_balance": driver.commission_balance + commission,
            }),
            payment=payment,
            cashback=cashback,
        )

    async def refund_bonus(self, uow: UnitOfWork, order: Order) -> Optional[Transaction]:
        """
        Возвращает списанные при создании бонусы клиенту.

        Returns:
            Проводка возврата или None, если бонусы не списывались
        """
        if order.bonus_amount <= 0 or order.payment_status == PaymentStatus.REFUNDED:
            return None

        await uow.users.adjust_bonus_balance(order.client_id, order.bonus_amount)
        refund = await uow.ledger.create(Transaction(
            type=TransactionType.REFUND,
            status=TransactionStatus.COMPLETED,
            amount=order.bonus_amount,
            order_id=order.id,
            user_id=order.client_id,
            description=f"Возврат бонусов по заказу {order.order_number}",
        ))
        await log_info(
            f"Возвращено {order.bonus_amount} бонусов по заказу {order.order_number}",
            type_msg=TypeMsg.INFO,
        )
        return refund
