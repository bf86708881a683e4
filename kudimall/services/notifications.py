# kudimall/services/notifications.py
# Диспетчер уведомлений о заказах. Доставка (SMS/email) выполняется внешним сервисом,
# здесь только контракт, дефолтная реализация-лог и безопасный запуск «выстрелил и забыл».

from __future__ import annotations

import logging
from decimal import Decimal

from kudimall.core.config import settings

logger = logging.getLogger(__name__)


def to_e164(phone: str, country_code: str | None = None) -> str:
    """0241234567 -> +233241234567. Номера уже в E.164 возвращаются как есть."""
    code = country_code or settings.PHONE_COUNTRY_CODE
    phone = phone.strip().replace(" ", "")
    if phone.startswith("+"):
        return phone
    if phone.startswith("0"):
        phone = phone[1:]
    return f"+{code}{phone}"


class NotificationDispatcher:
    """Базовый диспетчер: только пишет в лог. Реальные транспорты переопределяют метод."""

    def notify_order_confirmed(
        self,
        order_id: int,
        customer_name: str,
        customer_phone_e164: str,
        total_amount: Decimal,
    ) -> None:
        logger.info(
            f"[order={order_id}] confirmation for {customer_name} <{customer_phone_e164}>, total={total_amount}"
        )


def send_order_confirmation(
    dispatcher: NotificationDispatcher,
    order_id: int,
    customer_name: str,
    customer_phone_e164: str,
    total_amount: Decimal,
) -> None:
    """Best-effort: ошибка доставки логируется и никогда не доходит до заказа."""
    try:
        dispatcher.notify_order_confirmed(order_id, customer_name, customer_phone_e164, total_amount)
    except Exception as e:
        logger.error(f"[order={order_id}] failed to send order confirmation: {e}", exc_info=True)
