"""
PaymentAllocator: reparte el total de una venta entre los buckets de tender.

Reglas:
- total = subtotal + depósito (envases). El depósito solo se paga en efectivo
  y nunca se difiere a crédito.
- Efectivo: si lo recibido no cubre el total, el faltante se difiere a
  crédito cuando el cliente tiene crédito disponible; si no, falla.
- Tarjeta / transferencia / regalo: no admiten depósito.
- Mixto: el efectivo cubre al menos el depósito y efectivo + tarjeta = total.

Todas las comparaciones de dinero toleran menos de un centavo.
"""

import logging
from decimal import Decimal
from typing import Optional

from posledger.common.exceptions import ValidationError, InsufficientFundsError
from posledger.common.money import ZERO, to_money, money_eq, money_gt, money_lt
from posledger.modules.events.models import PaymentKind
from posledger.modules.payments.schemas import (
    CashTender, CardTender, TransferTender, GiftTender, MixedTender,
    CreditAccount, PaymentAllocation
)

logger = logging.getLogger(__name__)


class PaymentAllocator:
    """Servicio puro: no toca la base de datos."""

    def allocate(
        self,
        subtotal: Decimal,
        tender,
        deposit_subtotal: Decimal = ZERO,
        credit_account: Optional[CreditAccount] = None
    ) -> PaymentAllocation:
        subtotal = to_money(subtotal)
        deposit = to_money(deposit_subtotal or ZERO)

        if subtotal < 0:
            raise ValidationError("El subtotal no puede ser negativo", field="subtotal")
        if deposit < 0:
            raise ValidationError("El depósito no puede ser negativo", field="deposit_subtotal")

        total = subtotal + deposit

        if isinstance(tender, CashTender):
            return self._allocate_cash(subtotal, deposit, total, tender, credit_account)

        if isinstance(tender, MixedTender):
            return self._allocate_mixed(subtotal, deposit, total, tender)

        if isinstance(tender, (CardTender, TransferTender, GiftTender)):
            if money_gt(deposit, ZERO):
                raise ValidationError(
                    f"El depósito (${deposit}) solo puede pagarse en efectivo",
                    field="deposit_subtotal"
                )
            allocation = PaymentAllocation(kind=PaymentKind(tender.kind), subtotal=subtotal, total=total)
            if isinstance(tender, CardTender):
                allocation.card_for_products = total
            elif isinstance(tender, TransferTender):
                allocation.transfer_amount = total
            else:
                allocation.other_amount = total
            return allocation

        raise ValidationError(f"Tipo de pago no soportado: {type(tender).__name__}", field="tender")

    def _allocate_cash(self, subtotal, deposit, total, tender: CashTender, credit_account) -> PaymentAllocation:
        received = total if tender.amount_received is None else to_money(tender.amount_received)

        allocation = PaymentAllocation(
            kind=PaymentKind.CASH,
            subtotal=subtotal,
            deposit=deposit,
            total=total,
            amount_received=received,
            cash_for_deposit=deposit,
        )

        if not money_lt(received, total):
            allocation.cash_for_products = subtotal
            allocation.change = max(received - total, ZERO)
            return allocation

        if money_lt(received, deposit):
            raise ValidationError(
                f"El efectivo recibido (${received}) no cubre el depósito (${deposit}); "
                "el depósito no puede quedar a crédito",
                field="amount_received"
            )

        shortfall = total - received
        if credit_account is None:
            raise InsufficientFundsError(
                shortfall, ZERO,
                f"Efectivo insuficiente: faltan ${shortfall} y no hay cliente con crédito"
            )

        available = credit_account.available_credit
        if money_gt(shortfall, available):
            logger.warning(
                f"Crédito rechazado para cliente {credit_account.client_id}: "
                f"faltante ${shortfall}, disponible ${available}"
            )
            raise InsufficientFundsError(shortfall, available)

        allocation.cash_for_products = received - deposit
        allocation.credit_amount = shortfall
        allocation.client_id = credit_account.client_id
        return allocation

    def _allocate_mixed(self, subtotal, deposit, total, tender: MixedTender) -> PaymentAllocation:
        cash = to_money(tender.cash_amount)
        card = to_money(tender.card_amount)

        if money_lt(cash, deposit):
            raise ValidationError(
                f"El efectivo (${cash}) debe cubrir al menos el depósito (${deposit})",
                field="cash_amount"
            )
        if not money_eq(cash + card, total):
            raise ValidationError(
                f"Efectivo + tarjeta (${cash + card}) no coincide con el total (${total})",
                field="card_amount"
            )

        return PaymentAllocation(
            kind=PaymentKind.MIXED,
            subtotal=subtotal,
            deposit=deposit,
            total=total,
            cash_for_deposit=deposit,
            cash_for_products=cash - deposit,
            card_for_products=card,
        )
