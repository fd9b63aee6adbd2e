"""
Servicio de créditos de clientes (CreditLedger)

Emisión de créditos por el faltante de una venta y aplicación de abonos.
Un crédito por venta; el abono debe ser positivo y no exceder el saldo.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from posledger.common.clock import Clock, SystemClock
from posledger.common.exceptions import ValidationError, ConflictError, NotFoundError, InsufficientFundsError
from posledger.common.money import ZERO, to_money, money_gt
from posledger.modules.credits.models import ClientCredit, ClientCreditAccount, CreditStatus, OUTSTANDING_STATUSES
from posledger.modules.events.models import CreditPayment, CreditPaymentMethod
from posledger.modules.events.store import EventStore

logger = logging.getLogger(__name__)


class CreditLedger:
    """Créditos por cliente contra un límite de crédito"""

    def __init__(self, db: Session, clock: Optional[Clock] = None, store: Optional[EventStore] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.store = store or EventStore(db, self.clock)

    # ===== EMISIÓN =====

    def issue(
        self,
        client_id: str,
        amount: Decimal,
        source_sale_id: int,
        shift_id: Optional[int] = None,
        notes: Optional[str] = None,
        credit_limit: Optional[Decimal] = None,
        commit: bool = True
    ) -> ClientCredit:
        """
        Crear un crédito PENDING por el faltante de una venta.

        Con credit_limit, el saldo pendiente se vuelve a leer con la cuenta del
        cliente bloqueada y se rechaza el crédito si excede lo disponible.
        """
        if not client_id or not str(client_id).strip():
            raise ValidationError("El crédito requiere un cliente", field="client_id")

        amount = to_money(amount)
        if not money_gt(amount, ZERO):
            raise ValidationError("El monto del crédito debe ser mayor a 0", field="amount")

        existing = self.db.query(ClientCredit).filter(
            ClientCredit.source_sale_id == source_sale_id
        ).first()
        if existing:
            raise ConflictError(f"La venta {source_sale_id} ya tiene el crédito {existing.id}")

        if credit_limit is not None:
            try:
                self._check_limit(client_id, amount, credit_limit)
            except InsufficientFundsError:
                if commit:
                    self.db.rollback()
                raise

        credit = ClientCredit(
            client_id=client_id,
            original_amount=amount,
            paid_amount=ZERO,
            remaining_amount=amount,
            status=CreditStatus.PENDING,
            source_sale_id=source_sale_id,
            shift_id=shift_id,
            notes=notes,
            issued_at=self.clock.now(),
        )

        try:
            self.db.add(credit)
            self.db.flush()
            if commit:
                self.db.commit()
                self.db.refresh(credit)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Crédito duplicado para venta {source_sale_id}: {e}")
            raise ConflictError(f"La venta {source_sale_id} ya tiene un crédito")

        logger.info(f"Crédito {credit.id} emitido a cliente {client_id} por ${amount}")
        return credit

    # ===== ABONOS =====

    def pay(
        self,
        credit_id: int,
        amount: Decimal,
        payment_method: CreditPaymentMethod = CreditPaymentMethod.CASH,
        shift_id: Optional[int] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        commit: bool = True
    ) -> CreditPayment:
        """
        Aplicar un abono.

        Registra el CreditPayment y recalcula pagado/saldo. El estado pasa a
        PAID cuando el saldo llega a 0 (se fija paid_at); si no, PARTIALLY_PAID.
        """
        credit = self.db.query(ClientCredit).filter(
            ClientCredit.id == credit_id
        ).with_for_update().first()
        if not credit:
            raise NotFoundError("Crédito", credit_id)

        amount = to_money(amount)
        if not money_gt(amount, ZERO):
            raise ValidationError("El monto del abono debe ser mayor a 0", field="amount")
        if money_gt(amount, credit.remaining_amount):
            raise ValidationError(
                f"El abono (${amount}) excede el saldo pendiente (${credit.remaining_amount})",
                field="amount"
            )

        payment = CreditPayment(
            credit_id=credit.id,
            amount=amount,
            payment_method=payment_method or CreditPaymentMethod.CASH,
            shift_id=shift_id,
            notes=notes,
        )
        self.store.append(payment, created_by=created_by)

        paid = to_money(credit.paid_amount + amount)
        remaining = to_money(credit.original_amount - paid)
        credit.paid_amount = paid
        if money_gt(remaining, ZERO):
            credit.remaining_amount = remaining
            credit.status = CreditStatus.PARTIALLY_PAID
        else:
            credit.remaining_amount = ZERO
            credit.status = CreditStatus.PAID
            credit.paid_at = payment.created_at

        self.db.flush()
        if commit:
            self.db.commit()

        logger.info(
            f"Abono de ${amount} ({payment.payment_method.value}) al crédito {credit_id}; "
            f"estado {credit.status.value}"
        )
        return payment

    def _lock_account(self, client_id: str) -> ClientCreditAccount:
        """Bloquear (o crear) la cuenta de crédito del cliente."""
        account = self.db.query(ClientCreditAccount).filter(
            ClientCreditAccount.client_id == client_id
        ).with_for_update().first()

        if not account:
            account = ClientCreditAccount(client_id=client_id)
            self.db.add(account)
            self.db.flush()
        return account

    def _check_limit(self, client_id: str, amount: Decimal, credit_limit: Decimal) -> None:
        account = self._lock_account(client_id)
        account.credit_limit = to_money(credit_limit)

        available = self.available_credit(client_id, credit_limit)
        if money_gt(amount, available):
            logger.warning(
                f"Crédito de ${amount} rechazado para cliente {client_id}: disponible ${available}"
            )
            raise InsufficientFundsError(amount, available)

        account.last_issued_at = self.clock.now()
        self.db.flush()

    # ===== CONSULTAS =====

    def pending_balance(self, client_id: str) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(ClientCredit.remaining_amount), 0)).filter(
            ClientCredit.client_id == client_id,
            ClientCredit.status.in_(OUTSTANDING_STATUSES)
        ).scalar()
        return to_money(total or ZERO)

    def available_credit(self, client_id: str, credit_limit: Decimal) -> Decimal:
        """Límite menos el saldo de créditos PENDING/PARTIALLY_PAID"""
        return to_money(credit_limit) - self.pending_balance(client_id)

    def get_credit(self, credit_id: int) -> ClientCredit:
        credit = self.db.query(ClientCredit).filter(ClientCredit.id == credit_id).first()
        if not credit:
            raise NotFoundError("Crédito", credit_id)
        return credit

    def client_credits(self, client_id: str, status: Optional[CreditStatus] = None) -> List[ClientCredit]:
        query = self.db.query(ClientCredit).filter(ClientCredit.client_id == client_id)
        if status is not None:
            query = query.filter(ClientCredit.status == status)
        return query.order_by(ClientCredit.issued_at.desc(), ClientCredit.id.desc()).all()

    def client_summary(self, client_id: str) -> dict:
        """Resumen de crédito del cliente: saldo pendiente y créditos abiertos"""
        pending = [c for c in self.client_credits(client_id) if c.is_outstanding]
        return {
            "client_id": client_id,
            "total_pending": to_money(sum((c.remaining_amount for c in pending), ZERO)),
            "pending_count": len(pending),
            "credits": pending,
        }

    def pending_credits(self) -> List[ClientCredit]:
        return self.db.query(ClientCredit).filter(
            ClientCredit.status.in_(OUTSTANDING_STATUSES)
        ).order_by(ClientCredit.issued_at.desc(), ClientCredit.id.desc()).all()

    def credits_between(self, start: datetime, end: datetime) -> List[ClientCredit]:
        return self.db.query(ClientCredit).filter(
            ClientCredit.issued_at >= start,
            ClientCredit.issued_at <= end
        ).order_by(ClientCredit.issued_at.desc(), ClientCredit.id.desc()).all()

    def payments_between(self, start: datetime, end: datetime, shift_id: Optional[int] = None) -> List[CreditPayment]:
        return self.store.list_between(CreditPayment, start, end, shift_id=shift_id)
