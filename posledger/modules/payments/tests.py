"""
Tests para el reparto de pagos (PaymentAllocator)

Cubre:
- Efectivo exacto, con cambio y con faltante diferido a crédito
- Regla de depósito solo en efectivo
- Pago mixto efectivo + tarjeta
- Tarjeta, transferencia y regalo
"""

import pytest
from decimal import Decimal

from pydantic import TypeAdapter, ValidationError as SchemaValidationError

from posledger.common.exceptions import ValidationError, InsufficientFundsError
from posledger.modules.events.models import PaymentKind
from posledger.modules.payments.allocator import PaymentAllocator
from posledger.modules.payments.schemas import (
    Tender, CashTender, CardTender, TransferTender, GiftTender, MixedTender, CreditAccount
)


# ===== FIXTURES =====

@pytest.fixture
def allocator():
    return PaymentAllocator()


@pytest.fixture
def account():
    """Cliente con límite 500 y 200 pendientes"""
    return CreditAccount(client_id="C-1", credit_limit=Decimal("500"), pending_balance=Decimal("200"))


# ===== TESTS =====

class TestCashAllocation:
    """Tests de pago en efectivo"""

    def test_exact_cash_defaults_to_total(self, allocator):
        allocation = allocator.allocate(Decimal("150"), CashTender())

        assert allocation.kind == PaymentKind.CASH
        assert allocation.total == Decimal("150.00")
        assert allocation.amount_received == Decimal("150.00")
        assert allocation.cash_total == Decimal("150.00")
        assert allocation.change == Decimal("0")
        assert allocation.credit_amount == Decimal("0")

    def test_overpayment_yields_change(self, allocator):
        allocation = allocator.allocate(Decimal("87.50"), CashTender(amount_received=Decimal("100")))

        assert allocation.change == Decimal("12.50")
        assert allocation.cash_total == Decimal("87.50")

    def test_deposit_is_added_to_total(self, allocator):
        allocation = allocator.allocate(Decimal("80"), CashTender(), deposit_subtotal=Decimal("20"))

        assert allocation.total == Decimal("100.00")
        assert allocation.cash_for_deposit == Decimal("20.00")
        assert allocation.cash_for_products == Decimal("80.00")

    def test_shortfall_without_credit_account_fails(self, allocator):
        with pytest.raises(InsufficientFundsError) as exc_info:
            allocator.allocate(Decimal("100"), CashTender(amount_received=Decimal("60")))

        assert exc_info.value.shortfall == Decimal("40.00")

    def test_shortfall_within_available_credit_is_deferred(self, allocator, account):
        allocation = allocator.allocate(
            Decimal("400"), CashTender(amount_received=Decimal("100")), credit_account=account
        )

        assert allocation.credit_amount == Decimal("300.00")
        assert allocation.cash_total == Decimal("100.00")
        assert allocation.client_id == "C-1"

    def test_shortfall_above_available_credit_fails(self, allocator, account):
        with pytest.raises(InsufficientFundsError) as exc_info:
            allocator.allocate(
                Decimal("400.01"), CashTender(amount_received=Decimal("100")), credit_account=account
            )

        assert exc_info.value.available == Decimal("300")

    def test_deposit_can_not_be_deferred(self, allocator, account):
        with pytest.raises(ValidationError):
            allocator.allocate(
                Decimal("80"),
                CashTender(amount_received=Decimal("10")),
                deposit_subtotal=Decimal("20"),
                credit_account=account
            )


class TestMixedAllocation:
    """Tests de pago mixto con total 100 y depósito 20"""

    def test_cash_covers_deposit(self, allocator):
        allocation = allocator.allocate(
            Decimal("80"),
            MixedTender(cash_amount=Decimal("20"), card_amount=Decimal("80")),
            deposit_subtotal=Decimal("20")
        )

        assert allocation.kind == PaymentKind.MIXED
        assert allocation.cash_for_deposit == Decimal("20.00")
        assert allocation.cash_for_products == Decimal("0.00")
        assert allocation.card_for_products == Decimal("80.00")

    def test_cash_below_deposit_fails(self, allocator):
        with pytest.raises(ValidationError):
            allocator.allocate(
                Decimal("80"),
                MixedTender(cash_amount=Decimal("10"), card_amount=Decimal("90")),
                deposit_subtotal=Decimal("20")
            )

    def test_parts_must_sum_to_total(self, allocator):
        with pytest.raises(ValidationError):
            allocator.allocate(
                Decimal("80"),
                MixedTender(cash_amount=Decimal("30"), card_amount=Decimal("80")),
                deposit_subtotal=Decimal("20")
            )


class TestNonCashAllocation:
    """Tests de tarjeta, transferencia y regalo"""

    def test_card_goes_to_card_bucket(self, allocator):
        allocation = allocator.allocate(Decimal("250"), CardTender())

        assert allocation.card_for_products == Decimal("250.00")
        assert allocation.cash_total == Decimal("0")

    def test_transfer_goes_to_transfer_bucket(self, allocator):
        allocation = allocator.allocate(Decimal("250"), TransferTender())

        assert allocation.kind == PaymentKind.TRANSFER
        assert allocation.transfer_amount == Decimal("250.00")

    def test_gift_has_no_drawer_effect(self, allocator):
        allocation = allocator.allocate(Decimal("35"), GiftTender())

        assert allocation.other_amount == Decimal("35.00")
        assert allocation.cash_total == Decimal("0")
        assert allocation.card_for_products == Decimal("0")

    @pytest.mark.parametrize("tender", [CardTender(), TransferTender(), GiftTender()])
    def test_deposit_rejected_for_non_cash(self, allocator, tender):
        with pytest.raises(ValidationError):
            allocator.allocate(Decimal("80"), tender, deposit_subtotal=Decimal("20"))

    def test_negative_subtotal_rejected(self, allocator):
        with pytest.raises(ValidationError):
            allocator.allocate(Decimal("-1"), CardTender())


class TestTenderParsing:
    """El tender se resuelve por ``kind``"""

    def test_discriminated_union(self):
        adapter = TypeAdapter(Tender)

        tender = adapter.validate_python({"kind": "MIXED", "cash_amount": "20", "card_amount": "80"})

        assert isinstance(tender, MixedTender)
        assert tender.card_amount == Decimal("80")
        assert isinstance(adapter.validate_python({"kind": "GIFT"}), GiftTender)

    def test_unknown_kind_rejected(self):
        with pytest.raises(SchemaValidationError):
            TypeAdapter(Tender).validate_python({"kind": "CHEQUE"})
