"""
Tests para el checkout

Cubre:
- Venta en efectivo con descuento de inventario
- Venta con faltante diferido a crédito
- Rechazo por crédito insuficiente sin dejar la venta a medias
- Advertencias de inventario sin revertir la venta
"""

import pytest
from decimal import Decimal

from posledger.common.exceptions import ValidationError, NotFoundError, InsufficientFundsError
from posledger.modules.credits.models import CreditStatus
from posledger.modules.credits.service import CreditLedger
from posledger.modules.events.models import PaymentKind, Sale
from posledger.modules.inventory.service import InventoryLedger
from posledger.modules.payments.schemas import CashTender, CardTender
from posledger.modules.sales.schemas import SaleItem
from posledger.modules.sales.service import CheckoutService
from posledger.modules.shifts.service import ShiftManager


# ===== FIXTURES =====

@pytest.fixture
def shift(db, clock):
    return ShiftManager(db, clock).open_shift("SUC-1", "CAJA-1", initial_cash=Decimal("500"))


@pytest.fixture
def inventory(db, clock):
    ledger = InventoryLedger(db, clock, clamp_on_persist=False)
    ledger.register_product("P-1", product_name="Refresco", initial_stock=Decimal("10"))
    return ledger


@pytest.fixture
def service(db, clock, inventory):
    return CheckoutService(db, clock, inventory=inventory)


def items(quantity="2", unit_price="50", product_id="P-1"):
    return [SaleItem(product_id=product_id, quantity=Decimal(quantity), unit_price=Decimal(unit_price))]


# ===== TESTS =====

class TestCheckout:
    """Tests del checkout completo"""

    def test_cash_checkout(self, service, inventory, shift):
        result = service.checkout("SUC-1", "CAJA-1", items(), CashTender(amount_received=Decimal("200")))

        assert result.sale.total == Decimal("100")
        assert result.sale.change_given == Decimal("100")
        assert result.sale.payment_kind == PaymentKind.CASH
        assert result.credit is None
        assert result.warnings == []
        assert inventory.raw_stock("P-1") == Decimal("8")

        shift = service.shifts.get_shift(shift.id)
        assert shift.total_cash == Decimal("100")
        assert shift.sales_count == 1

    def test_sale_lines_are_persisted(self, db, service, shift):
        result = service.checkout("SUC-1", "CAJA-1", items(quantity="1.5", unit_price="10"), CardTender())

        sale = db.get(Sale, result.sale.id)
        assert len(sale.lines) == 1
        assert sale.lines[0].subtotal == Decimal("15")

    def test_shortfall_becomes_credit(self, service, shift):
        result = service.checkout(
            "SUC-1", "CAJA-1",
            items(quantity="3", unit_price="100"),
            CashTender(amount_received=Decimal("100")),
            client_id="C-1",
            credit_limit=Decimal("500"),
        )

        assert result.credit is not None
        assert result.credit.source_sale_id == result.sale.id
        assert result.credit.original_amount == Decimal("200")
        assert result.credit.status == CreditStatus.PENDING
        assert service.shifts.get_shift(shift.id).total_credits_issued == Decimal("200")
        assert service.credits.available_credit("C-1", Decimal("500")) == Decimal("300")

    def test_pending_balance_limits_next_credit(self, db, service, shift):
        service.checkout(
            "SUC-1", "CAJA-1", items(quantity="1", unit_price="300"),
            CashTender(amount_received=Decimal("100")), client_id="C-1", credit_limit=Decimal("500"),
        )

        with pytest.raises(InsufficientFundsError):
            service.checkout(
                "SUC-1", "CAJA-1", items(quantity="1", unit_price="400"),
                CashTender(amount_received=Decimal("0")), client_id="C-1", credit_limit=Decimal("500"),
            )

        assert db.query(Sale).count() == 1
        assert service.shifts.get_shift(shift.id).sales_count == 1

    def test_competing_credit_is_rechecked(self, db, clock, service, shift):
        """Otra caja difiere crédito al mismo cliente entre la lectura del saldo y la emisión"""
        service.credits.issue("C-1", Decimal("200"), source_sale_id=500)
        allocator = service.allocator

        class CompetingAllocator:
            def allocate(self, *args, **kwargs):
                allocation = allocator.allocate(*args, **kwargs)
                CreditLedger(db, clock).issue("C-1", Decimal("250"), source_sale_id=999)
                return allocation

        service.allocator = CompetingAllocator()

        with pytest.raises(InsufficientFundsError):
            service.checkout(
                "SUC-1", "CAJA-1", items(quantity="1", unit_price="250"),
                CashTender(amount_received=Decimal("0")), client_id="C-1", credit_limit=Decimal("500"),
            )

        assert db.query(Sale).count() == 0
        assert service.credits.pending_balance("C-1") == Decimal("450")
        assert service.shifts.get_shift(shift.id).sales_count == 0

    def test_no_open_shift(self, service):
        with pytest.raises(NotFoundError):
            service.checkout("SUC-1", "CAJA-1", items(), CashTender())

    def test_empty_sale_rejected(self, service, shift):
        with pytest.raises(ValidationError):
            service.checkout("SUC-1", "CAJA-1", [], CashTender())

    def test_negative_stock_is_a_warning(self, service, inventory, shift):
        result = service.checkout("SUC-1", "CAJA-1", items(quantity="12", unit_price="1"), CashTender())

        assert len(result.warnings) == 1
        assert inventory.raw_stock("P-1") == Decimal("-2")
        assert result.sale.id is not None

    def test_untracked_products_are_skipped(self, service, inventory, shift):
        result = service.checkout("SUC-1", "CAJA-1", items(product_id="SERVICIO"), CashTender())

        assert result.warnings == []
        assert inventory.find_item("SERVICIO") is None

    def test_registered_untracked_product_is_skipped(self, service, inventory, shift):
        inventory.register_product("P-2", product_name="Envoltura", initial_stock=Decimal("5"), track_inventory=False)

        result = service.checkout("SUC-1", "CAJA-1", items(quantity="3", product_id="P-2"), CashTender())

        assert result.warnings == []
        assert inventory.raw_stock("P-2") == Decimal("5")
        assert len(inventory.list_movements("P-2")) == 1


class TestCheckoutEndpoint:
    """Tests del endpoint de checkout"""

    def test_checkout_over_http(self, client, shift, inventory):
        response = client.post("/api/v1/sales/checkout", json={
            "branch_id": "SUC-1",
            "register_id": "CAJA-1",
            "items": [{"product_id": "P-1", "quantity": "2", "unit_price": "40"}],
            "tender": {"kind": "MIXED", "cash_amount": "30", "card_amount": "60"},
            "deposit_subtotal": "10",
        })

        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["sale"]["total"]) == Decimal("90")
        assert Decimal(body["sale"]["cash_amount"]) == Decimal("30")
        assert Decimal(body["sale"]["card_amount"]) == Decimal("60")

        sales = client.get(f"/api/v1/sales/shift/{shift.id}").json()
        assert [s["folio"] for s in sales] == ["1-00001"]

    def test_insufficient_funds_returns_422(self, client, shift):
        response = client.post("/api/v1/sales/checkout", json={
            "branch_id": "SUC-1",
            "register_id": "CAJA-1",
            "items": [{"product_id": "P-1", "quantity": "1", "unit_price": "100"}],
            "tender": {"kind": "CASH", "amount_received": "20"},
        })

        assert response.status_code == 422
        assert response.json()["code"] == "INSUFFICIENT_FUNDS"

    def test_checkout_without_shift_returns_404(self, client):
        response = client.post("/api/v1/sales/checkout", json={
            "branch_id": "SUC-1",
            "register_id": "CAJA-9",
            "items": [{"product_id": "P-1", "quantity": "1", "unit_price": "10"}],
            "tender": {"kind": "CARD"},
        })

        assert response.status_code == 404
