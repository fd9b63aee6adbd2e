"""
Tests para créditos de clientes (CreditLedger)

Cubre:
- Emisión de créditos (uno por venta)
- Abonos parciales y liquidación
- Saldo pendiente y crédito disponible contra el límite
- Endpoints HTTP
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from posledger.common.clock import FixedClock
from posledger.common.exceptions import ValidationError, ConflictError, NotFoundError, InsufficientFundsError
from posledger.modules.credits.models import ClientCredit, ClientCreditAccount, CreditStatus
from posledger.modules.credits.service import CreditLedger
from posledger.modules.events.models import CreditPaymentMethod


# ===== FIXTURES =====

@pytest.fixture
def ledger(db, clock):
    return CreditLedger(db, clock)


@pytest.fixture
def credit(ledger):
    return ledger.issue("C-1", Decimal("200"), source_sale_id=1)


# ===== TESTS =====

class TestIssue:
    """Tests de emisión"""

    def test_issue_creates_pending_credit(self, credit):
        assert credit.status == CreditStatus.PENDING
        assert credit.original_amount == Decimal("200")
        assert credit.paid_amount == Decimal("0")
        assert credit.remaining_amount == Decimal("200")
        assert credit.paid_at is None

    def test_one_credit_per_sale(self, ledger, credit):
        with pytest.raises(ConflictError):
            ledger.issue("C-2", Decimal("50"), source_sale_id=1)

    @pytest.mark.parametrize("client_id,amount", [
        ("", Decimal("10")),
        ("C-1", Decimal("0")),
        ("C-1", Decimal("-5")),
    ])
    def test_invalid_issue(self, ledger, client_id, amount):
        with pytest.raises(ValidationError):
            ledger.issue(client_id, amount, source_sale_id=9)

    def test_issue_rechecks_limit(self, db, ledger, credit):
        """Con 200 pendientes y límite 500, un crédito de 350 se rechaza"""
        with pytest.raises(InsufficientFundsError) as exc:
            ledger.issue("C-1", Decimal("350"), source_sale_id=2, credit_limit=Decimal("500"))

        assert exc.value.available == Decimal("300")
        assert db.query(ClientCredit).count() == 1

        second = ledger.issue("C-1", Decimal("300"), source_sale_id=3, credit_limit=Decimal("500"))
        assert second.remaining_amount == Decimal("300")
        assert ledger.available_credit("C-1", Decimal("500")) == Decimal("0")

    def test_limit_check_keeps_client_account(self, db, ledger):
        ledger.issue("C-1", Decimal("100"), source_sale_id=1, credit_limit=Decimal("500"))
        ledger.issue("C-1", Decimal("50"), source_sale_id=2, credit_limit=Decimal("400"))

        accounts = db.query(ClientCreditAccount).all()
        assert [(a.client_id, a.credit_limit) for a in accounts] == [("C-1", Decimal("400"))]


class TestPay:
    """Tests de abonos"""

    def test_partial_payment(self, ledger, credit):
        ledger.pay(credit.id, Decimal("50"))

        credit = ledger.get_credit(credit.id)
        assert credit.status == CreditStatus.PARTIALLY_PAID
        assert credit.paid_amount == Decimal("50")
        assert credit.remaining_amount == Decimal("150")
        assert credit.paid_at is None

    def test_full_payment_marks_paid(self, ledger, credit):
        ledger.pay(credit.id, Decimal("120"))
        ledger.pay(credit.id, Decimal("80"), payment_method=CreditPaymentMethod.TRANSFER)

        credit = ledger.get_credit(credit.id)
        assert credit.status == CreditStatus.PAID
        assert credit.remaining_amount == Decimal("0")
        assert credit.paid_at is not None
        assert [p.amount for p in credit.payments] == [Decimal("120"), Decimal("80")]

    def test_paid_amount_plus_remaining_is_original(self, ledger, credit):
        ledger.pay(credit.id, Decimal("33.33"))

        credit = ledger.get_credit(credit.id)
        assert credit.paid_amount + credit.remaining_amount == credit.original_amount

    def test_overpayment_rejected(self, ledger, credit):
        with pytest.raises(ValidationError):
            ledger.pay(credit.id, Decimal("200.01"))

    def test_zero_payment_rejected(self, ledger, credit):
        with pytest.raises(ValidationError):
            ledger.pay(credit.id, Decimal("0"))

    def test_payment_on_paid_credit_rejected(self, ledger, credit):
        ledger.pay(credit.id, Decimal("200"))

        with pytest.raises(ValidationError):
            ledger.pay(credit.id, Decimal("1"))

    def test_unknown_credit(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.pay(404, Decimal("10"))


class TestBalances:
    """Saldo pendiente y crédito disponible"""

    def test_available_credit(self, ledger, credit):
        """Límite 500 con 200 pendientes deja 300 disponibles"""
        assert ledger.available_credit("C-1", Decimal("500")) == Decimal("300")

    def test_paid_credits_do_not_count(self, ledger, credit):
        ledger.issue("C-1", Decimal("75"), source_sale_id=2)
        ledger.pay(credit.id, Decimal("200"))

        assert ledger.pending_balance("C-1") == Decimal("75")

    def test_partial_credit_counts_remaining(self, ledger, credit):
        ledger.pay(credit.id, Decimal("60"))

        assert ledger.pending_balance("C-1") == Decimal("140")
        assert ledger.pending_balance("C-OTRO") == Decimal("0")

    def test_client_summary(self, ledger, credit):
        second = ledger.issue("C-1", Decimal("40"), source_sale_id=2)
        ledger.pay(second.id, Decimal("40"))

        summary = ledger.client_summary("C-1")

        assert summary["total_pending"] == Decimal("200")
        assert summary["pending_count"] == 1
        assert [c.id for c in summary["credits"]] == [credit.id]

    def test_client_credits_filter_by_status(self, ledger, credit):
        second = ledger.issue("C-1", Decimal("40"), source_sale_id=2)
        ledger.pay(second.id, Decimal("40"))

        paid = ledger.client_credits("C-1", status=CreditStatus.PAID)

        assert [c.id for c in paid] == [second.id]
        assert len(ledger.client_credits("C-1")) == 2
        assert [c.id for c in ledger.pending_credits()] == [credit.id]


class TestCreditEndpoints:
    """Tests de endpoints"""

    def test_available_endpoint(self, client, credit):
        response = client.get("/api/v1/credits/clients/C-1/available", params={"credit_limit": "500"})

        assert response.status_code == 200
        assert Decimal(response.json()["available_credit"]) == Decimal("300")

    def test_detail_includes_payments(self, client, ledger, credit):
        ledger.pay(credit.id, Decimal("25"))

        response = client.get(f"/api/v1/credits/{credit.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PARTIALLY_PAID"
        assert len(body["payments"]) == 1
        assert Decimal(body["payments"][0]["amount"]) == Decimal("25")

    def test_summary_endpoint(self, client, credit):
        response = client.get("/api/v1/credits/clients/C-1/summary")

        assert response.status_code == 200
        assert Decimal(response.json()["total_pending"]) == Decimal("200")

    def test_unknown_credit_returns_404(self, client):
        response = client.get("/api/v1/credits/999")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestRanges:
    """Créditos y abonos por rango de fechas (límites inclusivos)"""

    def test_credits_and_payments_between(self, db):
        start = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        ledger = CreditLedger(db, FixedClock(start=start, tick=timedelta(hours=1)))

        first = ledger.issue("C-1", Decimal("100"), source_sale_id=1)  # 09:00
        ledger.pay(first.id, Decimal("30"))                            # 10:00
        second = ledger.issue("C-2", Decimal("60"), source_sale_id=2)  # 11:00

        credits = ledger.credits_between(start + timedelta(minutes=30), start + timedelta(hours=2))
        payments = ledger.payments_between(start + timedelta(hours=1), start + timedelta(hours=1))

        assert [c.id for c in credits] == [second.id]
        assert [p.amount for p in payments] == [Decimal("30")]
