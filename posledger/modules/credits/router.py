"""
Router FastAPI para créditos de clientes
"""

from decimal import Decimal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from posledger.common.clock import Clock, get_clock
from posledger.database.database import get_db
from posledger.modules.credits.models import CreditStatus
from posledger.modules.credits.service import CreditLedger
from posledger.modules.credits.schemas import (
    ClientCreditOut, ClientCreditDetail, ClientCreditSummary, AvailableCredit
)


credits_router = APIRouter(prefix="/credits", tags=["Credits"])


def get_credit_ledger(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> CreditLedger:
    return CreditLedger(db, clock)


@credits_router.get("/pending", response_model=List[ClientCreditOut])
async def pending_credits(ledger: CreditLedger = Depends(get_credit_ledger)):
    return ledger.pending_credits()


@credits_router.get("/clients/{client_id}", response_model=List[ClientCreditOut])
async def client_credits(
    client_id: str,
    status: Optional[CreditStatus] = Query(None),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.client_credits(client_id, status=status)


@credits_router.get("/clients/{client_id}/summary", response_model=ClientCreditSummary)
async def client_summary(client_id: str, ledger: CreditLedger = Depends(get_credit_ledger)):
    """Saldo pendiente y créditos abiertos del cliente"""
    return ledger.client_summary(client_id)


@credits_router.get("/clients/{client_id}/available", response_model=AvailableCredit)
async def available_credit(
    client_id: str,
    credit_limit: Decimal = Query(..., ge=0),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return AvailableCredit(
        client_id=client_id,
        credit_limit=credit_limit,
        available_credit=ledger.available_credit(client_id, credit_limit),
    )


@credits_router.get("/{credit_id}", response_model=ClientCreditDetail)
async def get_credit(credit_id: int, ledger: CreditLedger = Depends(get_credit_ledger)):
    return ledger.get_credit(credit_id)
