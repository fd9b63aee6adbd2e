from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from posledger.core.config import settings
from posledger.database.database import get_db
from posledger.modules.reports.service import ReportingFacade
from posledger.modules.reports.schemas import (
    ShiftSummary, ShiftListItem, CashMovementHistoryItem, PaymentMethodBreakdown
)
from posledger.modules.shifts.models import ShiftStatus


reports_router = APIRouter(prefix="/reports", tags=["Reports"])


@reports_router.get("/shifts", response_model=List[ShiftListItem])
async def list_shifts(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    branch_id: Optional[str] = Query(None),
    register_id: Optional[str] = Query(None),
    status: Optional[ShiftStatus] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return ReportingFacade(db).list_shifts(start, end, branch_id, register_id, status, limit=limit, offset=offset)


@reports_router.get("/shifts/{shift_id}/summary", response_model=ShiftSummary)
async def shift_summary(shift_id: int, db: Session = Depends(get_db)):
    return ReportingFacade(db).shift_summary(shift_id)


@reports_router.get("/cash-movements", response_model=List[CashMovementHistoryItem])
async def cash_movements_history(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    register_id: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return ReportingFacade(db).cash_movements_history(start, end, register_id, limit=limit, offset=offset)


@reports_router.get("/sales-by-tender", response_model=List[PaymentMethodBreakdown])
async def sales_by_tender(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    branch_id: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return ReportingFacade(db).sales_by_tender(start, end, branch_id)
