from fastapi import APIRouter, Depends, Query

from ledger_api.db.pool import LedgerStore
from ledger_api.routers.deps import get_store
from ledger_api.services.reports import (
    budget_adherence,
    category_distribution,
    monthly_expenditure,
    reports_summary,
    savings_forecast,
    savings_goal_progress,
)

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/summary/{user_id}")
def summary(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return reports_summary(cur, user_id)


@router.get("/monthly-expenditure/{user_id}")
def monthly_expenditure_analysis(
    user_id: str,
    year: int | None = None,
    month: int | None = None,
    store: LedgerStore = Depends(get_store),
):
    with store.read_unit() as cur:
        return monthly_expenditure(cur, user_id, year, month)


@router.get("/budget-adherence/{user_id}")
def adherence(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return budget_adherence(cur, user_id)


@router.get("/savings-progress/{user_id}")
def savings_progress(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return savings_goal_progress(cur, user_id)


@router.get("/category-distribution/{user_id}")
def distribution(
    user_id: str,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    store: LedgerStore = Depends(get_store),
):
    with store.read_unit() as cur:
        return category_distribution(cur, user_id, start_date, end_date)


@router.get("/savings-forecast/{user_id}")
def forecast(
    user_id: str,
    months_back: int = Query(default=6, alias="monthsBack"),
    months_forecast: int = Query(default=3, alias="monthsForecast"),
    store: LedgerStore = Depends(get_store),
):
    with store.read_unit() as cur:
        return savings_forecast(cur, user_id, months_back, months_forecast)
